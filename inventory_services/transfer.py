"""
TransferCoordinator -- moves stock of one item between two warehouses.

Both legs are posted in the caller's transaction under one generated
reference, so they commit or roll back together and always sum to zero.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import TransferResult
from inventory_kernel.domain.movement import MovementDirection, MovementRequest, TransferLeg
from inventory_kernel.domain.validation import require_id, require_quantity
from inventory_kernel.exceptions import InsufficientStockError, SameWarehouseTransferError
from inventory_kernel.invariants import LedgerInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.ledger_engine import LedgerEngine
from inventory_services.lookups import load_item, load_warehouse

logger = get_logger("services.transfer")


def new_transfer_reference() -> str:
    return f"TRF-{uuid4().hex.upper()}"


class TransferCoordinator:
    def __init__(self, session: Session, engine: LedgerEngine, clock: Clock | None = None):
        self._session = session
        self._engine = engine
        self._clock = clock or SystemClock()

    def transfer(
        self,
        tenant_id: UUID,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        note: str | None = None,
    ) -> TransferResult:
        """
        Post the OUT leg at the source, then the IN leg at the destination.

        Raises:
            SameWarehouseTransferError, CrossTenantViolationError,
            InsufficientStockError (source cannot cover ``quantity``).
        """
        require_id(tenant_id, "tenant_id")
        require_id(actor_id, "actor_id")
        require_id(from_warehouse_id, "from_warehouse_id")
        require_id(to_warehouse_id, "to_warehouse_id")
        qty = require_quantity(quantity)
        if from_warehouse_id == to_warehouse_id:
            raise SameWarehouseTransferError(str(from_warehouse_id))

        load_warehouse(self._session, tenant_id, from_warehouse_id)
        load_warehouse(self._session, tenant_id, to_warehouse_id)
        item = load_item(self._session, tenant_id, item_id)

        # Stable lock order for the two rows.
        locked = {
            wh: self._engine.lock_balance(wh, item_id)
            for wh in sorted((from_warehouse_id, to_warehouse_id), key=str)
        }
        source = locked[from_warehouse_id]
        available = source.available if source is not None else Decimal("0")
        if qty > available:
            logger.warning(
                "transfer_rejected",
                extra={
                    "invariant": LedgerInvariant.NON_NEGATIVE_STOCK,
                    "item_id": str(item_id),
                    "from_warehouse_id": str(from_warehouse_id),
                    "to_warehouse_id": str(to_warehouse_id),
                    "requested": qty,
                    "available": available,
                },
            )
            raise InsufficientStockError(str(item_id), str(from_warehouse_id), qty, available)

        reference = new_transfer_reference()
        outbound = self._engine.apply_movement(MovementRequest(
            tenant_id=tenant_id,
            item_id=item_id,
            warehouse_id=from_warehouse_id,
            quantity=qty,
            detail=TransferLeg(MovementDirection.OUT, to_warehouse_id),
            actor_id=actor_id,
            reference=reference,
            unit_cost=item.unit_cost,
            note=note,
        ))
        inbound = self._engine.apply_movement(MovementRequest(
            tenant_id=tenant_id,
            item_id=item_id,
            warehouse_id=to_warehouse_id,
            quantity=qty,
            detail=TransferLeg(MovementDirection.IN, from_warehouse_id),
            actor_id=actor_id,
            reference=reference,
            unit_cost=item.unit_cost,
            note=note,
        ))

        # INVARIANT: TRANSFER_ZERO_SUM
        assert outbound.quantity + inbound.quantity == 0, "transfer legs do not cancel"

        logger.info(
            "transfer_completed",
            extra={
                "reference": reference,
                "item_id": str(item_id),
                "from_warehouse_id": str(from_warehouse_id),
                "to_warehouse_id": str(to_warehouse_id),
                "quantity": qty,
            },
        )
        return TransferResult(reference=reference, transactions=(outbound, inbound))
