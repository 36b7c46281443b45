"""
Manual stock adjustments.

The only entry point allowed to choose a direction: the sign of
``signed_quantity`` is the direction, because a count correction is a human
decision rather than a derived business event.  A decrease still cannot take
the balance below its reserved amount.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import TransactionRecord
from inventory_kernel.domain.movement import (
    AdjustmentReason,
    MovementDirection,
    MovementRequest,
    StockAdjustment,
)
from inventory_kernel.domain.validation import require_id, require_quantity
from inventory_kernel.exceptions import InvalidReasonCodeError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.ledger_engine import LedgerEngine
from inventory_services.lookups import load_item, load_warehouse

logger = get_logger("services.adjustment")


def parse_reason(reason_code) -> AdjustmentReason:
    if isinstance(reason_code, AdjustmentReason):
        return reason_code
    try:
        return AdjustmentReason(str(reason_code).upper())
    except ValueError:
        raise InvalidReasonCodeError(
            reason_code, [r.value for r in AdjustmentReason]
        ) from None


class AdjustmentService:
    def __init__(self, session: Session, engine: LedgerEngine, clock: Clock | None = None):
        self._session = session
        self._engine = engine
        self._clock = clock or SystemClock()

    def adjust(
        self,
        tenant_id: UUID,
        warehouse_id: UUID,
        item_id: UUID,
        signed_quantity: Decimal,
        reason_code: AdjustmentReason | str,
        actor_id: UUID,
        note: str | None = None,
    ) -> TransactionRecord:
        require_id(tenant_id, "tenant_id")
        require_id(actor_id, "actor_id")
        qty = require_quantity(signed_quantity, positive=False)
        reason = parse_reason(reason_code)
        load_warehouse(self._session, tenant_id, warehouse_id)
        item = load_item(self._session, tenant_id, item_id)

        direction = MovementDirection.IN if qty > 0 else MovementDirection.OUT
        record = self._engine.apply_movement(MovementRequest(
            tenant_id=tenant_id,
            item_id=item_id,
            warehouse_id=warehouse_id,
            quantity=abs(qty),
            detail=StockAdjustment(direction=direction, reason=reason),
            actor_id=actor_id,
            unit_cost=item.unit_cost,
            note=note,
        ))
        logger.info(
            "stock_adjusted",
            extra={
                "transaction_id": record.id,
                "reason_code": reason.value,
                "item_id": str(item_id),
                "warehouse_id": str(warehouse_id),
                "quantity": qty,
            },
        )
        return record
