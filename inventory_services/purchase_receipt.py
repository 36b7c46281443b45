"""
PurchaseReceiptProcessor -- receives goods against a purchase order.

Responsibility:
    Validates every receipt line against the order before anything is
    posted, then applies one PURCHASE movement per line through the
    LedgerEngine, advances line-level received quantities and derives the
    order status.

Architecture position:
    Services -- orchestration over the kernel LedgerEngine.  Flush only;
    the unit-of-work runner commits.

Invariants enforced:
    RECEIPT_BOUNDED -- received_quantity never exceeds ordered_quantity,
        checked cumulatively across the lines of one request.
    Order status moves only along PURCHASE_ORDER_TRANSITIONS.

Failure modes:
    - OrderNotFoundError, CrossTenantViolationError on lookup.
    - OrderLineNotFoundError when the order has no line for an item.
    - OverReceiptError (with line_index and remaining) before any write.
    - InvalidStatusTransitionError for CANCELLED or fully received orders.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import ReceiptLine, ReceiptResult
from inventory_kernel.domain.movement import MovementRequest, PurchaseReceipt
from inventory_kernel.domain.status import (
    derive_purchase_order_status,
    validate_transition,
)
from inventory_kernel.domain.validation import require_id, require_quantity
from inventory_kernel.exceptions import (
    MissingIdentifierError,
    OrderLineNotFoundError,
    OverReceiptError,
)
from inventory_kernel.invariants import LedgerInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.ledger_engine import LedgerEngine
from inventory_services.lookups import (
    load_item,
    load_warehouse,
    lock_purchase_order,
    match_order_line,
)

logger = get_logger("services.purchase_receipt")


class PurchaseReceiptProcessor:
    """
    Contract:
        ``receive`` posts all lines or raises having posted none (the
        caller rolls back on any exception).

    Non-goals:
        - Does NOT commit or publish events.
    """

    def __init__(self, session: Session, engine: LedgerEngine, clock: Clock | None = None):
        self._session = session
        self._engine = engine
        self._clock = clock or SystemClock()

    def receive(
        self,
        tenant_id: UUID,
        purchase_order_id: UUID,
        lines: Sequence[ReceiptLine],
        actor_id: UUID,
    ) -> ReceiptResult:
        require_id(tenant_id, "tenant_id")
        require_id(actor_id, "actor_id")
        if not lines:
            raise MissingIdentifierError("lines")

        order, order_lines = lock_purchase_order(self._session, tenant_id, purchase_order_id)
        received = {line.id: line.received_quantity for line in order_lines}

        # Validate everything before the first movement.
        plan = []
        for index, receipt in enumerate(lines):
            qty = require_quantity(receipt.quantity, line_index=index)
            load_item(self._session, tenant_id, receipt.item_id, index)
            load_warehouse(self._session, tenant_id, receipt.warehouse_id, index)
            line = match_order_line(
                order_lines, receipt.item_id, receipt.order_line_id,
                lambda l: l.ordered_quantity - received[l.id],
            )
            if line is None:
                raise OrderLineNotFoundError(str(order.id), str(receipt.item_id), index)
            if received[line.id] + qty > line.ordered_quantity:
                logger.warning(
                    "over_receipt_rejected",
                    extra={
                        "invariant": LedgerInvariant.RECEIPT_BOUNDED,
                        "purchase_order_id": str(order.id),
                        "line_index": index,
                        "item_id": str(receipt.item_id),
                        "ordered": line.ordered_quantity,
                        "received": received[line.id],
                        "requested": qty,
                    },
                )
                raise OverReceiptError(
                    order_id=str(order.id),
                    line_index=index,
                    item_id=str(receipt.item_id),
                    ordered=line.ordered_quantity,
                    already_received=received[line.id],
                    requested=qty,
                )
            received[line.id] += qty
            plan.append((line, receipt.warehouse_id, qty))

        new_status = derive_purchase_order_status(
            order.status,
            [(line.ordered_quantity, received[line.id]) for line in order_lines],
        )
        validate_transition("PurchaseOrder", order.id, order.status, new_status)

        records = []
        for line, warehouse_id, qty in plan:
            records.append(self._engine.apply_movement(MovementRequest(
                tenant_id=tenant_id,
                item_id=line.item_id,
                warehouse_id=warehouse_id,
                quantity=qty,
                detail=PurchaseReceipt(
                    purchase_order_id=order.id,
                    purchase_order_line_id=line.id,
                ),
                actor_id=actor_id,
                reference=order.reference,
                unit_cost=line.unit_cost,
            )))
            line.received_quantity = line.received_quantity + qty
            line.updated_by_id = actor_id

        old_status = order.status
        order.status = new_status
        order.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "purchase_receipt_processed",
            extra={
                "purchase_order_id": str(order.id),
                "line_count": len(records),
                "total_quantity": sum((q for _, _, q in plan), Decimal("0")),
                "from_status": old_status.value,
                "to_status": new_status.value,
            },
        )
        return ReceiptResult(
            purchase_order_id=order.id,
            status=new_status,
            transactions=tuple(records),
        )
