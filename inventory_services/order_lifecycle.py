"""
OrderLifecycleService -- cancellation of purchase and sale orders.

Cancellation moves status along the transition tables only: a fully
received purchase order or a completed sale order cannot be cancelled, and
cancelling an already cancelled order is rejected.  Stock already received
or shipped stays where it is; cancelling a sale order releases whatever is
still reserved against it.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.status import (
    PurchaseOrderStatus,
    SaleOrderStatus,
    validate_transition,
)
from inventory_kernel.domain.validation import require_id
from inventory_kernel.exceptions import InvalidStatusTransitionError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.ledger_engine import LedgerEngine
from inventory_services.lookups import lock_purchase_order, lock_sale_order

logger = get_logger("services.order_lifecycle")


def _reject_repeat(entity_type: str, entity_id, status) -> None:
    raise InvalidStatusTransitionError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        from_status=status.value,
        to_status=status.value,
    )


class OrderLifecycleService:
    def __init__(self, session: Session, engine: LedgerEngine, clock: Clock | None = None):
        self._session = session
        self._engine = engine
        self._clock = clock or SystemClock()

    def cancel_purchase_order(
        self, tenant_id: UUID, purchase_order_id: UUID, actor_id: UUID
    ) -> PurchaseOrderStatus:
        require_id(actor_id, "actor_id")
        order, _ = lock_purchase_order(self._session, tenant_id, purchase_order_id)
        if order.status is PurchaseOrderStatus.CANCELLED:
            _reject_repeat("PurchaseOrder", order.id, order.status)
        validate_transition(
            "PurchaseOrder", order.id, order.status, PurchaseOrderStatus.CANCELLED
        )
        old_status = order.status
        order.status = PurchaseOrderStatus.CANCELLED
        order.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "purchase_order_cancelled",
            extra={"purchase_order_id": str(order.id), "from_status": old_status.value},
        )
        return order.status

    def cancel_sale_order(
        self, tenant_id: UUID, sale_order_id: UUID, actor_id: UUID
    ) -> SaleOrderStatus:
        require_id(actor_id, "actor_id")
        order, _ = lock_sale_order(self._session, tenant_id, sale_order_id)
        if order.status is SaleOrderStatus.CANCELLED:
            _reject_repeat("SaleOrder", order.id, order.status)
        validate_transition("SaleOrder", order.id, order.status, SaleOrderStatus.CANCELLED)

        released = Decimal("0")
        for (warehouse_id, item_id), outstanding in sorted(
            LedgerSelector(self._session).outstanding_reservations(order.id).items(),
            key=lambda kv: (str(kv[0][0]), str(kv[0][1])),
        ):
            if outstanding > 0:
                self._engine.release(
                    tenant_id, warehouse_id, item_id, outstanding, actor_id,
                    sale_order_id=order.id, reference=order.reference,
                )
                released += outstanding

        old_status = order.status
        order.status = SaleOrderStatus.CANCELLED
        order.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "sale_order_cancelled",
            extra={
                "sale_order_id": str(order.id),
                "from_status": old_status.value,
                "released_quantity": released,
            },
        )
        return order.status
