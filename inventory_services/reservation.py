"""
ReservationService -- allocates and releases stock for sale orders.

Reservations reduce available-to-sell without touching on-hand quantity.
They are recorded in the append-only reservation log, not as ledger
transactions, so the quantity reconciliation is unaffected.  Reserving for
a sale order locks that order and requires it to still be open.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import StockBalanceInfo
from inventory_kernel.domain.status import is_terminal
from inventory_kernel.domain.validation import require_id
from inventory_kernel.exceptions import OrderNotFoundError, OrderNotOpenError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.orders import SaleOrder
from inventory_kernel.services.ledger_engine import LedgerEngine
from inventory_services.lookups import (
    load_item,
    load_warehouse,
    lock_sale_order,
    require_same_tenant,
)

logger = get_logger("services.reservation")


class ReservationService:
    def __init__(self, session: Session, engine: LedgerEngine, clock: Clock | None = None):
        self._session = session
        self._engine = engine
        self._clock = clock or SystemClock()

    def reserve(
        self,
        tenant_id: UUID,
        warehouse_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        sale_order_id: UUID | None = None,
    ) -> StockBalanceInfo:
        """
        Raises:
            InsufficientStockError: not enough unreserved stock.
            OrderNotOpenError: the sale order is completed or cancelled.
        """
        self._check_targets(tenant_id, warehouse_id, item_id)
        reference = None
        if sale_order_id is not None:
            # Locked so a concurrent cancellation sees this reservation.
            order, _ = lock_sale_order(self._session, tenant_id, sale_order_id)
            if is_terminal(order.status):
                logger.warning(
                    "reservation_for_closed_order_rejected",
                    extra={"sale_order_id": str(order.id), "status": order.status.value},
                )
                raise OrderNotOpenError("SaleOrder", str(order.id), order.status.value)
            reference = order.reference
        return self._engine.reserve(
            tenant_id, warehouse_id, item_id, quantity, actor_id,
            sale_order_id=sale_order_id, reference=reference,
        )

    def release(
        self,
        tenant_id: UUID,
        warehouse_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        sale_order_id: UUID | None = None,
    ) -> StockBalanceInfo:
        """
        Raises:
            ReleaseExceedsReservedError: more than is currently reserved.
        """
        self._check_targets(tenant_id, warehouse_id, item_id)
        reference = None
        if sale_order_id is not None:
            order = self._session.get(SaleOrder, sale_order_id)
            if order is None:
                raise OrderNotFoundError("SaleOrder", str(sale_order_id))
            require_same_tenant("SaleOrder", order.id, order.tenant_id, tenant_id)
            reference = order.reference
        return self._engine.release(
            tenant_id, warehouse_id, item_id, quantity, actor_id,
            sale_order_id=sale_order_id, reference=reference,
        )

    def _check_targets(self, tenant_id, warehouse_id, item_id) -> None:
        require_id(tenant_id, "tenant_id")
        load_warehouse(self._session, tenant_id, warehouse_id)
        load_item(self._session, tenant_id, item_id)
