"""
SaleFulfillmentProcessor -- ships goods against a sale order.

Responsibility:
    Validates every shipment line (ordered quantity bound, available
    stock) before anything is posted, then applies one SALE movement per
    line through the LedgerEngine and advances the order's line-level
    fulfilled quantities.  Sales are tracked per line exactly like
    purchases: the order becomes PARTIALLY_FULFILLED or COMPLETED from the
    lines, never by fiat.

Architecture position:
    Services -- orchestration over the kernel LedgerEngine.  Flush only.

Invariants enforced:
    - fulfilled_quantity never exceeds ordered_quantity.
    - NON_NEGATIVE_STOCK is pre-checked here as a fast-fail; the engine's
      own check against the locked row is authoritative.

Concurrency:
    Balance rows for the whole shipment are locked up front in a stable
    (warehouse, item) order, so two multi-line shipments touching the same
    rows queue instead of deadlocking.

Failure modes:
    - OverFulfillmentError, InsufficientStockError (both with line_index),
      OrderLineNotFoundError, ReleaseExceedsReservedError.
    - InvalidStatusTransitionError for CANCELLED or completed orders.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import FulfillmentResult, ShipmentLine
from inventory_kernel.domain.movement import MovementRequest, SaleShipment
from inventory_kernel.domain.status import derive_sale_order_status, validate_transition
from inventory_kernel.domain.validation import (
    require_id,
    require_non_negative,
    require_quantity,
)
from inventory_kernel.exceptions import (
    InsufficientStockError,
    MissingIdentifierError,
    OrderLineNotFoundError,
    OverFulfillmentError,
    ReleaseExceedsReservedError,
)
from inventory_kernel.invariants import LedgerInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.ledger_engine import LedgerEngine
from inventory_services.lookups import (
    load_item,
    load_warehouse,
    lock_sale_order,
    match_order_line,
)

logger = get_logger("services.sale_fulfillment")


class SaleFulfillmentProcessor:
    """
    Contract:
        ``fulfill`` posts all lines or raises having posted none.

    Non-goals:
        - Does NOT commit or publish events.
        - Does NOT reserve stock; callers reserve ahead of time and declare
          the reserved portion per line.
    """

    def __init__(self, session: Session, engine: LedgerEngine, clock: Clock | None = None):
        self._session = session
        self._engine = engine
        self._clock = clock or SystemClock()

    def fulfill(
        self,
        tenant_id: UUID,
        sale_order_id: UUID,
        lines: Sequence[ShipmentLine],
        actor_id: UUID,
    ) -> FulfillmentResult:
        require_id(tenant_id, "tenant_id")
        require_id(actor_id, "actor_id")
        if not lines:
            raise MissingIdentifierError("lines")

        order, order_lines = lock_sale_order(self._session, tenant_id, sale_order_id)
        fulfilled = {line.id: line.fulfilled_quantity for line in order_lines}

        plan = []
        for index, shipment in enumerate(lines):
            qty = require_quantity(shipment.quantity, line_index=index)
            reserved_qty = require_non_negative(
                shipment.reserved_quantity, "reserved_quantity", index
            )
            if reserved_qty > qty:
                raise ReleaseExceedsReservedError(
                    str(shipment.item_id), str(shipment.warehouse_id), reserved_qty, qty,
                    line_index=index,
                )
            item = load_item(self._session, tenant_id, shipment.item_id, index)
            load_warehouse(self._session, tenant_id, shipment.warehouse_id, index)
            line = match_order_line(
                order_lines, shipment.item_id, shipment.order_line_id,
                lambda l: l.ordered_quantity - fulfilled[l.id],
            )
            if line is None:
                raise OrderLineNotFoundError(str(order.id), str(shipment.item_id), index)
            if fulfilled[line.id] + qty > line.ordered_quantity:
                logger.warning(
                    "over_fulfillment_rejected",
                    extra={
                        "sale_order_id": str(order.id),
                        "line_index": index,
                        "item_id": str(shipment.item_id),
                        "ordered": line.ordered_quantity,
                        "fulfilled": fulfilled[line.id],
                        "requested": qty,
                    },
                )
                raise OverFulfillmentError(
                    order_id=str(order.id),
                    line_index=index,
                    item_id=str(shipment.item_id),
                    ordered=line.ordered_quantity,
                    already_fulfilled=fulfilled[line.id],
                    requested=qty,
                )
            fulfilled[line.id] += qty
            unit_cost = shipment.unit_cost if shipment.unit_cost is not None else item.unit_cost
            plan.append((index, line, shipment.warehouse_id, qty, reserved_qty, unit_cost))

        self._check_stock(
            plan, LedgerSelector(self._session).outstanding_reservations(order.id)
        )

        new_status = derive_sale_order_status(
            order.status,
            [(line.ordered_quantity, fulfilled[line.id]) for line in order_lines],
        )
        validate_transition("SaleOrder", order.id, order.status, new_status)

        records = []
        for _, line, warehouse_id, qty, reserved_qty, unit_cost in plan:
            records.append(self._engine.apply_movement(MovementRequest(
                tenant_id=tenant_id,
                item_id=line.item_id,
                warehouse_id=warehouse_id,
                quantity=qty,
                detail=SaleShipment(
                    sale_order_id=order.id,
                    sale_order_line_id=line.id,
                    reserved_quantity=reserved_qty,
                ),
                actor_id=actor_id,
                reference=order.reference,
                unit_cost=unit_cost,
            )))
            line.fulfilled_quantity = line.fulfilled_quantity + qty
            line.updated_by_id = actor_id

        old_status = order.status
        order.status = new_status
        order.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "sale_fulfillment_processed",
            extra={
                "sale_order_id": str(order.id),
                "line_count": len(records),
                "from_status": old_status.value,
                "to_status": new_status.value,
            },
        )
        return FulfillmentResult(
            sale_order_id=order.id,
            status=new_status,
            transactions=tuple(records),
        )

    def _check_stock(self, plan, held_for_order: dict[tuple[UUID, UUID], Decimal]) -> None:
        """
        Fast-fail availability check over the whole shipment.

        Demand is accumulated per (warehouse, item) so two lines drawing on
        the same balance are checked together.  The reserved portion a
        shipment declares must come out of what this order itself holds in
        the reservation log, never out of another order's allocation.
        Rows are locked in sorted key order.
        """
        demand: dict[tuple[UUID, UUID], list] = defaultdict(
            lambda: [Decimal("0"), Decimal("0")]
        )
        for _, line, warehouse_id, qty, reserved_qty, _ in plan:
            totals = demand[(warehouse_id, line.item_id)]
            totals[0] += qty
            totals[1] += reserved_qty

        balances = {
            key: self._engine.lock_balance(*key)
            for key in sorted(demand, key=lambda k: (str(k[0]), str(k[1])))
        }

        for index, line, warehouse_id, _, _, _ in plan:
            key = (warehouse_id, line.item_id)
            total, reserved_total = demand[key]
            balance = balances[key]
            on_hand = balance.quantity if balance is not None else Decimal("0")
            reserved = balance.reserved if balance is not None else Decimal("0")
            held = min(held_for_order.get(key, Decimal("0")), reserved)
            if reserved_total > held:
                logger.warning(
                    "reserved_claim_rejected",
                    extra={
                        "line_index": index,
                        "item_id": str(line.item_id),
                        "warehouse_id": str(warehouse_id),
                        "claimed": reserved_total,
                        "held_for_order": held,
                    },
                )
                raise ReleaseExceedsReservedError(
                    str(line.item_id), str(warehouse_id), reserved_total, held,
                    line_index=index,
                )
            available = on_hand - reserved + reserved_total
            if total > available:
                logger.warning(
                    "sale_stock_check_failed",
                    extra={
                        "invariant": LedgerInvariant.NON_NEGATIVE_STOCK,
                        "line_index": index,
                        "item_id": str(line.item_id),
                        "warehouse_id": str(warehouse_id),
                        "requested": total,
                        "available": available,
                    },
                )
                raise InsufficientStockError(
                    item_id=str(line.item_id),
                    warehouse_id=str(warehouse_id),
                    requested=total,
                    available=available,
                    line_index=index,
                )
