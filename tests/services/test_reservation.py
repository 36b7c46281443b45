"""Reservations move stock from available to reserved and back."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from inventory_kernel.domain.dtos import ShipmentLine
from inventory_kernel.domain.status import SaleOrderStatus
from inventory_kernel.exceptions import (
    CrossTenantViolationError,
    InsufficientStockError,
    OrderNotFoundError,
    OrderNotOpenError,
    ReleaseExceedsReservedError,
)
from inventory_kernel.models.ledger import ReservationAction, ReservationEntry

D = Decimal


def _reservation_log(session_factory, wh, item):
    with session_factory() as s:
        rows = s.execute(
            select(ReservationEntry)
            .where(ReservationEntry.warehouse_id == wh, ReservationEntry.item_id == item)
            .order_by(ReservationEntry.id)
        ).scalars().all()
        return [(r.action, r.quantity, r.reserved_after, r.reference) for r in rows]


class TestReserve:
    def test_reserve_and_release(
        self, ledger, catalog, stock, tenant_id, test_actor_id, session_factory
    ):
        item, wh = catalog.item(), catalog.warehouse()
        stock(wh, item, 10)
        order_id, _ = catalog.sale_order([(item, 4, "1")], order_number="R-1")

        after_reserve = ledger.reserve(tenant_id, wh, item, D("4"), test_actor_id, order_id)
        assert after_reserve.quantity == D("10")
        assert after_reserve.reserved == D("4")
        assert after_reserve.available == D("6")
        assert ledger.available(wh, item) == D("6")

        after_release = ledger.release(tenant_id, wh, item, D("1"), test_actor_id, order_id)
        assert after_release.reserved == D("3")

        assert _reservation_log(session_factory, wh, item) == [
            (ReservationAction.RESERVE, D("4"), D("4"), "SO-R-1"),
            (ReservationAction.RELEASE, D("1"), D("3"), "SO-R-1"),
        ]

    def test_reservations_are_not_ledger_transactions(
        self, ledger, catalog, stock, tenant_id, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()
        stock(wh, item, 10)
        ledger.reserve(tenant_id, wh, item, D("5"), test_actor_id)
        assert len(ledger.transactions_for(wh, item)) == 1
        assert ledger.replay_balance(wh, item) == D("10")

    def test_cannot_reserve_more_than_available(
        self, ledger, catalog, stock, tenant_id, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()
        stock(wh, item, 10)
        ledger.reserve(tenant_id, wh, item, D("7"), test_actor_id)
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.reserve(tenant_id, wh, item, D("4"), test_actor_id)
        assert exc_info.value.available == D("3")
        assert ledger.get_balance(wh, item).reserved == D("7")

    def test_nothing_to_reserve(self, ledger, catalog, tenant_id, test_actor_id):
        item, wh = catalog.item(), catalog.warehouse()
        with pytest.raises(InsufficientStockError):
            ledger.reserve(tenant_id, wh, item, D("1"), test_actor_id)

    def test_release_more_than_reserved(self, ledger, catalog, stock, tenant_id, test_actor_id):
        item, wh = catalog.item(), catalog.warehouse()
        stock(wh, item, 10)
        ledger.reserve(tenant_id, wh, item, D("2"), test_actor_id)
        with pytest.raises(ReleaseExceedsReservedError) as exc_info:
            ledger.release(tenant_id, wh, item, D("3"), test_actor_id)
        assert exc_info.value.reserved == D("2")

    def test_unknown_sale_order(self, ledger, catalog, stock, tenant_id, test_actor_id):
        item, wh = catalog.item(), catalog.warehouse()
        stock(wh, item, 10)
        with pytest.raises(OrderNotFoundError):
            ledger.reserve(tenant_id, wh, item, D("1"), test_actor_id, uuid4())

    def test_sale_order_of_another_tenant(
        self, ledger, catalog, stock, other_tenant_id, tenant_id, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()
        stock(wh, item, 10)
        other = catalog.for_tenant(other_tenant_id)
        foreign_order, _ = other.sale_order([(other.item(), 1, "1")])
        with pytest.raises(CrossTenantViolationError):
            ledger.reserve(tenant_id, wh, item, D("1"), test_actor_id, foreign_order)


class TestReserveForOrder:
    def test_cancelled_order_cannot_hold_stock(
        self, ledger, catalog, stock, tenant_id, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()
        stock(wh, item, 5)
        order_id, _ = catalog.sale_order([(item, 5, "1")])
        ledger.cancel_sale_order(tenant_id, order_id, test_actor_id)

        with pytest.raises(OrderNotOpenError) as exc_info:
            ledger.reserve(tenant_id, wh, item, D("5"), test_actor_id, order_id)
        assert exc_info.value.status == SaleOrderStatus.CANCELLED.value
        assert exc_info.value.code == "ORDER_NOT_OPEN"
        assert ledger.available(wh, item) == D("5")

    def test_completed_order_cannot_hold_stock(
        self, ledger, catalog, stock, tenant_id, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()
        stock(wh, item, 5)
        order_id, _ = catalog.sale_order([(item, 2, "1")])
        ledger.fulfill_sale(tenant_id, order_id, [ShipmentLine(item, wh, D("2"))], test_actor_id)

        with pytest.raises(OrderNotOpenError):
            ledger.reserve(tenant_id, wh, item, D("1"), test_actor_id, order_id)
        assert ledger.get_balance(wh, item).reserved == D("0")

    def test_partially_fulfilled_order_can_still_reserve(
        self, ledger, catalog, stock, tenant_id, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()
        stock(wh, item, 5)
        order_id, _ = catalog.sale_order([(item, 4, "1")])
        ledger.fulfill_sale(tenant_id, order_id, [ShipmentLine(item, wh, D("1"))], test_actor_id)

        info = ledger.reserve(tenant_id, wh, item, D("3"), test_actor_id, order_id)
        assert (info.quantity, info.reserved) == (D("4"), D("3"))
