"""
Concurrent writers against one balance.

Runs against the per-test SQLite file by default (writers serialize on the
database lock and lose with a stale version), or PostgreSQL via
DATABASE_URL (writers serialize on SELECT ... FOR UPDATE).  Either way the
balance never goes negative and exactly the affordable requests succeed.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.domain.dtos import ShipmentLine
from inventory_kernel.exceptions import InsufficientStockError, OptimisticLockError
from inventory_kernel.models.stock import StockBalance
from inventory_services.inventory_ledger import InventoryLedger
from inventory_services.unit_of_work import translate_concurrency_error

D = Decimal

pytestmark = pytest.mark.slow_locks


@pytest.fixture
def contended_ledger(session_factory, deterministic_clock):
    led = InventoryLedger(
        session_factory,
        clock=deterministic_clock,
        max_retries=12,
        retry_backoff_ms=2,
    )
    yield led
    led.close()


def _run_together(n, fn):
    """Start ``n`` calls of ``fn(i)`` at the same instant; return (results, errors)."""
    barrier = Barrier(n)

    def call(i):
        barrier.wait()
        try:
            return fn(i), None
        except Exception as exc:
            return None, exc

    with ThreadPoolExecutor(max_workers=n) as pool:
        outcomes = list(pool.map(call, range(n)))
    return [r for r, _ in outcomes if r is not None], [e for _, e in outcomes if e is not None]


class TestConcurrentSales:
    def test_two_sales_for_more_than_exists(
        self, contended_ledger, catalog, tenant_id, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()
        contended_ledger.adjust(tenant_id, wh, item, D("10"), "OPENING_BALANCE", test_actor_id)
        orders = [catalog.sale_order([(item, 6, "1")])[0] for _ in range(2)]

        results, errors = _run_together(
            2,
            lambda i: contended_ledger.fulfill_sale(
                tenant_id, orders[i], [ShipmentLine(item, wh, D("6"))], test_actor_id
            ),
        )

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientStockError)
        assert contended_ledger.get_balance(wh, item).quantity == D("4")
        assert contended_ledger.replay_balance(wh, item) == D("4")


class TestConcurrentDecrements:
    def test_only_affordable_decrements_succeed(
        self, contended_ledger, catalog, tenant_id, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()
        contended_ledger.adjust(tenant_id, wh, item, D("20"), "OPENING_BALANCE", test_actor_id)

        results, errors = _run_together(
            8,
            lambda i: contended_ledger.adjust(tenant_id, wh, item, D("-3"), "LOST", test_actor_id),
        )

        assert len(results) == 6
        assert all(isinstance(e, InsufficientStockError) for e in errors)
        assert contended_ledger.get_balance(wh, item).quantity == D("2")
        assert sorted(r.balance_after for r in results) == [
            D("2"), D("5"), D("8"), D("11"), D("14"), D("17")
        ]
        assert all(r.is_balanced for r in contended_ledger.reconcile(tenant_id))

    def test_concurrent_receipts_into_a_new_balance(
        self, contended_ledger, catalog, tenant_id, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()

        results, errors = _run_together(
            4,
            lambda i: contended_ledger.adjust(tenant_id, wh, item, D("5"), "FOUND", test_actor_id),
        )

        assert errors == []
        assert contended_ledger.get_balance(wh, item).quantity == D("20")
        assert len(contended_ledger.transactions_for(wh, item)) == 4


class TestStaleVersion:
    def test_writer_holding_an_old_version_loses(
        self, ledger, catalog, stock, session_factory, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()
        stock(wh, item, 10)

        def load(session):
            return session.execute(
                select(StockBalance).where(
                    StockBalance.warehouse_id == wh, StockBalance.item_id == item
                )
            ).scalar_one()

        slow = session_factory()
        fast = session_factory()
        try:
            stale = load(slow)
            fresh = load(fast)
            fresh.reserved = D("1")
            fast.commit()

            stale.reserved = D("2")
            with pytest.raises(StaleDataError) as exc_info:
                slow.flush()
            slow.rollback()
        finally:
            slow.close()
            fast.close()

        assert isinstance(translate_concurrency_error(exc_info.value, 5000), OptimisticLockError)
        assert ledger.get_balance(wh, item).reserved == D("1")
