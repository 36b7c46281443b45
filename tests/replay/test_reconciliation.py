"""
Replaying the transaction log reproduces every stored balance.

Balances are a cache of the ledger: after any mix of accepted and rejected
operations the stored quantity, the transaction sum, the movement sum and
the last recorded balance_after all agree.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from inventory_kernel.domain.dtos import ReceiptLine, ShipmentLine
from inventory_kernel.exceptions import InventoryKernelError
from inventory_kernel.models.stock import StockBalance
from inventory_kernel.selectors.ledger_selector import LedgerSelector

D = Decimal


@pytest.fixture
def busy_day(ledger, catalog, tenant_id, test_actor_id):
    """A day of mixed operations, some of which are rejected."""
    flour = catalog.item(unit_cost="0.40")
    sugar = catalog.item(unit_cost="0.90")
    cake = catalog.item(unit_price="12")
    main, store = catalog.warehouse(), catalog.warehouse()
    recipe_id = catalog.recipe(cake, [(flour, 3), (sugar, 1)])

    po_id, _ = catalog.purchase_order([(flour, 100, "0.40"), (sugar, 40, "0.90")])
    ledger.receive_purchase(
        tenant_id, po_id,
        [ReceiptLine(flour, main, D("60")), ReceiptLine(sugar, main, D("40"))],
        test_actor_id,
    )
    ledger.produce(tenant_id, recipe_id, D("10"), main, test_actor_id)
    ledger.transfer(tenant_id, main, store, cake, D("4"), test_actor_id)

    so_id, _ = catalog.sale_order([(cake, 5, "12")])
    ledger.reserve(tenant_id, store, cake, D("2"), test_actor_id, so_id)
    ledger.fulfill_sale(
        tenant_id, so_id,
        [ShipmentLine(cake, store, D("3"), reserved_quantity=D("2"))],
        test_actor_id,
    )
    ledger.adjust(tenant_id, main, flour, D("-1.5"), "DAMAGED", test_actor_id)

    rejected = [
        lambda: ledger.produce(tenant_id, recipe_id, D("50"), main, test_actor_id),
        lambda: ledger.transfer(tenant_id, store, main, cake, D("99"), test_actor_id),
        lambda: ledger.fulfill_sale(
            tenant_id, so_id, [ShipmentLine(cake, store, D("2"))], test_actor_id
        ),
        lambda: ledger.receive_purchase(
            tenant_id, po_id, [ReceiptLine(flour, main, D("41"))], test_actor_id
        ),
    ]
    for attempt in rejected:
        with pytest.raises(InventoryKernelError):
            attempt()

    return {"flour": flour, "sugar": sugar, "cake": cake, "main": main, "store": store}


class TestReplay:
    def test_every_balance_reconciles(self, ledger, busy_day, tenant_id):
        results = ledger.reconcile(tenant_id)
        assert len(results) == 4
        assert all(r.is_balanced for r in results)

    def test_replay_matches_stored_quantities(self, ledger, busy_day):
        expected = {
            ("main", "flour"): D("28.5"),
            ("main", "sugar"): D("30"),
            ("main", "cake"): D("6"),
            ("store", "cake"): D("1"),
        }
        for (wh, item), quantity in expected.items():
            wh_id, item_id = busy_day[wh], busy_day[item]
            assert ledger.replay_balance(wh_id, item_id) == quantity
            assert ledger.get_balance(wh_id, item_id).quantity == quantity

    def test_reservation_log_matches_reserved(self, ledger, busy_day):
        balance = ledger.get_balance(busy_day["store"], busy_day["cake"])
        assert balance.reserved == D("0")
        result = next(
            r for r in ledger.reconcile()
            if r.warehouse_id == busy_day["store"] and r.item_id == busy_day["cake"]
        )
        assert result.reservation_log_reserved == D("0")

    def test_reconcile_is_scoped_to_the_tenant(self, ledger, busy_day, other_tenant_id):
        assert ledger.reconcile(other_tenant_id) == []


class TestTamperDetection:
    def test_edited_balance_is_reported(self, ledger, busy_day, session, tenant_id):
        session.execute(
            update(StockBalance)
            .where(StockBalance.warehouse_id == busy_day["store"])
            .values(quantity=D("100"))
        )
        session.commit()

        unbalanced = LedgerSelector(session).unreconciled(tenant_id)
        assert [(r.warehouse_id, r.balance_quantity) for r in unbalanced] == [
            (busy_day["store"], D("100"))
        ]
        assert unbalanced[0].ledger_quantity == D("1")


class TestCanonicalHash:
    def test_stable_until_something_is_posted(
        self, ledger, busy_day, session_factory, tenant_id, test_actor_id
    ):
        with session_factory() as s:
            before = LedgerSelector(s).canonical_hash(tenant_id)
            assert LedgerSelector(s).canonical_hash(tenant_id) == before

        ledger.adjust(tenant_id, busy_day["main"], busy_day["sugar"], D("1"), "FOUND", test_actor_id)

        with session_factory() as s:
            assert LedgerSelector(s).canonical_hash(tenant_id) != before

    def test_other_tenants_do_not_affect_it(
        self, ledger, busy_day, catalog, session_factory, tenant_id, other_tenant_id,
        test_actor_id,
    ):
        with session_factory() as s:
            before = LedgerSelector(s).canonical_hash(tenant_id)

        other = catalog.for_tenant(other_tenant_id)
        ledger.adjust(other_tenant_id, other.warehouse(), other.item(), D("3"), "FOUND",
                      test_actor_id)

        with session_factory() as s:
            assert LedgerSelector(s).canonical_hash(tenant_id) == before
