"""Transactions can be traced back to the order or batch that caused them."""

from decimal import Decimal

from inventory_kernel.domain.dtos import ReceiptLine, ShipmentLine
from inventory_kernel.domain.movement import TransactionKind
from inventory_kernel.selectors.ledger_selector import LedgerSelector

D = Decimal


def test_receipts_and_shipments_link_to_their_orders(
    ledger, catalog, tenant_id, test_actor_id, session_factory
):
    item, wh = catalog.item(unit_cost="2"), catalog.warehouse()
    po_id, _ = catalog.purchase_order([(item, 10, "2")])
    so_id, _ = catalog.sale_order([(item, 4, "5")])

    ledger.receive_purchase(tenant_id, po_id, [ReceiptLine(item, wh, D("6"))], test_actor_id)
    ledger.receive_purchase(tenant_id, po_id, [ReceiptLine(item, wh, D("4"))], test_actor_id)
    ledger.fulfill_sale(tenant_id, so_id, [ShipmentLine(item, wh, D("4"))], test_actor_id)

    with session_factory() as session:
        selector = LedgerSelector(session)
        received = selector.transactions_for_purchase_order(po_id)
        shipped = selector.transactions_for_sale_order(so_id)

    assert [t.quantity for t in received] == [D("6"), D("4")]
    assert all(t.kind is TransactionKind.PURCHASE for t in received)
    assert [t.quantity for t in shipped] == [D("-4")]
    assert shipped[0].balance_after == D("6")


def test_production_batch_links_usage_and_output(
    ledger, catalog, stock, tenant_id, test_actor_id, session_factory
):
    flour = catalog.item(unit_cost="1")
    bread = catalog.item()
    wh = catalog.warehouse()
    recipe_id = catalog.recipe(bread, [(flour, 3)])
    stock(wh, flour, 30)

    result = ledger.produce(tenant_id, recipe_id, D("4"), wh, test_actor_id)

    with session_factory() as session:
        linked = LedgerSelector(session).transactions_for_batch(result.batch.id)

    assert [(t.kind, t.quantity) for t in linked] == [
        (TransactionKind.USAGE, D("-12")),
        (TransactionKind.PURCHASE, D("4")),
    ]


def test_unlinked_adjustments_are_not_attributed(
    ledger, catalog, stock, tenant_id, session_factory
):
    item, wh = catalog.item(), catalog.warehouse()
    po_id, _ = catalog.purchase_order([(item, 1, "1")])
    stock(wh, item, 5)

    with session_factory() as session:
        selector = LedgerSelector(session)
        assert selector.transactions_for_purchase_order(po_id) == []
        assert selector.transaction_count(tenant_id) == 1
