"""The InventoryLedger entry point: construction, context, reads."""

from decimal import Decimal

import pytest

from inventory_config.settings import LedgerSettings
from inventory_kernel.domain.dtos import ReceiptLine
from inventory_kernel.exceptions import InsufficientStockError
from inventory_kernel.models.item import Item, Warehouse
from inventory_services.inventory_ledger import InventoryLedger
from inventory_services.orchestrator import LedgerOrchestrator

D = Decimal


class TestFromSettings:
    def test_builds_a_working_ledger(self, tmp_path, tenant_id, test_actor_id, captured_logs):
        settings = LedgerSettings(
            database_url=f"sqlite:///{tmp_path / 'from_settings.db'}",
            lock_timeout_ms=2000,
            max_retries=1,
            publish_events=True,
        )
        ledger = InventoryLedger.from_settings(settings, create_schema=True)
        try:
            with ledger._session_factory() as s:
                item = Item(tenant_id=tenant_id, sku="S", name="S", unit_cost=D("1"),
                            unit_price=D("2"), created_by_id=test_actor_id)
                wh = Warehouse(tenant_id=tenant_id, code="W", name="W",
                               created_by_id=test_actor_id)
                s.add_all([item, wh])
                s.commit()

            ledger.adjust(tenant_id, wh.id, item.id, D("3"), "OPENING_BALANCE", test_actor_id)
            ledger.drain_events()

            assert ledger.get_balance(wh.id, item.id).quantity == D("3")
            assert ledger.runner._max_retries == 1
        finally:
            ledger.close()

        messages = [r["message"] for r in captured_logs()]
        assert "stock_event_published" in messages
        assert "inventory_ledger_closed" in messages

    def test_events_can_be_disabled(self, tmp_path):
        settings = LedgerSettings(
            database_url=f"sqlite:///{tmp_path / 'quiet.db'}", publish_events=False
        )
        ledger = InventoryLedger.from_settings(settings, create_schema=True)
        try:
            assert ledger.dispatcher is None
        finally:
            ledger.close()


class TestUnitOfWorkContext:
    def test_log_lines_carry_the_operation_context(
        self, ledger, catalog, tenant_id, test_actor_id, captured_logs
    ):
        item, wh = catalog.item(), catalog.warehouse()
        ledger.adjust(tenant_id, wh, item, D("1"), "FOUND", test_actor_id)

        applied = [r for r in captured_logs() if r["message"] == "movement_applied"]
        assert applied[0]["operation"] == "adjust"
        assert applied[0]["tenant_id"] == str(tenant_id)
        assert applied[0]["actor_id"] == str(test_actor_id)
        assert "correlation_id" in applied[0]

    def test_each_call_gets_a_new_correlation_id(
        self, ledger, catalog, tenant_id, test_actor_id, captured_logs
    ):
        item, wh = catalog.item(), catalog.warehouse()
        ledger.adjust(tenant_id, wh, item, D("1"), "FOUND", test_actor_id)
        ledger.adjust(tenant_id, wh, item, D("1"), "FOUND", test_actor_id)

        completed = [r for r in captured_logs() if r["message"] == "unit_of_work_completed"]
        assert len({r["correlation_id"] for r in completed}) == 2
        assert all(r["movement_count"] == 1 for r in completed)

    def test_rejection_is_logged_as_warning(
        self, ledger, catalog, tenant_id, test_actor_id, captured_logs
    ):
        item, wh = catalog.item(), catalog.warehouse()
        with pytest.raises(InsufficientStockError):
            ledger.adjust(tenant_id, wh, item, D("-1"), "LOST", test_actor_id)
        rejected = [r for r in captured_logs() if r["message"] == "unit_of_work_rejected"]
        assert rejected[0]["level"] == "WARNING"
        assert rejected[0]["error_code"] == "INSUFFICIENT_STOCK"


class TestOrchestratorContainer:
    def test_services_share_one_engine(self, session, deterministic_clock):
        container = LedgerOrchestrator(session, deterministic_clock)
        assert container.purchase_receipts._engine is container.engine
        assert container.transfers._engine is container.engine
        assert container.production._engine is container.engine

    def test_posted_movements_span_services(
        self, session, catalog, deterministic_clock, tenant_id, test_actor_id
    ):
        item, wh = catalog.item(), catalog.warehouse()
        order_id, _ = catalog.purchase_order([(item, 5, "1")])
        container = LedgerOrchestrator(session, deterministic_clock)

        container.purchase_receipts.receive(
            tenant_id, order_id, [ReceiptLine(item, wh, D("5"))], test_actor_id
        )
        container.adjustments.adjust(tenant_id, wh, item, D("-1"), "DAMAGED", test_actor_id)

        assert [p.new_quantity for p in container.engine.posted] == [D("5"), D("4")]
