"""
InventoryLedger -- the public entry point of the ledger subsystem.

Responsibility:
    Owns the engine, session factory, event dispatcher and unit-of-work
    runner, and exposes one method per ledger operation.  Each write method
    is one atomic, retried unit of work that returns frozen DTOs; each read
    method opens a short read-only session.

Architecture position:
    Services -- the composition root.  HTTP controllers (out of scope) call
    these methods and map the typed kernel errors onto responses.

Usage:
    ledger = InventoryLedger.from_settings(get_settings())
    ledger.receive_purchase(tenant_id, po_id, [ReceiptLine(...)], actor_id=user)
    ledger.close()
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from inventory_config.settings import LedgerSettings
from inventory_kernel.db.engine import (
    create_tables,
    init_engine_from_url,
    make_session_factory,
)
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.db.types import COST_DECIMAL_PLACES
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    FulfillmentResult,
    ProductionResult,
    ReceiptLine,
    ReceiptResult,
    ShipmentLine,
    StockBalanceInfo,
    TransactionRecord,
    TransferResult,
)
from inventory_kernel.domain.movement import AdjustmentReason
from inventory_kernel.domain.status import PurchaseOrderStatus, SaleOrderStatus
from inventory_kernel.logging_config import configure_logging, get_logger
from inventory_kernel.selectors.ledger_selector import LedgerSelector, ReconciliationResult
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_services.stock_events import (
    LoggingStockEventPublisher,
    StockEventDispatcher,
    StockEventPublisher,
)
from inventory_services.unit_of_work import LedgerTransactionRunner

logger = get_logger("services.inventory_ledger")


class InventoryLedger:
    """
    Contract:
        Every write either commits completely or leaves the store exactly
        as it was, and raises a typed InventoryKernelError on rejection.

    Guarantees:
        - No balance is cached between calls; every read goes to the store.
        - Stock-changed events are published after commit, never inside it.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        lock_timeout_ms: int = 5000,
        max_retries: int = 3,
        retry_backoff_ms: int = 20,
        cost_decimal_places: int = COST_DECIMAL_PLACES,
        publisher: StockEventPublisher | None = None,
        publisher_max_workers: int = 2,
        engine: Engine | None = None,
    ):
        self._session_factory = session_factory
        self._engine = engine
        self.clock = clock or SystemClock()
        self.dispatcher = (
            StockEventDispatcher(publisher, max_workers=publisher_max_workers)
            if publisher is not None
            else None
        )
        self.runner = LedgerTransactionRunner(
            session_factory,
            clock=self.clock,
            lock_timeout_ms=lock_timeout_ms,
            max_retries=max_retries,
            retry_backoff_ms=retry_backoff_ms,
            cost_decimal_places=cost_decimal_places,
            dispatcher=self.dispatcher,
        )
        register_immutability_listeners()

    @classmethod
    def from_settings(
        cls,
        settings: LedgerSettings,
        publisher: StockEventPublisher | None = None,
        clock: Clock | None = None,
        create_schema: bool = False,
    ) -> InventoryLedger:
        """Build engine, schema (optionally) and ledger from settings."""
        configure_logging(level=settings.log_level.upper())
        engine = init_engine_from_url(
            settings.database_url,
            echo=settings.echo,
            pool_size=settings.pool_size,
            busy_timeout_seconds=settings.lock_timeout_ms / 1000,
        )
        if create_schema:
            create_tables(engine)
        if publisher is None and settings.publish_events:
            publisher = LoggingStockEventPublisher()
        return cls(
            make_session_factory(engine),
            clock=clock,
            lock_timeout_ms=settings.lock_timeout_ms,
            max_retries=settings.max_retries,
            retry_backoff_ms=settings.retry_backoff_ms,
            cost_decimal_places=settings.cost_decimal_places,
            publisher=publisher if settings.publish_events else None,
            publisher_max_workers=settings.publisher_max_workers,
            engine=engine,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def receive_purchase(
        self,
        tenant_id: UUID,
        purchase_order_id: UUID,
        lines: Sequence[ReceiptLine],
        actor_id: UUID,
    ) -> ReceiptResult:
        return self.runner.run(
            "receive_purchase",
            lambda c: c.purchase_receipts.receive(tenant_id, purchase_order_id, lines, actor_id),
            tenant_id=tenant_id,
            actor_id=actor_id,
        )

    def fulfill_sale(
        self,
        tenant_id: UUID,
        sale_order_id: UUID,
        lines: Sequence[ShipmentLine],
        actor_id: UUID,
    ) -> FulfillmentResult:
        return self.runner.run(
            "fulfill_sale",
            lambda c: c.sale_fulfillment.fulfill(tenant_id, sale_order_id, lines, actor_id),
            tenant_id=tenant_id,
            actor_id=actor_id,
        )

    def produce(
        self,
        tenant_id: UUID,
        recipe_id: UUID,
        batch_quantity: Decimal,
        warehouse_id: UUID,
        actor_id: UUID,
    ) -> ProductionResult:
        return self.runner.run(
            "produce",
            lambda c: c.production.produce(
                tenant_id, recipe_id, batch_quantity, warehouse_id, actor_id
            ),
            tenant_id=tenant_id,
            actor_id=actor_id,
        )

    def transfer(
        self,
        tenant_id: UUID,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        note: str | None = None,
    ) -> TransferResult:
        return self.runner.run(
            "transfer",
            lambda c: c.transfers.transfer(
                tenant_id, from_warehouse_id, to_warehouse_id, item_id,
                quantity, actor_id, note,
            ),
            tenant_id=tenant_id,
            actor_id=actor_id,
        )

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
        return self.runner.run(
            "adjust",
            lambda c: c.adjustments.adjust(
                tenant_id, warehouse_id, item_id, signed_quantity,
                reason_code, actor_id, note,
            ),
            tenant_id=tenant_id,
            actor_id=actor_id,
        )

    def reserve(
        self,
        tenant_id: UUID,
        warehouse_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        sale_order_id: UUID | None = None,
    ) -> StockBalanceInfo:
        return self.runner.run(
            "reserve",
            lambda c: c.reservations.reserve(
                tenant_id, warehouse_id, item_id, quantity, actor_id, sale_order_id
            ),
            tenant_id=tenant_id,
            actor_id=actor_id,
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
        return self.runner.run(
            "release",
            lambda c: c.reservations.release(
                tenant_id, warehouse_id, item_id, quantity, actor_id, sale_order_id
            ),
            tenant_id=tenant_id,
            actor_id=actor_id,
        )

    def cancel_purchase_order(
        self, tenant_id: UUID, purchase_order_id: UUID, actor_id: UUID
    ) -> PurchaseOrderStatus:
        return self.runner.run(
            "cancel_purchase_order",
            lambda c: c.orders.cancel_purchase_order(tenant_id, purchase_order_id, actor_id),
            tenant_id=tenant_id,
            actor_id=actor_id,
        )

    def cancel_sale_order(
        self, tenant_id: UUID, sale_order_id: UUID, actor_id: UUID
    ) -> SaleOrderStatus:
        return self.runner.run(
            "cancel_sale_order",
            lambda c: c.orders.cancel_sale_order(tenant_id, sale_order_id, actor_id),
            tenant_id=tenant_id,
            actor_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, warehouse_id: UUID, item_id: UUID) -> StockBalanceInfo | None:
        with self._session_factory() as session:
            return StockSelector(session).get_balance(warehouse_id, item_id)

    def available(self, warehouse_id: UUID, item_id: UUID) -> Decimal:
        with self._session_factory() as session:
            return StockSelector(session).available(warehouse_id, item_id)

    def transactions_for(self, warehouse_id: UUID, item_id: UUID) -> list[TransactionRecord]:
        with self._session_factory() as session:
            return LedgerSelector(session).transactions_for(warehouse_id, item_id)

    def transactions_by_reference(self, tenant_id: UUID, reference: str) -> list[TransactionRecord]:
        with self._session_factory() as session:
            return LedgerSelector(session).transactions_by_reference(tenant_id, reference)

    def replay_balance(self, warehouse_id: UUID, item_id: UUID) -> Decimal:
        with self._session_factory() as session:
            return LedgerSelector(session).replay_balance(warehouse_id, item_id)

    def reconcile(self, tenant_id: UUID | None = None) -> list[ReconciliationResult]:
        with self._session_factory() as session:
            return LedgerSelector(session).reconcile(tenant_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def drain_events(self, timeout: float | None = 10.0) -> None:
        if self.dispatcher is not None:
            self.dispatcher.drain(timeout)

    def close(self) -> None:
        """Flush pending events, stop the publisher pool, dispose the engine."""
        if self.dispatcher is not None:
            self.dispatcher.drain()
            self.dispatcher.shutdown()
        if self._engine is not None:
            self._engine.dispose()
        logger.info("inventory_ledger_closed")
