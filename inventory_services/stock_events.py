"""
Stock-changed event publication.

Emitted after a unit of work commits, one event per posted movement.
Publication is fire-and-forget: it runs on a small thread pool, is never
awaited inside the transaction boundary, and a failing publisher is logged
and dropped without touching the committed stock change.

Usage:
    dispatcher = StockEventDispatcher(LoggingStockEventPublisher())
    dispatcher.dispatch(posted_movements)   # after commit
    dispatcher.drain()                      # shutdown / tests
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Protocol
from uuid import UUID

from inventory_kernel.domain.dtos import PostedMovement
from inventory_kernel.domain.movement import TransactionKind
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.stock_events")

STOCK_UPDATED_TOPIC = "inventory.stock.updated"


@dataclass(frozen=True, slots=True)
class StockChangedEvent:
    tenant_id: UUID
    item_id: UUID
    warehouse_id: UUID
    old_quantity: Decimal
    new_quantity: Decimal
    transaction_kind: TransactionKind
    transaction_id: int
    timestamp: datetime

    @classmethod
    def from_posted(cls, posted: PostedMovement) -> StockChangedEvent:
        txn = posted.transaction
        return cls(
            tenant_id=txn.tenant_id,
            item_id=txn.item_id,
            warehouse_id=txn.warehouse_id,
            old_quantity=posted.old_quantity,
            new_quantity=posted.new_quantity,
            transaction_kind=txn.kind,
            transaction_id=txn.id,
            timestamp=txn.occurred_at,
        )

    def to_payload(self) -> dict[str, Any]:
        """Wire form: camelCase keys, decimals and ids as strings."""
        return {
            "tenantId": str(self.tenant_id),
            "itemId": str(self.item_id),
            "warehouseId": str(self.warehouse_id),
            "oldQuantity": str(self.old_quantity),
            "newQuantity": str(self.new_quantity),
            "transactionKind": self.transaction_kind.value,
            "transactionId": self.transaction_id,
            "timestamp": self.timestamp.isoformat(),
        }


class StockEventPublisher(Protocol):
    """Integration collaborator (message bus, webhook, ...)."""

    def publish(self, topic: str, event: StockChangedEvent) -> None: ...


class LoggingStockEventPublisher:
    """Default publisher: one structured log line per event."""

    def publish(self, topic: str, event: StockChangedEvent) -> None:
        logger.info("stock_event_published", extra={"topic": topic, **event.to_payload()})


class RecordingStockEventPublisher:
    """Keeps published events in memory; for tests and embedding."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[tuple[str, StockChangedEvent]] = []

    def publish(self, topic: str, event: StockChangedEvent) -> None:
        with self._lock:
            self._events.append((topic, event))

    @property
    def events(self) -> list[StockChangedEvent]:
        with self._lock:
            return [e for _, e in self._events]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class StockEventDispatcher:
    """
    Hands committed movements to a publisher on a background pool.

    Guarantees:
        - ``dispatch`` never raises because of the publisher and never blocks
          on it.
        - Events of one unit of work are published in posting order.
    """

    def __init__(
        self,
        publisher: StockEventPublisher,
        max_workers: int = 2,
        topic: str = STOCK_UPDATED_TOPIC,
    ) -> None:
        self._publisher = publisher
        self._topic = topic
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="stock-events"
        )
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def dispatch(self, posted: Iterable[PostedMovement]) -> None:
        events = [StockChangedEvent.from_posted(p) for p in posted]
        if not events:
            return
        future = self._executor.submit(self._publish_all, events)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _publish_all(self, events: list[StockChangedEvent]) -> None:
        for event in events:
            try:
                self._publisher.publish(self._topic, event)
            except Exception:
                logger.error(
                    "stock_event_publish_failed",
                    extra={
                        "topic": self._topic,
                        "transaction_id": event.transaction_id,
                        "item_id": str(event.item_id),
                        "warehouse_id": str(event.warehouse_id),
                    },
                    exc_info=True,
                )

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def drain(self, timeout: float | None = 10.0) -> None:
        """Wait for in-flight publications to finish."""
        with self._lock:
            pending = set(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
