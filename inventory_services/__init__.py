"""
inventory_services -- orchestration over the inventory kernel.

Processors translate business events (receipts, shipments, production runs,
transfers, adjustments, reservations, cancellations) into LedgerEngine
calls.  ``InventoryLedger`` is the composition root; everything else is
built per unit of work by ``LedgerOrchestrator``.
"""

from inventory_services.inventory_ledger import InventoryLedger
from inventory_services.orchestrator import LedgerOrchestrator
from inventory_services.stock_events import (
    STOCK_UPDATED_TOPIC,
    LoggingStockEventPublisher,
    RecordingStockEventPublisher,
    StockChangedEvent,
    StockEventDispatcher,
    StockEventPublisher,
)
from inventory_services.unit_of_work import LedgerTransactionRunner

__all__ = [
    "InventoryLedger",
    "LedgerOrchestrator",
    "LedgerTransactionRunner",
    "STOCK_UPDATED_TOPIC",
    "LoggingStockEventPublisher",
    "RecordingStockEventPublisher",
    "StockChangedEvent",
    "StockEventDispatcher",
    "StockEventPublisher",
]
