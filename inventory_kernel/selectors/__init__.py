"""Read-only selectors over balances and the ledger logs."""

from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.ledger_selector import (
    LedgerSelector,
    MovementRecord,
    ReconciliationResult,
)
from inventory_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "BaseSelector",
    "LedgerSelector",
    "MovementRecord",
    "ReconciliationResult",
    "StockSelector",
]
