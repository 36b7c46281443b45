"""
Inventory Kernel

The consistency boundary of the inventory ledger:
- Stock balances mutated by a single writer (the LedgerEngine)
- Append-only transaction and movement logs
- Row locking plus optimistic versioning on balances
- Typed errors and structured logging
"""

__version__ = "0.1.0"
