"""
Ledger Invariants Contract.

These invariants hold after every committed unit of work, including failed
ones.  Callers cannot opt out: the LedgerEngine, the immutability layer and
the orchestrators enforce them, and log events name the invariant they
protect.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Structural guarantees of the inventory ledger."""

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """StockBalance.quantity >= 0 and reserved <= quantity after every
    movement. Enforced by LedgerEngine before any write."""

    LEDGER_RECONCILES = "ledger_reconciles"
    """Sum of signed transaction quantities per (warehouse, item) equals the
    balance. Enforced by writing balance, transaction and movement in one
    flush inside one database transaction."""

    RECEIPT_BOUNDED = "receipt_bounded"
    """PurchaseOrderLine.received_quantity <= ordered_quantity (and the same
    for sale lines). Enforced by the fulfillment processors."""

    TRANSFER_ZERO_SUM = "transfer_zero_sum"
    """Both legs of a transfer share one reference and sum to zero.
    Enforced by TransferCoordinator inside one unit of work."""

    APPEND_ONLY = "append_only"
    """Transactions, movements and reservation entries are never updated or
    deleted. Enforced by db/immutability.py and db/triggers.py."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "inventory_services",
    "inventory_config",
)
