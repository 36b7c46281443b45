"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The ledger reconciles only if its history never changes: the sum of signed
transaction quantities for a (warehouse, item) must equal the balance, and
replaying the log must reproduce it.  Corrections are new ADJUSTMENT
transactions, never edits.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through SQLAlchemy sessions
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL triggers)
    - Catches raw SQL and bulk statements

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                | When Immutable | Operations blocked
----------------------|----------------|--------------------
InventoryTransaction  | ALWAYS         | UPDATE, DELETE
StockMovement         | ALWAYS         | UPDATE, DELETE
ReservationEntry      | ALWAYS         | UPDATE, DELETE
"""

from sqlalchemy import event

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.invariants import LedgerInvariant
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(operation: str):
    """Build a mapper listener that rejects ``operation`` on any target."""

    def _listener(mapper, connection, target):
        entity_type = type(target).__name__
        logger.error(
            "immutability_violation_blocked",
            extra={
                "invariant": LedgerInvariant.APPEND_ONLY,
                "entity_type": entity_type,
                "entity_id": str(target.id),
                "db_operation": operation,
            },
        )
        raise ImmutabilityViolationError(
            entity_type=entity_type,
            entity_id=str(target.id),
            reason=f"{entity_type} rows are append-only ({operation} rejected)",
        )

    _listener.__name__ = f"_block_{operation.lower()}"
    return _listener


_check_update = _block("UPDATE")
_check_delete = _block("DELETE")


def _protected_models():
    from inventory_kernel.models.ledger import (
        InventoryTransaction,
        ReservationEntry,
        StockMovement,
    )

    return (InventoryTransaction, StockMovement, ReservationEntry)


def register_immutability_listeners() -> None:
    """
    Register the append-only listeners.  Safe to call more than once.
    """
    for model in _protected_models():
        if not event.contains(model, "before_update", _check_update):
            event.listen(model, "before_update", _check_update)
        if not event.contains(model, "before_delete", _check_delete):
            event.listen(model, "before_delete", _check_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the listeners.

    WARNING: Only use this in tests that deliberately tamper with the log to
    verify that reconciliation detects it.
    """
    for model in _protected_models():
        _safe_remove_listener(model, "before_update", _check_update)
        _safe_remove_listener(model, "before_delete", _check_delete)
