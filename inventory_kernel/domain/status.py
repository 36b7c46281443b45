"""
Status -- explicit state machines for orders and production batches.

Responsibility:
    Status is derived from line-level progress and moved only along the
    transitions listed here.  Anything else raises
    InvalidStatusTransitionError instead of silently overwriting.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Iterable

from inventory_kernel.exceptions import InvalidStatusTransitionError


class PurchaseOrderStatus(str, Enum):
    PENDING = "PENDING"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


class SaleOrderStatus(str, Enum):
    PENDING = "PENDING"
    PARTIALLY_FULFILLED = "PARTIALLY_FULFILLED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ProductionBatchStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


PURCHASE_ORDER_TRANSITIONS: dict[PurchaseOrderStatus, frozenset[PurchaseOrderStatus]] = {
    PurchaseOrderStatus.PENDING: frozenset({
        PurchaseOrderStatus.PARTIALLY_RECEIVED,
        PurchaseOrderStatus.RECEIVED,
        PurchaseOrderStatus.CANCELLED,
    }),
    PurchaseOrderStatus.PARTIALLY_RECEIVED: frozenset({
        PurchaseOrderStatus.RECEIVED,
        PurchaseOrderStatus.CANCELLED,
    }),
    PurchaseOrderStatus.RECEIVED: frozenset(),
    PurchaseOrderStatus.CANCELLED: frozenset(),
}

SALE_ORDER_TRANSITIONS: dict[SaleOrderStatus, frozenset[SaleOrderStatus]] = {
    SaleOrderStatus.PENDING: frozenset({
        SaleOrderStatus.PARTIALLY_FULFILLED,
        SaleOrderStatus.COMPLETED,
        SaleOrderStatus.CANCELLED,
    }),
    SaleOrderStatus.PARTIALLY_FULFILLED: frozenset({
        SaleOrderStatus.COMPLETED,
        SaleOrderStatus.CANCELLED,
    }),
    SaleOrderStatus.COMPLETED: frozenset(),
    SaleOrderStatus.CANCELLED: frozenset(),
}

PRODUCTION_BATCH_TRANSITIONS: dict[ProductionBatchStatus, frozenset[ProductionBatchStatus]] = {
    ProductionBatchStatus.RUNNING: frozenset({ProductionBatchStatus.COMPLETED}),
    ProductionBatchStatus.COMPLETED: frozenset(),
}

_TABLES = {
    PurchaseOrderStatus: PURCHASE_ORDER_TRANSITIONS,
    SaleOrderStatus: SALE_ORDER_TRANSITIONS,
    ProductionBatchStatus: PRODUCTION_BATCH_TRANSITIONS,
}


def can_transition(current: Enum, target: Enum) -> bool:
    """Staying put is not a transition and is always allowed."""
    if current == target:
        return True
    return target in _TABLES[type(current)].get(current, frozenset())


def validate_transition(
    entity_type: str, entity_id, current: Enum, target: Enum
) -> None:
    """
    Raise unless ``current -> target`` is in the transition table.

    Raises:
        InvalidStatusTransitionError: If the move is not allowed.
    """
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(
            entity_type=entity_type,
            entity_id=str(entity_id),
            from_status=current.value,
            to_status=target.value,
        )


def is_terminal(status: Enum) -> bool:
    return not _TABLES[type(status)].get(status)


def derive_purchase_order_status(
    current: PurchaseOrderStatus,
    lines: Iterable[tuple[Decimal, Decimal]],
) -> PurchaseOrderStatus:
    """
    Status implied by ``(ordered, received)`` pairs.

    RECEIVED iff every line is complete; PARTIALLY_RECEIVED if anything has
    been received; otherwise unchanged.
    """
    lines = list(lines)
    if lines and all(received == ordered for ordered, received in lines):
        return PurchaseOrderStatus.RECEIVED
    if any(received > 0 for _, received in lines):
        return PurchaseOrderStatus.PARTIALLY_RECEIVED
    return current


def derive_sale_order_status(
    current: SaleOrderStatus,
    lines: Iterable[tuple[Decimal, Decimal]],
) -> SaleOrderStatus:
    """Same rule as purchases, over ``(ordered, fulfilled)`` pairs."""
    lines = list(lines)
    if lines and all(fulfilled == ordered for ordered, fulfilled in lines):
        return SaleOrderStatus.COMPLETED
    if any(fulfilled > 0 for _, fulfilled in lines):
        return SaleOrderStatus.PARTIALLY_FULFILLED
    return current
