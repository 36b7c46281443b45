"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A rejected stock mutation has to tell its caller exactly what went wrong:
which line, which ingredient, which warehouse, how much was requested and how
much was available. Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        ledger.fulfill_sale(order_id, lines, actor_id=actor)
    except InsufficientStockError as e:
        api_response(code=e.code, requested=e.requested, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InventoryKernelError:

    InventoryKernelError (base)
    |
    +-- InvalidInputError
    |   +-- InvalidQuantityError
    |   +-- MissingIdentifierError
    |   +-- InvalidReasonCodeError
    |
    +-- NotFoundError
    |   +-- ItemNotFoundError
    |   +-- WarehouseNotFoundError
    |   +-- OrderNotFoundError
    |   +-- OrderLineNotFoundError
    |   +-- RecipeNotFoundError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- UnknownStockTargetError
    |   +-- ReleaseExceedsReservedError
    |
    +-- FulfillmentError
    |   +-- OverReceiptError
    |   +-- OverFulfillmentError
    |
    +-- ProductionError
    |   +-- InsufficientIngredientsError
    |   +-- EmptyRecipeError
    |
    +-- TransferError
    |   +-- SameWarehouseTransferError
    |
    +-- CrossTenantViolationError
    |
    +-- StatusError
    |   +-- InvalidStatusTransitionError
    |   +-- OrderNotOpenError
    |
    +-- ConcurrencyError                 (retryable)
    |   +-- OptimisticLockError
    |   +-- LockTimeoutError
    |   +-- DeadlockDetectedError
    |   +-- RetriesExhaustedError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | INVALID_QUANTITY            | Zero, negative or non-decimal quantity
                | MISSING_IDENTIFIER          | Required id absent
                | INVALID_REASON_CODE         | Unknown adjustment reason
----------------|-----------------------------|-----------------------------------------
Not found       | ITEM_NOT_FOUND              | Item id unknown
                | WAREHOUSE_NOT_FOUND         | Warehouse id unknown
                | ORDER_NOT_FOUND             | Purchase/sale order id unknown
                | ORDER_LINE_NOT_FOUND        | No line on the order for that item
                | RECIPE_NOT_FOUND            | Recipe id unknown
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Decrease would go below zero/available
                | UNKNOWN_STOCK_TARGET        | (warehouse, item) pair does not exist
                | RELEASE_EXCEEDS_RESERVED    | Releasing more than is reserved
----------------|-----------------------------|-----------------------------------------
Fulfillment     | OVER_RECEIPT                | Receipt exceeds ordered quantity
                | OVER_FULFILLMENT            | Shipment exceeds ordered quantity
----------------|-----------------------------|-----------------------------------------
Production      | INSUFFICIENT_INGREDIENTS    | One or more ingredients short
                | EMPTY_RECIPE                | Recipe has no ingredient lines
----------------|-----------------------------|-----------------------------------------
Transfer        | SAME_WAREHOUSE_TRANSFER     | Source equals destination
Tenant          | CROSS_TENANT_VIOLATION      | Entities of different tenants mixed
Status          | INVALID_STATUS_TRANSITION   | Transition not in the table
                | ORDER_NOT_OPEN              | Reserving against a closed sale order
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Row version changed underneath us
                | LOCK_TIMEOUT                | Row lock not acquired in time
                | DEADLOCK_DETECTED           | Database broke a lock cycle
                | RETRIES_EXHAUSTED           | Conflicts persisted past max retries
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of a ledger record

===============================================================================
"""

from decimal import Decimal
from typing import Any


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Input validation


class InvalidInputError(InventoryKernelError):
    """Base exception for requests rejected before any store access."""

    code: str = "INVALID_INPUT"


class InvalidQuantityError(InvalidInputError):
    """Quantity is zero, negative where disallowed, or not a decimal."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: Any, reason: str, line_index: int | None = None):
        self.quantity = quantity
        self.reason = reason
        self.line_index = line_index
        where = f" (line {line_index})" if line_index is not None else ""
        super().__init__(f"Invalid quantity {quantity!r}{where}: {reason}")


class MissingIdentifierError(InvalidInputError):
    """A required identifier was not supplied."""

    code: str = "MISSING_IDENTIFIER"

    def __init__(self, field_name: str, line_index: int | None = None):
        self.field_name = field_name
        self.line_index = line_index
        where = f" (line {line_index})" if line_index is not None else ""
        super().__init__(f"Missing required identifier: {field_name}{where}")


class InvalidReasonCodeError(InvalidInputError):
    code: str = "INVALID_REASON_CODE"

    def __init__(self, reason_code: Any, allowed: list[str]):
        self.reason_code = reason_code
        self.allowed = allowed
        super().__init__(
            f"Unknown adjustment reason {reason_code!r}; expected one of {allowed}"
        )


# Lookups


class NotFoundError(InventoryKernelError):
    """Base exception for unknown entities."""

    code: str = "NOT_FOUND"


class ItemNotFoundError(NotFoundError):
    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str, line_index: int | None = None):
        self.item_id = item_id
        self.line_index = line_index
        super().__init__(f"Item not found: {item_id}")


class WarehouseNotFoundError(NotFoundError):
    code: str = "WAREHOUSE_NOT_FOUND"

    def __init__(self, warehouse_id: str, line_index: int | None = None):
        self.warehouse_id = warehouse_id
        self.line_index = line_index
        super().__init__(f"Warehouse not found: {warehouse_id}")


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_type: str, order_id: str):
        self.order_type = order_type
        self.order_id = order_id
        super().__init__(f"{order_type} not found: {order_id}")


class OrderLineNotFoundError(NotFoundError):
    """The order has no line matching the requested item."""

    code: str = "ORDER_LINE_NOT_FOUND"

    def __init__(self, order_id: str, item_id: str, line_index: int):
        self.order_id = order_id
        self.item_id = item_id
        self.line_index = line_index
        super().__init__(
            f"Order {order_id} has no line for item {item_id} (line {line_index})"
        )


class RecipeNotFoundError(NotFoundError):
    code: str = "RECIPE_NOT_FOUND"

    def __init__(self, recipe_id: str):
        self.recipe_id = recipe_id
        super().__init__(f"Recipe not found: {recipe_id}")


# Stock


class StockError(InventoryKernelError):
    """Base exception for stock balance errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """
    A decrease would take the balance (or available stock) below zero.

    Carries the requested and available amounts so callers can report them.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        warehouse_id: str,
        requested: Decimal,
        available: Decimal,
        line_index: int | None = None,
    ):
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        self.requested = requested
        self.available = available
        self.line_index = line_index
        where = f" (line {line_index})" if line_index is not None else ""
        super().__init__(
            f"Insufficient stock of item {item_id} in warehouse {warehouse_id}"
            f"{where}: requested {requested}, available {available}"
        )


class UnknownStockTargetError(StockError):
    """The (warehouse, item) pair does not resolve to existing entities."""

    code: str = "UNKNOWN_STOCK_TARGET"

    def __init__(self, item_id: str, warehouse_id: str, reason: str):
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        self.reason = reason
        super().__init__(
            f"Unknown stock target item {item_id} / warehouse {warehouse_id}: {reason}"
        )


class ReleaseExceedsReservedError(StockError):
    code: str = "RELEASE_EXCEEDS_RESERVED"

    def __init__(
        self,
        item_id: str,
        warehouse_id: str,
        requested: Decimal,
        reserved: Decimal,
        line_index: int | None = None,
    ):
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        self.requested = requested
        self.reserved = reserved
        self.line_index = line_index
        super().__init__(
            f"Cannot release {requested} of item {item_id} in warehouse "
            f"{warehouse_id}: only {reserved} reserved"
        )


# Order fulfillment


class FulfillmentError(InventoryKernelError):
    """Base exception for order line bound violations."""

    code: str = "FULFILLMENT_ERROR"


class OverReceiptError(FulfillmentError):
    """A receipt would push received quantity past the ordered quantity."""

    code: str = "OVER_RECEIPT"

    def __init__(
        self,
        order_id: str,
        line_index: int,
        item_id: str,
        ordered: Decimal,
        already_received: Decimal,
        requested: Decimal,
    ):
        self.order_id = order_id
        self.line_index = line_index
        self.item_id = item_id
        self.ordered = ordered
        self.already_received = already_received
        self.requested = requested
        self.remaining = ordered - already_received
        super().__init__(
            f"Over-receipt on purchase order {order_id} line {line_index} "
            f"(item {item_id}): requested {requested}, remaining {self.remaining}"
        )


class OverFulfillmentError(FulfillmentError):
    """A shipment would push fulfilled quantity past the ordered quantity."""

    code: str = "OVER_FULFILLMENT"

    def __init__(
        self,
        order_id: str,
        line_index: int,
        item_id: str,
        ordered: Decimal,
        already_fulfilled: Decimal,
        requested: Decimal,
    ):
        self.order_id = order_id
        self.line_index = line_index
        self.item_id = item_id
        self.ordered = ordered
        self.already_fulfilled = already_fulfilled
        self.requested = requested
        self.remaining = ordered - already_fulfilled
        super().__init__(
            f"Over-fulfillment on sale order {order_id} line {line_index} "
            f"(item {item_id}): requested {requested}, remaining {self.remaining}"
        )


# Production


class ProductionError(InventoryKernelError):
    code: str = "PRODUCTION_ERROR"


class InsufficientIngredientsError(ProductionError):
    """
    One or more ingredients cannot cover the batch.

    ``shortages`` lists every short ingredient, not only the first, as
    dicts of item_id, required, available and shortfall.
    """

    code: str = "INSUFFICIENT_INGREDIENTS"

    def __init__(self, recipe_id: str, warehouse_id: str, shortages: list[dict]):
        self.recipe_id = recipe_id
        self.warehouse_id = warehouse_id
        self.shortages = shortages
        items = ", ".join(
            f"{s['item_id']} (required {s['required']}, available {s['available']})"
            for s in shortages
        )
        super().__init__(
            f"Insufficient ingredients for recipe {recipe_id} in warehouse "
            f"{warehouse_id}: {items}"
        )


class EmptyRecipeError(ProductionError):
    code: str = "EMPTY_RECIPE"

    def __init__(self, recipe_id: str):
        self.recipe_id = recipe_id
        super().__init__(f"Recipe {recipe_id} has no ingredient lines")


# Transfer


class TransferError(InventoryKernelError):
    code: str = "TRANSFER_ERROR"


class SameWarehouseTransferError(TransferError):
    code: str = "SAME_WAREHOUSE_TRANSFER"

    def __init__(self, warehouse_id: str):
        self.warehouse_id = warehouse_id
        super().__init__(
            f"Source and destination warehouse are the same: {warehouse_id}"
        )


# Tenancy


class CrossTenantViolationError(InventoryKernelError):
    """Entities belonging to different tenants were referenced together."""

    code: str = "CROSS_TENANT_VIOLATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_tenant_id: str,
        actual_tenant_id: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_tenant_id = expected_tenant_id
        self.actual_tenant_id = actual_tenant_id
        super().__init__(
            f"{entity_type} {entity_id} belongs to tenant {actual_tenant_id}, "
            f"expected {expected_tenant_id}"
        )


# Status


class StatusError(InventoryKernelError):
    code: str = "STATUS_ERROR"


class InvalidStatusTransitionError(StatusError):
    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(
        self, entity_type: str, entity_id: str, from_status: str, to_status: str
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status transition for {entity_type} {entity_id}: "
            f"{from_status} -> {to_status}"
        )


class OrderNotOpenError(StatusError):
    """Stock can only be reserved for a sale order that can still ship."""

    code: str = "ORDER_NOT_OPEN"

    def __init__(self, order_type: str, order_id: str, status: str):
        self.order_type = order_type
        self.order_id = order_id
        self.status = status
        super().__init__(f"{order_type} {order_id} is {status}; nothing can be reserved for it")


# Concurrency


class ConcurrencyError(InventoryKernelError):
    """Base exception for contention on stock rows. Retryable."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class LockTimeoutError(ConcurrencyError):
    """A row lock could not be acquired within the configured timeout."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, timeout_ms: int, detail: str):
        self.timeout_ms = timeout_ms
        self.detail = detail
        super().__init__(f"Lock not acquired within {timeout_ms}ms: {detail}")


class DeadlockDetectedError(ConcurrencyError):
    """The database aborted this transaction to break a lock cycle."""

    code: str = "DEADLOCK_DETECTED"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Deadlock detected: {detail}")


class RetriesExhaustedError(ConcurrencyError):
    code: str = "RETRIES_EXHAUSTED"

    def __init__(self, operation: str, attempts: int, last_error_code: str):
        self.operation = operation
        self.attempts = attempts
        self.last_error_code = last_error_code
        super().__init__(
            f"{operation} failed after {attempts} attempts "
            f"(last error: {last_error_code})"
        )


# Immutability


class ImmutabilityError(InventoryKernelError):
    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only ledger record.

    InventoryTransaction, StockMovement and ReservationEntry are immutable
    after creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
