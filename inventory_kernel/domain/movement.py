"""
Movement -- tagged variants describing one stock movement.

Responsibility:
    Each variant carries only the fields relevant to its business event and
    fixes the transaction kind and direction.  The LedgerEngine never reads
    a sign from its caller: direction comes from the variant.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

    Variant              Kind        Direction
    -------------------- ----------- ---------------------
    PurchaseReceipt      PURCHASE    IN
    ProductionOutput     PURCHASE    IN
    SaleShipment         SALE        OUT
    IngredientUsage      USAGE       OUT
    TransferLeg          TRANSFER    carried (OUT at source, IN at destination)
    StockAdjustment      ADJUSTMENT  carried (manual correction)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Union
from uuid import UUID


class TransactionKind(str, Enum):
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"
    USAGE = "USAGE"


class MovementDirection(str, Enum):
    IN = "IN"
    OUT = "OUT"

    @property
    def sign(self) -> int:
        return 1 if self is MovementDirection.IN else -1


class AdjustmentReason(str, Enum):
    """Why a manual correction was made."""

    COUNT_CORRECTION = "COUNT_CORRECTION"
    DAMAGED = "DAMAGED"
    LOST = "LOST"
    FOUND = "FOUND"
    EXPIRED = "EXPIRED"
    OPENING_BALANCE = "OPENING_BALANCE"
    OTHER = "OTHER"


@dataclass(frozen=True, slots=True)
class PurchaseReceipt:
    """Goods received against a purchase order line."""

    purchase_order_id: UUID
    purchase_order_line_id: UUID

    kind: ClassVar[TransactionKind] = TransactionKind.PURCHASE
    direction: ClassVar[MovementDirection] = MovementDirection.IN
    detail_type: ClassVar[str] = "PURCHASE_RECEIPT"


@dataclass(frozen=True, slots=True)
class SaleShipment:
    """
    Goods shipped against a sale order line.

    ``reserved_quantity`` is the part of the shipment previously reserved for
    the order; it is drawn from the balance's reserved amount first.
    """

    sale_order_id: UUID
    sale_order_line_id: UUID
    reserved_quantity: Decimal = Decimal("0")

    kind: ClassVar[TransactionKind] = TransactionKind.SALE
    direction: ClassVar[MovementDirection] = MovementDirection.OUT
    detail_type: ClassVar[str] = "SALE_SHIPMENT"


@dataclass(frozen=True, slots=True)
class TransferLeg:
    """One side of a warehouse-to-warehouse transfer."""

    direction: MovementDirection
    counterpart_warehouse_id: UUID

    kind: ClassVar[TransactionKind] = TransactionKind.TRANSFER
    detail_type: ClassVar[str] = "TRANSFER_LEG"


@dataclass(frozen=True, slots=True)
class StockAdjustment:
    """Manual correction; the only variant whose direction is caller-chosen."""

    direction: MovementDirection
    reason: AdjustmentReason

    kind: ClassVar[TransactionKind] = TransactionKind.ADJUSTMENT
    detail_type: ClassVar[str] = "STOCK_ADJUSTMENT"


@dataclass(frozen=True, slots=True)
class IngredientUsage:
    production_batch_id: UUID

    kind: ClassVar[TransactionKind] = TransactionKind.USAGE
    direction: ClassVar[MovementDirection] = MovementDirection.OUT
    detail_type: ClassVar[str] = "INGREDIENT_USAGE"


@dataclass(frozen=True, slots=True)
class ProductionOutput:
    """Finished goods from a production batch, posted as a PURCHASE increase."""

    production_batch_id: UUID

    kind: ClassVar[TransactionKind] = TransactionKind.PURCHASE
    direction: ClassVar[MovementDirection] = MovementDirection.IN
    detail_type: ClassVar[str] = "PRODUCTION_OUTPUT"


MovementDetail = Union[
    PurchaseReceipt,
    SaleShipment,
    TransferLeg,
    StockAdjustment,
    IngredientUsage,
    ProductionOutput,
]

DETAIL_TYPES: dict[str, type] = {
    cls.detail_type: cls
    for cls in (
        PurchaseReceipt,
        SaleShipment,
        TransferLeg,
        StockAdjustment,
        IngredientUsage,
        ProductionOutput,
    )
}


@dataclass(frozen=True, slots=True)
class MovementRequest:
    """
    Input to LedgerEngine.apply_movement.

    ``quantity`` is a magnitude: its sign is ignored and the direction is
    taken from ``detail``.
    """

    tenant_id: UUID
    item_id: UUID
    warehouse_id: UUID
    quantity: Decimal
    detail: MovementDetail
    actor_id: UUID
    reference: str | None = None
    unit_cost: Decimal | None = None
    note: str | None = None

    @property
    def kind(self) -> TransactionKind:
        return self.detail.kind

    @property
    def direction(self) -> MovementDirection:
        return self.detail.direction
