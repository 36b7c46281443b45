"""
DTOs -- immutable results handed out of the kernel.

Responsibility:
    Callers outside a unit of work never see ORM entities: every operation
    returns these frozen dataclasses, built with ``from_model()`` at the
    service boundary while the session is still open.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` is only invoked
    from services and selectors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from inventory_kernel.domain.movement import (
    MovementDetail,
    MovementDirection,
    TransactionKind,
)
from inventory_kernel.domain.status import (
    ProductionBatchStatus,
    PurchaseOrderStatus,
    SaleOrderStatus,
)

if TYPE_CHECKING:
    from inventory_kernel.models.ledger import InventoryTransaction
    from inventory_kernel.models.production import ProductionBatch
    from inventory_kernel.models.stock import StockBalance


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """One posted ledger transaction."""

    id: int
    tenant_id: UUID
    kind: TransactionKind
    item_id: UUID
    warehouse_id: UUID
    quantity: Decimal
    balance_after: Decimal
    detail: MovementDetail
    actor_id: UUID
    occurred_at: datetime
    unit_cost: Decimal | None = None
    reference: str | None = None
    note: str | None = None

    @property
    def direction(self) -> MovementDirection:
        return MovementDirection.IN if self.quantity > 0 else MovementDirection.OUT

    @classmethod
    def from_model(cls, model: InventoryTransaction) -> TransactionRecord:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            kind=TransactionKind(model.kind),
            item_id=model.item_id,
            warehouse_id=model.warehouse_id,
            quantity=model.quantity,
            balance_after=model.balance_after,
            detail=model.detail,
            actor_id=model.actor_id,
            occurred_at=model.occurred_at,
            unit_cost=model.unit_cost,
            reference=model.reference,
            note=model.note,
        )


@dataclass(frozen=True, slots=True)
class PostedMovement:
    """A transaction together with the balance it moved from and to."""

    transaction: TransactionRecord
    old_quantity: Decimal
    new_quantity: Decimal


@dataclass(frozen=True, slots=True)
class StockBalanceInfo:
    tenant_id: UUID
    warehouse_id: UUID
    item_id: UUID
    quantity: Decimal
    reserved: Decimal
    version: int

    @property
    def available(self) -> Decimal:
        return self.quantity - self.reserved

    @classmethod
    def from_model(cls, model: StockBalance) -> StockBalanceInfo:
        return cls(
            tenant_id=model.tenant_id,
            warehouse_id=model.warehouse_id,
            item_id=model.item_id,
            quantity=model.quantity,
            reserved=model.reserved,
            version=model.version,
        )


@dataclass(frozen=True, slots=True)
class ReceiptLine:
    """
    One line of a purchase receipt.

    ``order_line_id`` disambiguates when the order has several lines for the
    same item; otherwise the line is matched by item.
    """

    item_id: UUID
    warehouse_id: UUID
    quantity: Decimal
    order_line_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class ShipmentLine:
    """One line of a sale shipment. ``unit_cost`` defaults to the item cost."""

    item_id: UUID
    warehouse_id: UUID
    quantity: Decimal
    unit_cost: Decimal | None = None
    reserved_quantity: Decimal = Decimal("0")
    order_line_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class ReceiptResult:
    purchase_order_id: UUID
    status: PurchaseOrderStatus
    transactions: tuple[TransactionRecord, ...]


@dataclass(frozen=True, slots=True)
class FulfillmentResult:
    sale_order_id: UUID
    status: SaleOrderStatus
    transactions: tuple[TransactionRecord, ...]


@dataclass(frozen=True, slots=True)
class ProductionBatchInfo:
    id: UUID
    tenant_id: UUID
    recipe_id: UUID
    warehouse_id: UUID
    batch_ref: str
    quantity: Decimal
    unit_cost: Decimal | None
    status: ProductionBatchStatus
    started_at: datetime
    finished_at: datetime | None

    @classmethod
    def from_model(cls, model: ProductionBatch) -> ProductionBatchInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            recipe_id=model.recipe_id,
            warehouse_id=model.warehouse_id,
            batch_ref=model.batch_ref,
            quantity=model.quantity,
            unit_cost=model.unit_cost,
            status=ProductionBatchStatus(model.status),
            started_at=model.started_at,
            finished_at=model.finished_at,
        )


@dataclass(frozen=True, slots=True)
class ProductionResult:
    batch: ProductionBatchInfo
    transactions: tuple[TransactionRecord, ...]
    unit_cost: Decimal


@dataclass(frozen=True, slots=True)
class TransferResult:
    reference: str
    transactions: tuple[TransactionRecord, TransactionRecord]

    @property
    def outbound(self) -> TransactionRecord:
        return self.transactions[0]

    @property
    def inbound(self) -> TransactionRecord:
        return self.transactions[1]
