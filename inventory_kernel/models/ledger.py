"""
Module: inventory_kernel.models.ledger
Responsibility: The append-only ledger logs.
    - InventoryTransaction: one immutable record per stock movement, carrying
      the signed quantity and the balance it produced.
    - StockMovement: the directional (IN/OUT) view of a transaction, written
      in the same flush as its transaction.
    - ReservationEntry: every change to a balance's reserved quantity.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py listeners, plus
      PostgreSQL triggers from db/triggers.py).
    - Identity is an auto-increment integer plus tenant_id, so replay order
      is the insertion order.
    - Summing ``quantity`` over a (warehouse, item) reproduces the balance.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, Enum as SAEnum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base
from inventory_kernel.domain.movement import (
    DETAIL_TYPES,
    AdjustmentReason,
    IngredientUsage,
    MovementDetail,
    MovementDirection,
    ProductionOutput,
    PurchaseReceipt,
    SaleShipment,
    StockAdjustment,
    TransactionKind,
    TransferLeg,
)

# BIGINT identity on PostgreSQL; SQLite only auto-increments INTEGER PRIMARY KEY.
_IDENTITY = BigInteger().with_variant(Integer, "sqlite")


class InventoryTransaction(Base):
    """
    Immutable record of one stock movement.

    ``quantity`` is signed (positive in, negative out).  The link columns
    are populated according to ``detail_type``; ``detail`` rebuilds the
    tagged variant from them.
    """

    __tablename__ = "inventory_transactions"

    __table_args__ = (
        Index("idx_txn_stock_key", "warehouse_id", "item_id", "id"),
        Index("idx_txn_tenant", "tenant_id", "id"),
        Index("idx_txn_reference", "reference"),
        Index("idx_txn_purchase_order", "purchase_order_id"),
        Index("idx_txn_sale_order", "sale_order_id"),
        Index("idx_txn_batch", "production_batch_id"),
    )

    id: Mapped[int] = mapped_column(_IDENTITY, primary_key=True, autoincrement=True)
    tenant_id: Mapped[UUID]
    kind: Mapped[TransactionKind] = mapped_column(
        SAEnum(TransactionKind, native_enum=False, length=20)
    )
    detail_type: Mapped[str] = mapped_column(String(30))
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"))
    stock_balance_id: Mapped[UUID] = mapped_column(ForeignKey("stock_balances.id"))
    quantity: Mapped[Decimal]
    balance_after: Mapped[Decimal]
    unit_cost: Mapped[Decimal | None]
    reference: Mapped[str | None] = mapped_column(String(100))

    purchase_order_id: Mapped[UUID | None] = mapped_column(ForeignKey("purchase_orders.id"))
    purchase_order_line_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_order_lines.id")
    )
    sale_order_id: Mapped[UUID | None] = mapped_column(ForeignKey("sale_orders.id"))
    sale_order_line_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("sale_order_lines.id")
    )
    production_batch_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("production_batches.id")
    )
    counterpart_warehouse_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("warehouses.id")
    )
    transfer_direction: Mapped[MovementDirection | None] = mapped_column(
        SAEnum(MovementDirection, native_enum=False, length=3)
    )
    reserved_consumed: Mapped[Decimal | None]
    reason_code: Mapped[AdjustmentReason | None] = mapped_column(
        SAEnum(AdjustmentReason, native_enum=False, length=30)
    )

    actor_id: Mapped[UUID]
    occurred_at: Mapped[datetime]
    note: Mapped[str | None] = mapped_column(String(2000))

    movement: Mapped["StockMovement"] = relationship(
        back_populates="transaction", uselist=False
    )

    @property
    def direction(self) -> MovementDirection:
        return MovementDirection.IN if self.quantity > 0 else MovementDirection.OUT

    @property
    def detail(self) -> MovementDetail:
        """Rebuild the tagged movement variant this row was written from."""
        cls = DETAIL_TYPES[self.detail_type]
        if cls is PurchaseReceipt:
            return PurchaseReceipt(self.purchase_order_id, self.purchase_order_line_id)
        if cls is SaleShipment:
            return SaleShipment(
                self.sale_order_id,
                self.sale_order_line_id,
                self.reserved_consumed or Decimal("0"),
            )
        if cls is TransferLeg:
            return TransferLeg(self.transfer_direction, self.counterpart_warehouse_id)
        if cls is StockAdjustment:
            return StockAdjustment(self.direction, self.reason_code)
        if cls is IngredientUsage:
            return IngredientUsage(self.production_batch_id)
        return ProductionOutput(self.production_batch_id)

    def __repr__(self) -> str:
        return f"<InventoryTransaction #{self.id} {self.kind.value} {self.quantity}>"


class StockMovement(Base):
    """Directional ledger row derived from exactly one transaction."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_movement_stock_key", "warehouse_id", "item_id", "id"),
        Index("idx_movement_tenant", "tenant_id", "id"),
    )

    id: Mapped[int] = mapped_column(_IDENTITY, primary_key=True, autoincrement=True)
    tenant_id: Mapped[UUID]
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_transactions.id"), unique=True
    )
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"))
    direction: Mapped[MovementDirection] = mapped_column(
        SAEnum(MovementDirection, native_enum=False, length=3)
    )
    quantity: Mapped[Decimal]
    reference: Mapped[str | None] = mapped_column(String(100))
    occurred_at: Mapped[datetime]

    transaction: Mapped[InventoryTransaction] = relationship(back_populates="movement")

    @property
    def signed_quantity(self) -> Decimal:
        return self.quantity * self.direction.sign


class ReservationAction(str, Enum):
    RESERVE = "RESERVE"
    RELEASE = "RELEASE"
    CONSUME = "CONSUME"


class ReservationEntry(Base):
    """
    Append-only record of a change to StockBalance.reserved.

    CONSUME entries are written when a sale ships previously reserved stock.
    """

    __tablename__ = "reservation_entries"

    __table_args__ = (
        Index("idx_reservation_stock_key", "warehouse_id", "item_id", "id"),
    )

    id: Mapped[int] = mapped_column(_IDENTITY, primary_key=True, autoincrement=True)
    tenant_id: Mapped[UUID]
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"))
    action: Mapped[ReservationAction] = mapped_column(
        SAEnum(ReservationAction, native_enum=False, length=10)
    )
    quantity: Mapped[Decimal]
    reserved_after: Mapped[Decimal]
    sale_order_id: Mapped[UUID | None] = mapped_column(ForeignKey("sale_orders.id"))
    reference: Mapped[str | None] = mapped_column(String(100))
    actor_id: Mapped[UUID]
    occurred_at: Mapped[datetime]
