"""
Purchase and sale orders with line-level progress.

Order status is derived from the lines (domain/status.py) and moved only
along the transition tables.  Orders and lines carry a version column so two
concurrent receipts against the same line cannot both pass the over-receipt
check.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase
from inventory_kernel.domain.status import PurchaseOrderStatus, SaleOrderStatus


class PurchaseOrder(TrackedBase):
    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_po_tenant_number"),
        Index("idx_po_status", "status"),
    )

    tenant_id: Mapped[UUID]
    order_number: Mapped[str] = mapped_column(String(64))
    supplier_ref: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[PurchaseOrderStatus] = mapped_column(
        SAEnum(PurchaseOrderStatus, native_enum=False, length=20),
        default=PurchaseOrderStatus.PENDING,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["PurchaseOrderLine"]] = relationship(
        back_populates="order",
        order_by="PurchaseOrderLine.line_number",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def reference(self) -> str:
        """Reference stamped on every receipt transaction."""
        return f"PO-{self.order_number}"


class PurchaseOrderLine(TrackedBase):
    """``received_quantity`` only grows and never exceeds ``ordered_quantity``."""

    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "line_number", name="uq_po_line_number"),
        CheckConstraint("ordered_quantity > 0", name="ck_po_line_ordered_positive"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(ForeignKey("purchase_orders.id"))
    line_number: Mapped[int] = mapped_column(Integer)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    ordered_quantity: Mapped[Decimal]
    unit_cost: Mapped[Decimal]
    received_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    order: Mapped[PurchaseOrder] = relationship(back_populates="lines")

    __mapper_args__ = {"version_id_col": version}


class SaleOrder(TrackedBase):
    __tablename__ = "sale_orders"

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_so_tenant_number"),
        Index("idx_so_status", "status"),
    )

    tenant_id: Mapped[UUID]
    order_number: Mapped[str] = mapped_column(String(64))
    customer_ref: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[SaleOrderStatus] = mapped_column(
        SAEnum(SaleOrderStatus, native_enum=False, length=20),
        default=SaleOrderStatus.PENDING,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["SaleOrderLine"]] = relationship(
        back_populates="order",
        order_by="SaleOrderLine.line_number",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def reference(self) -> str:
        return f"SO-{self.order_number}"


class SaleOrderLine(TrackedBase):
    __tablename__ = "sale_order_lines"

    __table_args__ = (
        UniqueConstraint("sale_order_id", "line_number", name="uq_so_line_number"),
        CheckConstraint("ordered_quantity > 0", name="ck_so_line_ordered_positive"),
    )

    sale_order_id: Mapped[UUID] = mapped_column(ForeignKey("sale_orders.id"))
    line_number: Mapped[int] = mapped_column(Integer)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    ordered_quantity: Mapped[Decimal]
    unit_price: Mapped[Decimal]
    fulfilled_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    order: Mapped[SaleOrder] = relationship(back_populates="lines")

    __mapper_args__ = {"version_id_col": version}
