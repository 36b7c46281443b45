"""
Items and warehouses: tenant-owned reference data.

Both are read-only to the ledger; their CRUD lives outside this package.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class Item(TrackedBase):
    """A stock-keeping unit with its current cost and price."""

    __tablename__ = "items"

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_item_tenant_sku"),
        Index("idx_item_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID]
    sku: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(255))
    unit: Mapped[str] = mapped_column(String(20), default="EA")
    unit_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Item {self.sku}>"


class Warehouse(TrackedBase):
    __tablename__ = "warehouses"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_warehouse_tenant_code"),
        Index("idx_warehouse_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID]
    code: Mapped[str] = mapped_column(String(32))
    name: Mapped[str] = mapped_column(String(255))

    def __repr__(self) -> str:
        return f"<Warehouse {self.code}>"
