"""Recipes (bill of materials) and the production batches run from them."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Enum as SAEnum, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase
from inventory_kernel.domain.status import ProductionBatchStatus


class Recipe(TrackedBase):
    """How to make one unit of ``product_item_id``."""

    __tablename__ = "recipes"

    __table_args__ = (Index("idx_recipe_tenant", "tenant_id"),)

    tenant_id: Mapped[UUID]
    name: Mapped[str] = mapped_column(String(255))
    product_item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))

    lines: Mapped[list["RecipeLine"]] = relationship(
        back_populates="recipe",
        order_by="RecipeLine.line_number",
    )


class RecipeLine(TrackedBase):
    """Quantity of one ingredient consumed per unit of finished product."""

    __tablename__ = "recipe_lines"

    __table_args__ = (
        UniqueConstraint("recipe_id", "item_id", name="uq_recipe_line_item"),
    )

    recipe_id: Mapped[UUID] = mapped_column(ForeignKey("recipes.id"))
    line_number: Mapped[int] = mapped_column(Integer, default=0)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    quantity: Mapped[Decimal]

    recipe: Mapped[Recipe] = relationship(back_populates="lines")


class ProductionBatch(TrackedBase):
    __tablename__ = "production_batches"

    __table_args__ = (
        UniqueConstraint("batch_ref", name="uq_batch_ref"),
        Index("idx_batch_recipe", "recipe_id"),
    )

    tenant_id: Mapped[UUID]
    recipe_id: Mapped[UUID] = mapped_column(ForeignKey("recipes.id"))
    warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"))
    batch_ref: Mapped[str] = mapped_column(String(64))
    quantity: Mapped[Decimal]
    unit_cost: Mapped[Decimal | None]
    status: Mapped[ProductionBatchStatus] = mapped_column(
        SAEnum(ProductionBatchStatus, native_enum=False, length=20),
        default=ProductionBatchStatus.RUNNING,
    )
    started_at: Mapped[datetime]
    finished_at: Mapped[datetime | None]
