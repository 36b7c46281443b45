"""
StockBalance -- on-hand and reserved quantity for one (warehouse, item).

Mutated only by the LedgerEngine and ReservationService.  Every write bumps
``version``; a writer holding a stale version gets StaleDataError at flush,
which the unit-of-work runner turns into a retryable OptimisticLockError.
Rows are created lazily on the first movement and never deleted while a
transaction references them (FK from inventory_transactions).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class StockBalance(TrackedBase):
    __tablename__ = "stock_balances"

    __table_args__ = (
        UniqueConstraint("warehouse_id", "item_id", name="uq_stock_warehouse_item"),
        Index("idx_stock_item", "item_id"),
        Index("idx_stock_tenant", "tenant_id"),
        CheckConstraint("version > 0", name="ck_stock_version_positive"),
    )

    tenant_id: Mapped[UUID]
    warehouse_id: Mapped[UUID] = mapped_column(ForeignKey("warehouses.id"))
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    reserved: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def available(self) -> Decimal:
        """On-hand stock not allocated to an order."""
        return self.quantity - self.reserved

    def __repr__(self) -> str:
        return (
            f"<StockBalance {self.warehouse_id}/{self.item_id} "
            f"qty={self.quantity} reserved={self.reserved}>"
        )
