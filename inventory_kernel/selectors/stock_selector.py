"""Read access to stock balances."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import StockBalanceInfo
from inventory_kernel.models.stock import StockBalance
from inventory_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector[StockBalance]):
    """Balances as currently committed (or flushed in the caller's session)."""

    def get_balance(self, warehouse_id: UUID, item_id: UUID) -> StockBalanceInfo | None:
        row = self.session.execute(
            select(StockBalance)
            .where(
                StockBalance.warehouse_id == warehouse_id,
                StockBalance.item_id == item_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return StockBalanceInfo.from_model(row) if row is not None else None

    def quantity_on_hand(self, warehouse_id: UUID, item_id: UUID) -> Decimal:
        info = self.get_balance(warehouse_id, item_id)
        return info.quantity if info is not None else Decimal("0")

    def available(self, warehouse_id: UUID, item_id: UUID) -> Decimal:
        """On-hand minus reserved; zero for a pair that never moved."""
        info = self.get_balance(warehouse_id, item_id)
        return info.available if info is not None else Decimal("0")

    def balances_for_warehouse(self, warehouse_id: UUID) -> list[StockBalanceInfo]:
        rows = self.session.execute(
            select(StockBalance)
            .where(StockBalance.warehouse_id == warehouse_id)
            .order_by(StockBalance.item_id)
            .execution_options(populate_existing=True)
        ).scalars()
        return [StockBalanceInfo.from_model(r) for r in rows]

    def balances_for_item(self, tenant_id: UUID, item_id: UUID) -> list[StockBalanceInfo]:
        rows = self.session.execute(
            select(StockBalance)
            .where(StockBalance.tenant_id == tenant_id, StockBalance.item_id == item_id)
            .order_by(StockBalance.warehouse_id)
            .execution_options(populate_existing=True)
        ).scalars()
        return [StockBalanceInfo.from_model(r) for r in rows]

    def total_on_hand(self, tenant_id: UUID, item_id: UUID) -> Decimal:
        """Across all warehouses. Summed in Python to stay exact on every backend."""
        return sum(
            (b.quantity for b in self.balances_for_item(tenant_id, item_id)),
            Decimal("0"),
        )
