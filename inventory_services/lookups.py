"""
Entity lookups with tenant checks.

Every orchestrator resolves the items, warehouses, orders and recipes it
was handed through these helpers before any stock is touched, so a request
naming another tenant's entity fails with CrossTenantViolationError and
leaves the store unchanged.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.validation import require_id
from inventory_kernel.exceptions import (
    CrossTenantViolationError,
    ItemNotFoundError,
    OrderNotFoundError,
    RecipeNotFoundError,
    WarehouseNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import Item, Warehouse
from inventory_kernel.models.orders import (
    PurchaseOrder,
    PurchaseOrderLine,
    SaleOrder,
    SaleOrderLine,
)
from inventory_kernel.models.production import Recipe

logger = get_logger("services.lookups")


def require_same_tenant(entity_type: str, entity_id, entity_tenant_id, tenant_id) -> None:
    if entity_tenant_id != tenant_id:
        logger.warning(
            "cross_tenant_access_rejected",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "expected_tenant_id": str(tenant_id),
                "actual_tenant_id": str(entity_tenant_id),
            },
        )
        raise CrossTenantViolationError(
            entity_type=entity_type,
            entity_id=str(entity_id),
            expected_tenant_id=str(tenant_id),
            actual_tenant_id=str(entity_tenant_id),
        )


def load_item(session: Session, tenant_id: UUID, item_id: UUID,
              line_index: int | None = None) -> Item:
    require_id(item_id, "item_id", line_index)
    item = session.get(Item, item_id)
    if item is None:
        raise ItemNotFoundError(str(item_id), line_index)
    require_same_tenant("Item", item_id, item.tenant_id, tenant_id)
    return item


def load_warehouse(session: Session, tenant_id: UUID, warehouse_id: UUID,
                   line_index: int | None = None) -> Warehouse:
    require_id(warehouse_id, "warehouse_id", line_index)
    warehouse = session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise WarehouseNotFoundError(str(warehouse_id), line_index)
    require_same_tenant("Warehouse", warehouse_id, warehouse.tenant_id, tenant_id)
    return warehouse


def load_recipe(session: Session, tenant_id: UUID, recipe_id: UUID) -> Recipe:
    require_id(recipe_id, "recipe_id")
    recipe = session.get(Recipe, recipe_id)
    if recipe is None:
        raise RecipeNotFoundError(str(recipe_id))
    require_same_tenant("Recipe", recipe_id, recipe.tenant_id, tenant_id)
    return recipe


def lock_purchase_order(
    session: Session, tenant_id: UUID, purchase_order_id: UUID
) -> tuple[PurchaseOrder, list[PurchaseOrderLine]]:
    """Order header and lines, re-read under row locks."""
    require_id(purchase_order_id, "purchase_order_id")
    order = session.execute(
        select(PurchaseOrder)
        .where(PurchaseOrder.id == purchase_order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError("PurchaseOrder", str(purchase_order_id))
    require_same_tenant("PurchaseOrder", order.id, order.tenant_id, tenant_id)
    lines = list(session.execute(
        select(PurchaseOrderLine)
        .where(PurchaseOrderLine.purchase_order_id == order.id)
        .order_by(PurchaseOrderLine.line_number)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars())
    return order, lines


def lock_sale_order(
    session: Session, tenant_id: UUID, sale_order_id: UUID
) -> tuple[SaleOrder, list[SaleOrderLine]]:
    require_id(sale_order_id, "sale_order_id")
    order = session.execute(
        select(SaleOrder)
        .where(SaleOrder.id == sale_order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError("SaleOrder", str(sale_order_id))
    require_same_tenant("SaleOrder", order.id, order.tenant_id, tenant_id)
    lines = list(session.execute(
        select(SaleOrderLine)
        .where(SaleOrderLine.sale_order_id == order.id)
        .order_by(SaleOrderLine.line_number)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars())
    return order, lines


def match_order_line(lines, item_id: UUID, order_line_id: UUID | None, remaining):
    """
    Pick the order line a request line applies to.

    An explicit ``order_line_id`` wins.  Otherwise the first line for the
    item that still has room (per ``remaining``, a callable) is chosen,
    falling back to the first line for the item.
    """
    if order_line_id is not None:
        for line in lines:
            if line.id == order_line_id and line.item_id == item_id:
                return line
        return None
    candidates = [line for line in lines if line.item_id == item_id]
    for line in candidates:
        if remaining(line) > 0:
            return line
    return candidates[0] if candidates else None
