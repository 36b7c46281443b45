"""ORM models for the inventory kernel."""

from inventory_kernel.models.item import Item, Warehouse
from inventory_kernel.models.ledger import (
    InventoryTransaction,
    ReservationAction,
    ReservationEntry,
    StockMovement,
)
from inventory_kernel.models.orders import (
    PurchaseOrder,
    PurchaseOrderLine,
    SaleOrder,
    SaleOrderLine,
)
from inventory_kernel.models.production import ProductionBatch, Recipe, RecipeLine
from inventory_kernel.models.stock import StockBalance

__all__ = [
    "Item",
    "Warehouse",
    "StockBalance",
    "InventoryTransaction",
    "StockMovement",
    "ReservationAction",
    "ReservationEntry",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "SaleOrder",
    "SaleOrderLine",
    "Recipe",
    "RecipeLine",
    "ProductionBatch",
]
