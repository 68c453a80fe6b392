from app.models.aggregates import AggregateKind, DailyAggregate, MonthlyAggregate
from app.models.events import (
    OrderStatus,
    PurchaseOrder,
    PurchaseReceiptEvent,
    SaleDeduction,
    SaleEvent,
    WasteEvent,
)
from app.models.inventory import Ingredient, Recipe, RecipeLine, RecipeVariant, StockCount, StockMovement
from app.models.purchasing import PendingPurchase, PendingPurchaseState

__all__ = [
    "AggregateKind",
    "DailyAggregate",
    "Ingredient",
    "MonthlyAggregate",
    "OrderStatus",
    "PendingPurchase",
    "PendingPurchaseState",
    "PurchaseOrder",
    "PurchaseReceiptEvent",
    "Recipe",
    "RecipeLine",
    "RecipeVariant",
    "SaleDeduction",
    "SaleEvent",
    "StockCount",
    "StockMovement",
    "WasteEvent",
]
