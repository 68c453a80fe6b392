from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class IngredientOut(BaseModel):
    id: int
    name: str
    unit: str
    quantity_on_hand: Decimal
    unit_price: Decimal
    units_per_purchase_format: Decimal
    is_active: bool
    last_stock_update_at: datetime | None

    model_config = {"from_attributes": True}


class StockAdjustRequest(BaseModel):
    delta: Decimal
    reason: str | None = Field(default=None, max_length=255)


class StockAdjustOut(BaseModel):
    success: bool = True
    ingredient_id: int
    requested_delta: Decimal
    applied_delta: Decimal
    new_quantity: Decimal
    clamped: bool

    @classmethod
    def from_adjustment(cls, adjustment) -> "StockAdjustOut":
        return cls(
            ingredient_id=adjustment.ingredient_id,
            requested_delta=adjustment.requested_delta,
            applied_delta=adjustment.applied_delta,
            new_quantity=adjustment.new_quantity,
            clamped=adjustment.clamped,
        )


class BulkAdjustItem(BaseModel):
    id: int
    delta: Decimal


class BulkAdjustRequest(BaseModel):
    items: list[BulkAdjustItem] = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=255)


class BulkAdjustError(BaseModel):
    id: int | None
    code: str
    error: str


class BulkAdjustOut(BaseModel):
    success: bool
    results: list[StockAdjustOut]
    errors: list[BulkAdjustError]


class StockMovementOut(BaseModel):
    id: int
    ingredient_id: int
    quantity_before: Decimal
    quantity_after: Decimal
    requested_delta: Decimal
    applied_delta: Decimal
    reason: str | None
    source_type: str | None
    source_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class StockCountItem(BaseModel):
    ingredient_id: int
    counted_quantity: Decimal = Field(ge=0)
    note: str | None = Field(default=None, max_length=255)


class StocktakeRequest(BaseModel):
    counts: list[StockCountItem] = Field(min_length=1)


class StocktakeOut(BaseModel):
    success: bool = True
    results: list[StockAdjustOut]


class DailyAggregateOut(BaseModel):
    kind: str
    entity_id: int
    day: date
    quantity: Decimal
    revenue: Decimal
    cost: Decimal
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReconcileRequest(BaseModel):
    day: date
    repair: bool = False


class AggregateValuesOut(BaseModel):
    quantity: Decimal
    revenue: Decimal
    cost: Decimal


class DriftOut(BaseModel):
    kind: str
    entity_id: int
    day: date
    expected: AggregateValuesOut
    stored: AggregateValuesOut


class ReconcileOut(BaseModel):
    day: date
    repaired: bool
    drift: list[DriftOut]
