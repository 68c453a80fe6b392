from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field


class WasteLineIn(BaseModel):
    ingredient_id: int
    quantity: Decimal = Field(gt=0)
    reason: str = Field(default="other", min_length=1, max_length=80)
    note: str | None = Field(default=None, max_length=255)
    loss_value: Decimal | None = Field(default=None, ge=0)
    wasted_on: date | None = None


class WasteCreateRequest(BaseModel):
    items: list[WasteLineIn] = Field(min_length=1)


class WasteOut(BaseModel):
    id: int
    ingredient_id: int
    quantity_wasted: Decimal
    applied_quantity: Decimal
    loss_value: Decimal
    reason: str
    note: str | None
    period_id: int
    wasted_on: date

    model_config = {"from_attributes": True}


class WasteCreateOut(BaseModel):
    success: bool = True
    count: int
    items: list[WasteOut]


class WasteReversalOut(BaseModel):
    success: bool = True
    restored: Decimal
    new_quantity: Decimal | None


class WasteResetOut(BaseModel):
    success: bool = True
    period_id: int
    deleted: int
    reason: str
