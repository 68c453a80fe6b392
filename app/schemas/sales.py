from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class SaleCreateRequest(BaseModel):
    recipe_id: int
    quantity: Decimal = Field(gt=0)
    variant_id: int | None = None
    unit_price: Decimal | None = Field(default=None, ge=0)
    sold_on: date | None = None


class SaleDeductionOut(BaseModel):
    ingredient_id: int
    position: int
    requested_amount: Decimal
    applied_amount: Decimal

    model_config = {"from_attributes": True}


class SaleOut(BaseModel):
    id: int
    recipe_id: int
    variant_id: int | None
    variant_factor: Decimal
    quantity_sold: Decimal
    unit_price: Decimal
    total: Decimal
    cost: Decimal
    sold_on: date
    created_at: datetime
    deductions: list[SaleDeductionOut]

    model_config = {"from_attributes": True}


class RestoredDeltaOut(BaseModel):
    ingredient_id: int
    applied_delta: Decimal
    new_quantity: Decimal


class ReversalOut(BaseModel):
    success: bool = True
    restored_deltas: list[RestoredDeltaOut]


class SaleImportItem(BaseModel):
    quantity: Decimal
    recipe_name: str | None = Field(default=None, max_length=160)
    pos_code: str | None = Field(default=None, max_length=40)
    total: Decimal | None = None
    sold_on: date | None = None


class SaleImportRequest(BaseModel):
    items: list[SaleImportItem] = Field(min_length=1)


class SaleImportError(BaseModel):
    recipe_name: str | None
    pos_code: str | None
    code: str
    error: str


class SaleImportOut(BaseModel):
    success: bool
    sold_on: date
    processed: int
    failed: int
    errors: list[SaleImportError]
