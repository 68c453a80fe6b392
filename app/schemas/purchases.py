from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from app.models.events import OrderStatus
from app.models.purchasing import PendingPurchaseState


class ReceiptLineIn(BaseModel):
    ingredient_id: int
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal | None = Field(default=None, ge=0)
    in_purchase_formats: bool = False


class OrderCreateRequest(BaseModel):
    supplier_name: str | None = Field(default=None, max_length=160)
    ordered_on: date | None = None
    note: str | None = Field(default=None, max_length=255)
    received: bool = False
    lines: list[ReceiptLineIn] = Field(default_factory=list)


class OrderReceiveRequest(BaseModel):
    lines: list[ReceiptLineIn] = Field(min_length=1)
    received_on: date | None = None


class PurchaseReceiptOut(BaseModel):
    id: int
    order_id: int | None
    pending_purchase_id: int | None
    ingredient_id: int
    quantity_received: Decimal
    applied_quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    received_on: date

    model_config = {"from_attributes": True}


class OrderOut(BaseModel):
    id: int
    supplier_name: str | None
    status: OrderStatus
    ordered_on: date
    received_on: date | None
    note: str | None
    created_at: datetime
    receipts: list[PurchaseReceiptOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class PendingPurchaseIn(BaseModel):
    ingredient_name: str = Field(min_length=1, max_length=160)
    quantity: Decimal = Field(gt=0)
    price: Decimal = Field(ge=0)
    purchase_date: date | None = None
    ingredient_id: int | None = None


class PendingSubmitRequest(BaseModel):
    items: list[PendingPurchaseIn] = Field(min_length=1)


class PendingSubmitOut(BaseModel):
    batch_id: str
    count: int


class PendingUpdateRequest(BaseModel):
    ingredient_id: int | None = None
    quantity: Decimal | None = Field(default=None, gt=0)
    price: Decimal | None = Field(default=None, ge=0)
    purchase_date: date | None = None


class PendingPurchaseOut(BaseModel):
    id: int
    batch_id: str
    ingredient_name: str
    ingredient_id: int | None
    quantity: Decimal
    price: Decimal
    purchase_date: date
    state: PendingPurchaseState
    decided_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class PendingApproveOut(BaseModel):
    success: bool = True
    pending: PendingPurchaseOut
    receipt: PurchaseReceiptOut


class ApproveBatchRequest(BaseModel):
    batch_id: str = Field(min_length=1, max_length=36)


class ApproveBatchOut(BaseModel):
    approved: int
    skipped: int
