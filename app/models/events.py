from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.database import Base
from app.models.inventory import MONEY, QUANTITY


class SoftDeleteMixin:
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    @classmethod
    def active(cls):
        return cls.deleted_at.is_(None)


class SaleEvent(SoftDeleteMixin, Base):
    __tablename__ = "sale_events"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id", ondelete="RESTRICT"), index=True, nullable=False)
    variant_id: Mapped[int | None] = mapped_column(
        ForeignKey("recipe_variants.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    variant_factor: Mapped[Decimal] = mapped_column(QUANTITY, default=Decimal("1"), nullable=False)
    quantity_sold: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    cost: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    sold_on: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    # False on rows written before deductions were snapshotted.
    deductions_recorded: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    deductions: Mapped[list["SaleDeduction"]] = relationship(
        back_populates="sale",
        order_by="SaleDeduction.position",
        cascade="all, delete-orphan",
    )


class SaleDeduction(Base):
    __tablename__ = "sale_deductions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    sale_id: Mapped[int] = mapped_column(ForeignKey("sale_events.id", ondelete="CASCADE"), index=True, nullable=False)
    ingredient_id: Mapped[int] = mapped_column(ForeignKey("ingredients.id", ondelete="RESTRICT"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    requested_amount: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    applied_amount: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    sale: Mapped[SaleEvent] = relationship(back_populates="deductions")


class OrderStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class PurchaseOrder(SoftDeleteMixin, Base):
    __tablename__ = "purchase_orders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    supplier_name: Mapped[str | None] = mapped_column(String(160), nullable=True)
    status: Mapped[OrderStatus] = mapped_column(SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False)
    ordered_on: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    received_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    receipts: Mapped[list["PurchaseReceiptEvent"]] = relationship(
        order_by="PurchaseReceiptEvent.id",
        viewonly=True,
    )


class PurchaseReceiptEvent(SoftDeleteMixin, Base):
    __tablename__ = "purchase_receipts"
    __table_args__ = (
        UniqueConstraint("order_id", "ingredient_id", "received_on", name="uq_purchase_receipts_order_ingredient_day"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    order_id: Mapped[int | None] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        index=True,
        nullable=True,
    )
    pending_purchase_id: Mapped[int | None] = mapped_column(
        ForeignKey("pending_purchases.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    ingredient_id: Mapped[int] = mapped_column(ForeignKey("ingredients.id", ondelete="RESTRICT"), index=True, nullable=False)
    quantity_received: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    applied_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    received_on: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class WasteEvent(SoftDeleteMixin, Base):
    __tablename__ = "waste_events"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    ingredient_id: Mapped[int] = mapped_column(ForeignKey("ingredients.id", ondelete="RESTRICT"), index=True, nullable=False)
    quantity_wasted: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    applied_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    loss_value: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    reason: Mapped[str] = mapped_column(String(80), default="other", nullable=False)
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)
    period_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    wasted_on: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
