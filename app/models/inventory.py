from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.database import Base

QUANTITY = Numeric(14, 4)
MONEY = Numeric(14, 4)


class Ingredient(Base):
    __tablename__ = "ingredients"
    __table_args__ = (CheckConstraint("quantity_on_hand >= 0", name="ck_ingredients_quantity_non_negative"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(160), index=True, nullable=False)
    unit: Mapped[str] = mapped_column(String(24), default="unit", nullable=False)
    # Only StockLedger writes this column.
    quantity_on_hand: Mapped[Decimal] = mapped_column(QUANTITY, default=Decimal("0"), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    units_per_purchase_format: Mapped[Decimal] = mapped_column(QUANTITY, default=Decimal("1"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_stock_update_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Recipe(Base):
    __tablename__ = "recipes"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(160), index=True, nullable=False)
    # Point-of-sale (TPV) product code used by the daily sales import.
    pos_code: Mapped[str | None] = mapped_column(String(40), index=True, nullable=True)
    sale_price: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    servings_per_batch: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    lines: Mapped[list["RecipeLine"]] = relationship(
        back_populates="recipe",
        order_by="RecipeLine.position",
        cascade="all, delete-orphan",
    )
    variants: Mapped[list["RecipeVariant"]] = relationship(
        back_populates="recipe",
        cascade="all, delete-orphan",
    )


class RecipeLine(Base):
    __tablename__ = "recipe_lines"
    __table_args__ = (UniqueConstraint("recipe_id", "position", name="uq_recipe_lines_recipe_position"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id", ondelete="CASCADE"), index=True, nullable=False)
    ingredient_id: Mapped[int] = mapped_column(
        ForeignKey("ingredients.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_per_batch: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    recipe: Mapped[Recipe] = relationship(back_populates="lines")


class RecipeVariant(Base):
    __tablename__ = "recipe_variants"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id", ondelete="CASCADE"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    pos_code: Mapped[str | None] = mapped_column(String(40), index=True, nullable=True)
    # glass = 0.2 of a bottle
    factor: Mapped[Decimal] = mapped_column(QUANTITY, default=Decimal("1"), nullable=False)
    price_override: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)

    recipe: Mapped[Recipe] = relationship(back_populates="variants")


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    ingredient_id: Mapped[int] = mapped_column(
        ForeignKey("ingredients.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    quantity_before: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    quantity_after: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    requested_delta: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    applied_delta: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_type: Mapped[str | None] = mapped_column(String(40), index=True, nullable=True)
    source_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class StockCount(Base):
    __tablename__ = "stock_counts"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    ingredient_id: Mapped[int] = mapped_column(
        ForeignKey("ingredients.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    expected_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    counted_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    difference: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)
    counted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)
