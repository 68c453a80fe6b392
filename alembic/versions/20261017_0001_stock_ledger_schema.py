"""stock ledger schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

QUANTITY = sa.Numeric(precision=14, scale=4)
MONEY = sa.Numeric(precision=14, scale=4)

order_status = sa.Enum("PENDING", "RECEIVED", "CANCELLED", name="orderstatus")
pending_state = sa.Enum("PENDING", "APPROVED", "REJECTED", name="pendingpurchasestate")


def _indexes(table: str, *columns: str) -> None:
    for column in columns:
        op.create_index(op.f(f"ix_{table}_{column}"), table, [column], unique=False)


def upgrade() -> None:
    op.create_table(
        "ingredients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("unit", sa.String(length=24), nullable=False),
        sa.Column("quantity_on_hand", QUANTITY, nullable=False),
        sa.Column("unit_price", MONEY, nullable=False),
        sa.Column("units_per_purchase_format", QUANTITY, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_stock_update_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity_on_hand >= 0", name="ck_ingredients_quantity_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    _indexes("ingredients", "id", "tenant_id", "name")

    op.create_table(
        "recipes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("pos_code", sa.String(length=40), nullable=True),
        sa.Column("sale_price", MONEY, nullable=False),
        sa.Column("servings_per_batch", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    _indexes("recipes", "id", "tenant_id", "name", "pos_code")

    op.create_table(
        "recipe_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recipe_id", sa.Integer(), nullable=False),
        sa.Column("ingredient_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("quantity_per_batch", QUANTITY, nullable=False),
        sa.ForeignKeyConstraint(["ingredient_id"], ["ingredients.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recipe_id"], ["recipes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("recipe_id", "position", name="uq_recipe_lines_recipe_position"),
    )
    _indexes("recipe_lines", "id", "recipe_id", "ingredient_id")

    op.create_table(
        "recipe_variants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recipe_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=80), nullable=False),
        sa.Column("pos_code", sa.String(length=40), nullable=True),
        sa.Column("factor", QUANTITY, nullable=False),
        sa.Column("price_override", MONEY, nullable=True),
        sa.ForeignKeyConstraint(["recipe_id"], ["recipes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    _indexes("recipe_variants", "id", "recipe_id", "pos_code")

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("ingredient_id", sa.Integer(), nullable=False),
        sa.Column("quantity_before", QUANTITY, nullable=False),
        sa.Column("quantity_after", QUANTITY, nullable=False),
        sa.Column("requested_delta", QUANTITY, nullable=False),
        sa.Column("applied_delta", QUANTITY, nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("source_type", sa.String(length=40), nullable=True),
        sa.Column("source_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["ingredient_id"], ["ingredients.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    _indexes("stock_movements", "id", "tenant_id", "ingredient_id", "source_type", "created_at")

    op.create_table(
        "stock_counts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("ingredient_id", sa.Integer(), nullable=False),
        sa.Column("expected_quantity", QUANTITY, nullable=False),
        sa.Column("counted_quantity", QUANTITY, nullable=False),
        sa.Column("difference", QUANTITY, nullable=False),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("counted_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["ingredient_id"], ["ingredients.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    _indexes("stock_counts", "id", "tenant_id", "ingredient_id", "counted_at")

    op.create_table(
        "sale_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("recipe_id", sa.Integer(), nullable=False),
        sa.Column("variant_id", sa.Integer(), nullable=True),
        sa.Column("variant_factor", QUANTITY, nullable=False),
        sa.Column("quantity_sold", QUANTITY, nullable=False),
        sa.Column("unit_price", MONEY, nullable=False),
        sa.Column("total", MONEY, nullable=False),
        sa.Column("cost", MONEY, nullable=False),
        sa.Column("sold_on", sa.Date(), nullable=False),
        sa.Column("deductions_recorded", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["recipe_id"], ["recipes.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["variant_id"], ["recipe_variants.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    _indexes("sale_events", "id", "tenant_id", "recipe_id", "variant_id", "sold_on", "deleted_at")

    op.create_table(
        "sale_deductions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("ingredient_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("requested_amount", QUANTITY, nullable=False),
        sa.Column("applied_amount", QUANTITY, nullable=False),
        sa.ForeignKeyConstraint(["ingredient_id"], ["ingredients.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["sale_id"], ["sale_events.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    _indexes("sale_deductions", "id", "sale_id")

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("supplier_name", sa.String(length=160), nullable=True),
        sa.Column("status", order_status, nullable=False),
        sa.Column("ordered_on", sa.Date(), nullable=False),
        sa.Column("received_on", sa.Date(), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    _indexes("purchase_orders", "id", "tenant_id", "ordered_on", "deleted_at")

    op.create_table(
        "pending_purchases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("ingredient_name", sa.String(length=160), nullable=False),
        sa.Column("ingredient_id", sa.Integer(), nullable=True),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("price", MONEY, nullable=False),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column("state", pending_state, nullable=False),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["ingredient_id"], ["ingredients.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    _indexes("pending_purchases", "id", "tenant_id", "batch_id", "ingredient_id", "state", "created_at")

    op.create_table(
        "purchase_receipts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("pending_purchase_id", sa.Integer(), nullable=True),
        sa.Column("ingredient_id", sa.Integer(), nullable=False),
        sa.Column("quantity_received", QUANTITY, nullable=False),
        sa.Column("applied_quantity", QUANTITY, nullable=False),
        sa.Column("unit_cost", MONEY, nullable=False),
        sa.Column("total_cost", MONEY, nullable=False),
        sa.Column("received_on", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["ingredient_id"], ["ingredients.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["order_id"], ["purchase_orders.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["pending_purchase_id"], ["pending_purchases.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "order_id",
            "ingredient_id",
            "received_on",
            name="uq_purchase_receipts_order_ingredient_day",
        ),
    )
    _indexes(
        "purchase_receipts",
        "id",
        "tenant_id",
        "order_id",
        "pending_purchase_id",
        "ingredient_id",
        "received_on",
        "deleted_at",
    )

    op.create_table(
        "waste_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("ingredient_id", sa.Integer(), nullable=False),
        sa.Column("quantity_wasted", QUANTITY, nullable=False),
        sa.Column("applied_quantity", QUANTITY, nullable=False),
        sa.Column("loss_value", MONEY, nullable=False),
        sa.Column("reason", sa.String(length=80), nullable=False),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("wasted_on", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["ingredient_id"], ["ingredients.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    _indexes("waste_events", "id", "tenant_id", "ingredient_id", "period_id", "wasted_on", "deleted_at")

    op.create_table(
        "daily_aggregates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("revenue", MONEY, nullable=False),
        sa.Column("cost", MONEY, nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("kind", "entity_id", "day", "tenant_id", name="uq_daily_aggregates_key"),
    )
    _indexes("daily_aggregates", "id", "kind", "entity_id", "tenant_id", "day")

    op.create_table(
        "monthly_aggregates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("revenue", MONEY, nullable=False),
        sa.Column("cost", MONEY, nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("kind", "entity_id", "period_id", "tenant_id", name="uq_monthly_aggregates_key"),
    )
    _indexes("monthly_aggregates", "id", "kind", "entity_id", "tenant_id", "period_id")


def downgrade() -> None:
    for table in (
        "monthly_aggregates",
        "daily_aggregates",
        "waste_events",
        "purchase_receipts",
        "pending_purchases",
        "purchase_orders",
        "sale_deductions",
        "sale_events",
        "stock_counts",
        "stock_movements",
        "recipe_variants",
        "recipe_lines",
        "recipes",
        "ingredients",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    pending_state.drop(bind, checkfirst=True)
    order_status.drop(bind, checkfirst=True)
