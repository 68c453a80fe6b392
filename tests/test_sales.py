from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.errors import InternalError, NotFoundError
from app.db.database import unit_of_work
from app.models import AggregateKind, DailyAggregate, RecipeLine, SaleEvent, StockMovement
from app.services.aggregates import AggregateMaintainer
from app.services.ledger import StockLedger
from app.services.recorder import EventRecorder, SaleInput
from app.services.reversal import ReversalEngine
from tests.factories import (
    OTHER_TENANT_ID,
    TENANT_ID,
    archive_ingredient,
    create_ingredient,
    create_recipe,
    quantity_of,
)

DAY = date(2026, 3, 14)


def _sell(db, recipe_id, quantity, **kwargs):
    with unit_of_work(db):
        sale = EventRecorder(db, TENANT_ID).record_sale(
            SaleInput(recipe_id=recipe_id, quantity=Decimal(quantity), sold_on=DAY, **kwargs)
        )
    return sale.id


def _reverse(db, sale_id):
    with unit_of_work(db):
        return ReversalEngine(db, TENANT_ID).reverse_sale(sale_id)


def _sales_row(db, recipe_id):
    row = db.scalar(
        select(DailyAggregate)
        .where(DailyAggregate.kind == AggregateKind.SALES.value, DailyAggregate.entity_id == recipe_id)
        .execution_options(populate_existing=True)
    )
    values = (row.quantity, row.revenue, row.cost)
    db.rollback()
    return values


def test_sale_then_delete_restores_olive_oil(db):
    oil = create_ingredient(db, "Olive Oil", quantity="10")
    recipe = create_recipe(db, [(oil, "3")])

    sale_id = _sell(db, recipe.id, "1")

    assert quantity_of(db, oil) == Decimal("7")
    sale = db.get(SaleEvent, sale_id)
    assert [(d.ingredient_id, d.applied_amount) for d in sale.deductions] == [(oil, Decimal("3"))]

    restored = _reverse(db, sale_id)

    assert [r.applied_delta for r in restored] == [Decimal("3")]
    assert quantity_of(db, oil) == Decimal("10")


def test_second_reversal_is_not_found_and_changes_nothing(db):
    oil = create_ingredient(db, quantity="10")
    recipe = create_recipe(db, [(oil, "3")])
    sale_id = _sell(db, recipe.id, "1")
    _reverse(db, sale_id)

    with pytest.raises(NotFoundError):
        _reverse(db, sale_id)

    assert quantity_of(db, oil) == Decimal("10")


def test_reversal_replays_the_clamped_amount_not_the_requested_one(db):
    oil = create_ingredient(db, quantity="2")
    recipe = create_recipe(db, [(oil, "3")])
    sale_id = _sell(db, recipe.id, "1")

    sale = db.get(SaleEvent, sale_id)
    assert sale.deductions[0].requested_amount == Decimal("3")
    assert sale.deductions[0].applied_amount == Decimal("2")
    assert quantity_of(db, oil) == Decimal("0")

    with unit_of_work(db):
        StockLedger(db, TENANT_ID).adjust(oil, Decimal("10"), "delivery")
    _reverse(db, sale_id)

    assert quantity_of(db, oil) == Decimal("12")


def test_reversal_ignores_later_recipe_edits(db):
    oil = create_ingredient(db, quantity="10")
    recipe = create_recipe(db, [(oil, "3")])
    sale_id = _sell(db, recipe.id, "1")

    line = db.scalar(select(RecipeLine).where(RecipeLine.recipe_id == recipe.id))
    line.quantity_per_batch = Decimal("5")
    db.commit()

    _reverse(db, sale_id)

    assert quantity_of(db, oil) == Decimal("10")


def test_variant_sale_deducts_fraction_and_uses_price_override(db):
    wine = create_ingredient(db, "Red Wine", quantity="5", unit_price="10")
    recipe = create_recipe(db, [(wine, "1")], sale_price="20", variants=[("glass", "0.2", "4.5")])

    sale_id = _sell(db, recipe.id, "2", variant_id=recipe.variant_ids[0])

    assert quantity_of(db, wine) == Decimal("4.6")
    sale = db.get(SaleEvent, sale_id)
    assert sale.variant_factor == Decimal("0.2")
    assert sale.unit_price == Decimal("4.5")
    assert sale.total == Decimal("9")
    assert sale.cost == Decimal("4")


def test_multi_ingredient_sale_records_every_line_in_recipe_order(db):
    flour = create_ingredient(db, "Flour", quantity="10")
    eggs = create_ingredient(db, "Eggs", quantity="12")
    recipe = create_recipe(db, [(eggs, "4"), (flour, "1")], servings_per_batch=2)

    sale_id = _sell(db, recipe.id, "3")

    sale = db.get(SaleEvent, sale_id)
    assert [(d.position, d.ingredient_id, d.applied_amount) for d in sale.deductions] == [
        (0, eggs, Decimal("6")),
        (1, flour, Decimal("1.5")),
    ]
    assert quantity_of(db, eggs) == Decimal("6")
    assert quantity_of(db, flour) == Decimal("8.5")


def test_sale_aggregate_is_added_and_subtracted(db):
    oil = create_ingredient(db, quantity="10", unit_price="2")
    recipe = create_recipe(db, [(oil, "1")], sale_price="12.5")

    first = _sell(db, recipe.id, "2")
    _sell(db, recipe.id, "1")

    assert _sales_row(db, recipe.id) == (Decimal("3"), Decimal("37.5"), Decimal("6"))

    _reverse(db, first)

    assert _sales_row(db, recipe.id) == (Decimal("1"), Decimal("12.5"), Decimal("2"))


def test_legacy_sale_without_stored_deductions_is_recomputed(db):
    oil = create_ingredient(db, quantity="10")
    recipe = create_recipe(db, [(oil, "2")], servings_per_batch=4)
    legacy = SaleEvent(
        tenant_id=TENANT_ID,
        recipe_id=recipe.id,
        variant_factor=Decimal("0.5"),
        quantity_sold=Decimal("4"),
        unit_price=Decimal("1"),
        total=Decimal("4"),
        sold_on=DAY,
        deductions_recorded=False,
    )
    db.add(legacy)
    db.flush()
    legacy_id = legacy.id
    db.commit()

    restored = _reverse(db, legacy_id)

    # (2 / 4) * 4 * 0.5
    assert [r.applied_delta for r in restored] == [Decimal("1")]
    assert quantity_of(db, oil) == Decimal("11")


def test_sale_for_unknown_or_foreign_recipe_is_not_found(db):
    oil = create_ingredient(db, quantity="10")
    foreign = create_recipe(db, [(oil, "1")], tenant_id=OTHER_TENANT_ID)

    for recipe_id in (foreign.id, 9999):
        with pytest.raises(NotFoundError):
            _sell(db, recipe_id, "1")

    assert quantity_of(db, oil) == Decimal("10")


def test_sale_with_variant_of_another_recipe_is_not_found(db):
    oil = create_ingredient(db, quantity="10")
    recipe = create_recipe(db, [(oil, "1")])
    other = create_recipe(db, [(oil, "1")], name="Other", variants=[("half", "0.5", None)])

    with pytest.raises(NotFoundError):
        _sell(db, recipe.id, "1", variant_id=other.variant_ids[0])


def test_sale_using_an_archived_ingredient_can_still_be_deleted(db):
    oil = create_ingredient(db, quantity="10")
    recipe = create_recipe(db, [(oil, "3")])
    sale_id = _sell(db, recipe.id, "1")
    archive_ingredient(db, oil)

    restored = _reverse(db, sale_id)

    assert [r.applied_delta for r in restored] == [Decimal("3")]
    assert quantity_of(db, oil) == Decimal("10")


def test_new_sale_on_archived_ingredient_is_not_found(db):
    oil = create_ingredient(db, quantity="10")
    recipe = create_recipe(db, [(oil, "3")])
    archive_ingredient(db, oil)

    with pytest.raises(NotFoundError):
        _sell(db, recipe.id, "1")

    assert quantity_of(db, oil) == Decimal("10")


def test_failed_aggregate_subtract_rolls_back_the_whole_reversal(db, monkeypatch):
    oil = create_ingredient(db, quantity="10", unit_price="2")
    recipe = create_recipe(db, [(oil, "3")], sale_price="8")
    sale_id = _sell(db, recipe.id, "1")

    def broken_subtract(self, *args, **kwargs):
        raise InternalError("Aggregate store unavailable")

    monkeypatch.setattr(AggregateMaintainer, "subtract", broken_subtract)

    with pytest.raises(InternalError):
        _reverse(db, sale_id)

    assert quantity_of(db, oil) == Decimal("7")
    assert db.get(SaleEvent, sale_id).deleted_at is None
    db.rollback()
    assert _sales_row(db, recipe.id) == (Decimal("1"), Decimal("8"), Decimal("6"))
    reversal_moves = db.scalar(select(StockMovement).where(StockMovement.source_type == "sale_reversal"))
    assert reversal_moves is None
