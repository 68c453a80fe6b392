from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.errors import NotFoundError
from app.db.database import unit_of_work
from app.models import AggregateKind, MonthlyAggregate, WasteEvent
from app.services.recorder import EventRecorder, WasteLine
from app.services.reversal import ReversalEngine
from tests.factories import TENANT_ID, archive_ingredient, create_ingredient, quantity_of

DAY = date(2026, 3, 14)


def _waste(db, *lines):
    with unit_of_work(db):
        events = EventRecorder(db, TENANT_ID).record_waste(lines)
    return [event.id for event in events]


def _monthly_waste(db, ingredient_id):
    row = db.scalar(
        select(MonthlyAggregate)
        .where(MonthlyAggregate.kind == AggregateKind.WASTE.value, MonthlyAggregate.entity_id == ingredient_id)
        .execution_options(populate_existing=True)
    )
    values = (row.quantity, row.cost)
    db.rollback()
    return values


def test_loss_value_defaults_to_unit_cost_times_quantity(db):
    beer = create_ingredient(db, "Beer", quantity="10", unit_price="12", units_per_purchase_format="6")

    [waste_id] = _waste(db, WasteLine(ingredient_id=beer, quantity=Decimal("3"), reason="broken", wasted_on=DAY))

    waste = db.get(WasteEvent, waste_id)
    assert waste.loss_value == Decimal("6")
    assert waste.period_id == 202603
    assert waste.reason == "broken"
    assert waste.applied_quantity == Decimal("3")
    assert quantity_of(db, beer) == Decimal("7")


def test_waste_beyond_stock_records_the_clamped_quantity(db):
    oil = create_ingredient(db, quantity="1")

    [waste_id] = _waste(db, WasteLine(ingredient_id=oil, quantity=Decimal("3"), wasted_on=DAY))

    waste = db.get(WasteEvent, waste_id)
    assert waste.quantity_wasted == Decimal("3")
    assert waste.applied_quantity == Decimal("1")
    db.rollback()

    with unit_of_work(db):
        restored = ReversalEngine(db, TENANT_ID).reverse_waste(waste_id)

    assert restored.applied_delta == Decimal("1")
    assert quantity_of(db, oil) == Decimal("1")


def test_batch_with_an_unknown_ingredient_changes_nothing(db):
    oil = create_ingredient(db, quantity="5")

    with pytest.raises(NotFoundError):
        _waste(
            db,
            WasteLine(ingredient_id=oil, quantity=Decimal("2"), wasted_on=DAY),
            WasteLine(ingredient_id=31337, quantity=Decimal("1"), wasted_on=DAY),
        )

    assert quantity_of(db, oil) == Decimal("5")
    assert db.scalar(select(WasteEvent)) is None


def test_waste_reversal_subtracts_its_aggregate_contribution(db):
    oil = create_ingredient(db, quantity="10", unit_price="2")
    first, _ = _waste(
        db,
        WasteLine(ingredient_id=oil, quantity=Decimal("1"), wasted_on=DAY),
        WasteLine(ingredient_id=oil, quantity=Decimal("2"), loss_value=Decimal("5"), wasted_on=DAY),
    )

    assert _monthly_waste(db, oil) == (Decimal("3"), Decimal("7"))

    with unit_of_work(db):
        ReversalEngine(db, TENANT_ID).reverse_waste(first)

    assert _monthly_waste(db, oil) == (Decimal("2"), Decimal("5"))
    assert quantity_of(db, oil) == Decimal("8")

    with pytest.raises(NotFoundError):
        with unit_of_work(db):
            ReversalEngine(db, TENANT_ID).reverse_waste(first)


def test_waste_of_an_archived_ingredient_can_still_be_deleted(db):
    oil = create_ingredient(db, quantity="5")
    [waste_id] = _waste(db, WasteLine(ingredient_id=oil, quantity=Decimal("2"), wasted_on=DAY))
    archive_ingredient(db, oil)

    with unit_of_work(db):
        restored = ReversalEngine(db, TENANT_ID).reverse_waste(waste_id)

    assert restored.applied_delta == Decimal("2")
    assert quantity_of(db, oil) == Decimal("5")


def test_monthly_reset_reverses_only_that_months_waste(db):
    oil = create_ingredient(db, quantity="10", unit_price="1")
    salt = create_ingredient(db, "Salt", quantity="1")
    march = _waste(
        db,
        WasteLine(ingredient_id=oil, quantity=Decimal("2"), wasted_on=DAY),
        WasteLine(ingredient_id=salt, quantity=Decimal("3"), wasted_on=date(2026, 3, 2)),
    )
    [february] = _waste(db, WasteLine(ingredient_id=oil, quantity=Decimal("1"), wasted_on=date(2026, 2, 20)))

    with unit_of_work(db):
        reset = ReversalEngine(db, TENANT_ID).reset_waste_period(202603, "inventory recount")

    assert reset == march
    assert quantity_of(db, oil) == Decimal("9")
    assert quantity_of(db, salt) == Decimal("1")
    assert _monthly_waste(db, salt) == (Decimal("0"), Decimal("0"))
    remaining = db.scalars(select(WasteEvent.id).where(WasteEvent.deleted_at.is_(None))).all()
    assert remaining == [february]
    db.rollback()


def test_reset_defaults_to_the_current_month(db):
    oil = create_ingredient(db, quantity="4")
    _waste(db, WasteLine(ingredient_id=oil, quantity=Decimal("1")))

    with unit_of_work(db):
        reset = ReversalEngine(db, TENANT_ID).reset_waste_period()

    assert len(reset) == 1
    assert quantity_of(db, oil) == Decimal("4")
