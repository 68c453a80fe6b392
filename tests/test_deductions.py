from dataclasses import dataclass
from decimal import Decimal

import pytest

from app.core.errors import InvalidInputError
from app.services.deductions import (
    compute_deductions,
    deduction_amount,
    deductions_cost,
    ingredient_unit_cost,
    purchase_formats_to_units,
    quantize,
)


@dataclass
class Line:
    ingredient_id: int
    quantity_per_batch: Decimal


def test_variant_factor_scales_deduction():
    # glass of wine: 0.2 of a bottle
    assert deduction_amount(Decimal("1"), 1, Decimal("1"), Decimal("0.2")) == Decimal("0.2")


def test_deduction_divides_by_servings_per_batch():
    assert deduction_amount(Decimal("2"), 4, Decimal("3")) == Decimal("1.5")


@pytest.mark.parametrize("servings", [0, None, -3])
def test_servings_below_one_count_as_one(servings):
    assert deduction_amount(Decimal("0.5"), servings, Decimal("2")) == Decimal("1")


def test_compute_deductions_keeps_line_order_and_skips_zero_lines():
    lines = [Line(7, Decimal("0.25")), Line(3, Decimal("0")), Line(5, Decimal("1"))]

    deltas = compute_deductions(lines, 2, Decimal("4"))

    assert [(d.ingredient_id, d.position, d.amount) for d in deltas] == [
        (7, 0, Decimal("0.5")),
        (5, 2, Decimal("2")),
    ]


@pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1"), Decimal("NaN"), "inf", "lots"])
def test_compute_deductions_rejects_bad_quantity(quantity):
    with pytest.raises(InvalidInputError):
        compute_deductions([Line(1, Decimal("1"))], 1, quantity)


def test_compute_deductions_rejects_non_positive_variant_factor():
    with pytest.raises(InvalidInputError):
        compute_deductions([Line(1, Decimal("1"))], 1, Decimal("1"), Decimal("0"))


def test_quantize_rounds_half_up_to_four_places():
    assert quantize(Decimal("0.00005")) == Decimal("0.0001")
    assert quantize(Decimal("1.23444")) == Decimal("1.2344")


def test_unit_cost_uses_purchase_format_size():
    assert ingredient_unit_cost(Decimal("12"), Decimal("6")) == Decimal("2")
    assert ingredient_unit_cost(Decimal("12"), Decimal("0")) == Decimal("12")
    assert ingredient_unit_cost(None, None) == Decimal("0")


def test_formats_to_units():
    assert purchase_formats_to_units(Decimal("2"), Decimal("6")) == Decimal("12")
    assert purchase_formats_to_units(Decimal("3"), None) == Decimal("3")


def test_deductions_cost_sums_known_unit_costs():
    deltas = compute_deductions([Line(1, Decimal("2")), Line(2, Decimal("1"))], 1, Decimal("1"))

    assert deductions_cost(deltas, {1: Decimal("1.5")}) == Decimal("3")
