"""Recipe deduction arithmetic.

Everything here is pure: no session, no locks. Sale creation uses it to work
out how much of each ingredient a sale consumes, and the legacy reversal path
uses it for rows that predate stored deductions. Reversal of any sale that
has stored deductions never calls into this module.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from app.core.errors import InvalidInputError

QUANT = Decimal("0.0001")
ZERO = Decimal("0")
ONE = Decimal("1")


class RecipeLineLike(Protocol):
    ingredient_id: int
    quantity_per_batch: Decimal


@dataclass(frozen=True)
class IngredientDelta:
    ingredient_id: int
    position: int
    amount: Decimal


def quantize(value: Decimal) -> Decimal:
    return Decimal(value).quantize(QUANT, rounding=ROUND_HALF_UP)


def require_finite(value, field: str) -> Decimal:
    try:
        number = Decimal(value)
    except (ArithmeticError, TypeError, ValueError) as exc:
        raise InvalidInputError(f"{field} must be a number", field=field) from exc
    if not number.is_finite():
        raise InvalidInputError(f"{field} must be finite", field=field)
    return number


def deduction_amount(
    quantity_per_batch: Decimal,
    servings_per_batch: int | None,
    sale_quantity: Decimal,
    variant_factor: Decimal | None = None,
) -> Decimal:
    """(quantity_per_batch / max(1, servings)) * sale_quantity * variant_factor"""
    servings = max(1, int(servings_per_batch or 1))
    factor = ONE if variant_factor is None else Decimal(variant_factor)
    amount = (Decimal(quantity_per_batch) / Decimal(servings)) * Decimal(sale_quantity) * factor
    return quantize(amount)


def compute_deductions(
    lines: Iterable[RecipeLineLike],
    servings_per_batch: int | None,
    sale_quantity,
    variant_factor=None,
) -> list[IngredientDelta]:
    quantity = require_finite(sale_quantity, "quantity")
    if quantity <= ZERO:
        raise InvalidInputError("quantity must be positive", field="quantity")
    factor = None
    if variant_factor is not None:
        factor = require_finite(variant_factor, "variant_factor")
        if factor <= ZERO:
            raise InvalidInputError("variant factor must be positive", field="variant_factor")

    deltas: list[IngredientDelta] = []
    for position, line in enumerate(lines):
        amount = deduction_amount(line.quantity_per_batch, servings_per_batch, quantity, factor)
        if amount <= ZERO:
            continue
        deltas.append(IngredientDelta(ingredient_id=line.ingredient_id, position=position, amount=amount))
    return deltas


def ingredient_unit_cost(unit_price: Decimal | None, units_per_purchase_format: Decimal | None) -> Decimal:
    """Price of one base unit when unit_price is quoted per purchase format."""
    price = Decimal(unit_price or 0)
    per_format = Decimal(units_per_purchase_format or 0)
    if per_format <= ZERO:
        per_format = ONE
    return price / per_format


def deductions_cost(deltas: Iterable[IngredientDelta], unit_costs: Mapping[int, Decimal]) -> Decimal:
    total = ZERO
    for delta in deltas:
        total += delta.amount * unit_costs.get(delta.ingredient_id, ZERO)
    return quantize(total)


def purchase_formats_to_units(formats, units_per_purchase_format: Decimal | None) -> Decimal:
    per_format = Decimal(units_per_purchase_format or 0)
    if per_format <= ZERO:
        per_format = ONE
    return quantize(require_finite(formats, "quantity") * per_format)
