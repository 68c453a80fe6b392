"""Seed helpers shared by the test modules. Each one commits its rows."""
from dataclasses import dataclass, field
from decimal import Decimal

from app.models import Ingredient, Recipe, RecipeLine, RecipeVariant

TENANT_ID = 1
OTHER_TENANT_ID = 2


@dataclass(frozen=True)
class SeededRecipe:
    id: int
    variant_ids: list[int] = field(default_factory=list)


def create_ingredient(
    db,
    name="Olive Oil",
    quantity="10",
    *,
    tenant_id=TENANT_ID,
    unit_price="0",
    units_per_purchase_format="1",
    is_active=True,
) -> int:
    ingredient = Ingredient(
        tenant_id=tenant_id,
        name=name,
        unit="l",
        quantity_on_hand=Decimal(quantity),
        unit_price=Decimal(unit_price),
        units_per_purchase_format=Decimal(units_per_purchase_format),
        is_active=is_active,
    )
    db.add(ingredient)
    db.flush()
    ingredient_id = ingredient.id
    db.commit()
    return ingredient_id


def create_recipe(
    db,
    lines,
    *,
    name="Dish",
    servings_per_batch=1,
    sale_price="10",
    variants=(),
    pos_code=None,
    tenant_id=TENANT_ID,
) -> SeededRecipe:
    """``lines`` is a list of (ingredient_id, quantity_per_batch); ``variants`` of (name, factor, price[, pos_code])."""
    recipe = Recipe(
        tenant_id=tenant_id,
        name=name,
        pos_code=pos_code,
        sale_price=Decimal(sale_price),
        servings_per_batch=servings_per_batch,
    )
    for position, (ingredient_id, quantity_per_batch) in enumerate(lines):
        recipe.lines.append(
            RecipeLine(ingredient_id=ingredient_id, position=position, quantity_per_batch=Decimal(quantity_per_batch))
        )
    for variant_name, factor, price, *variant_code in variants:
        recipe.variants.append(
            RecipeVariant(
                name=variant_name,
                pos_code=variant_code[0] if variant_code else None,
                factor=Decimal(factor),
                price_override=Decimal(price) if price is not None else None,
            )
        )
    db.add(recipe)
    db.flush()
    seeded = SeededRecipe(id=recipe.id, variant_ids=[variant.id for variant in recipe.variants])
    db.commit()
    return seeded


def quantity_of(db, ingredient_id) -> Decimal:
    db.expire_all()
    value = db.get(Ingredient, ingredient_id).quantity_on_hand
    db.rollback()
    return Decimal(value)


def archive_ingredient(db, ingredient_id) -> None:
    db.get(Ingredient, ingredient_id).is_active = False
    db.commit()
