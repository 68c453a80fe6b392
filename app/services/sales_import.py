"""Daily sales import from the point-of-sale export.

A day is imported once: if it already has active sales the whole import is
refused and the caller must delete those sales first. Each line is resolved
by POS code (recipe, then variant) and falls back to the recipe name; a line
that cannot be resolved or recorded is reported and skipped, the rest commit.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import InvalidInputError, InvalidStateError, LedgerError, NotFoundError
from app.models.events import SaleEvent
from app.models.inventory import Recipe, RecipeVariant
from app.services.recorder import EventRecorder, SaleInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportedSale:
    quantity: Decimal
    recipe_name: str | None = None
    pos_code: str | None = None
    total: Decimal | None = None
    sold_on: date | None = None


@dataclass
class ImportResult:
    sold_on: date
    processed: int = 0
    errors: list[dict] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)


class SalesImporter:
    def __init__(self, db: Session, tenant_id: int) -> None:
        self.db = db
        self.tenant_id = tenant_id
        self.recorder = EventRecorder(db, tenant_id)

    def _lookups(self) -> tuple[dict[str, int], dict[str, tuple[int, int]], dict[str, int]]:
        recipes = self.db.execute(
            select(Recipe.id, Recipe.name, Recipe.pos_code)
            .where(Recipe.tenant_id == self.tenant_id, Recipe.is_active.is_(True))
            .order_by(Recipe.id)
        ).all()
        by_code: dict[str, int] = {}
        by_name: dict[str, int] = {}
        for recipe_id, name, pos_code in recipes:
            if pos_code and pos_code.strip():
                by_code.setdefault(pos_code.strip(), recipe_id)
            by_name.setdefault(name.strip().lower(), recipe_id)

        variants = self.db.execute(
            select(RecipeVariant.id, RecipeVariant.recipe_id, RecipeVariant.pos_code)
            .join(Recipe, Recipe.id == RecipeVariant.recipe_id)
            .where(
                Recipe.tenant_id == self.tenant_id,
                Recipe.is_active.is_(True),
                RecipeVariant.pos_code.is_not(None),
            )
            .order_by(RecipeVariant.id)
        ).all()
        variant_by_code: dict[str, tuple[int, int]] = {}
        for variant_id, recipe_id, pos_code in variants:
            if pos_code.strip():
                variant_by_code.setdefault(pos_code.strip(), (recipe_id, variant_id))
        return by_code, variant_by_code, by_name

    def import_day(self, items: Iterable[ImportedSale]) -> ImportResult:
        items = list(items)
        if not items:
            raise InvalidInputError("At least one sale is required", field="items")

        sold_on = items[0].sold_on or date.today()
        existing = self.db.scalar(
            select(func.count())
            .select_from(SaleEvent)
            .where(SaleEvent.tenant_id == self.tenant_id, SaleEvent.sold_on == sold_on, SaleEvent.active())
        )
        if existing:
            raise InvalidStateError(
                "Sales already exist for this day, delete them before importing again",
                sold_on=sold_on.isoformat(),
                existing=existing,
            )

        by_code, variant_by_code, by_name = self._lookups()
        outcome = ImportResult(sold_on=sold_on)
        for item in items:
            code = (item.pos_code or "").strip()
            name = (item.recipe_name or "").strip()
            try:
                if code in by_code:
                    recipe_id, variant_id = by_code[code], None
                elif code in variant_by_code:
                    recipe_id, variant_id = variant_by_code[code]
                elif name.lower() in by_name:
                    recipe_id, variant_id = by_name[name.lower()], None
                else:
                    raise NotFoundError("Recipe not found", pos_code=code or None, recipe_name=name or None)

                with self.db.begin_nested():
                    self.recorder.record_sale(
                        SaleInput(
                            recipe_id=recipe_id,
                            quantity=item.quantity,
                            variant_id=variant_id,
                            sold_on=item.sold_on or sold_on,
                            total=item.total,
                        )
                    )
                outcome.processed += 1
            except LedgerError as exc:
                outcome.errors.append(
                    {"recipe_name": name or None, "pos_code": code or None, "code": exc.code, "error": exc.message}
                )

        log = logger.warning if outcome.errors else logger.info
        log(
            "sales_imported",
            extra={
                "tenant_id": self.tenant_id,
                "sold_on": sold_on.isoformat(),
                "processed": outcome.processed,
                "failed": outcome.failed,
            },
        )
        return outcome
