"""Stock Ledger Core: the only writer of ``Ingredient.quantity_on_hand``.

Each adjustment locks the ingredient row (``SELECT ... FOR UPDATE``), applies
``max(0, old + delta)`` and reports the delta that was actually applied, which
differs from the requested one when the floor clamps. Callers that record
business events must store ``applied_delta``, never the requested value.

A ledger is bound to one session and one tenant; it never commits; the
caller's ``unit_of_work`` decides that.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import InvalidInputError, LedgerError, NotFoundError
from app.models.inventory import Ingredient, StockCount, StockMovement
from app.services.deductions import ZERO, quantize, require_finite

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Adjustment:
    ingredient_id: int
    requested_delta: Decimal
    applied_delta: Decimal
    quantity_before: Decimal
    new_quantity: Decimal

    @property
    def clamped(self) -> bool:
        return self.applied_delta != self.requested_delta


@dataclass
class BulkResult:
    results: list[Adjustment] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class StockLedger:
    def __init__(self, db: Session, tenant_id: int) -> None:
        self.db = db
        self.tenant_id = tenant_id

    def _lock_row(self, ingredient_id: int, include_inactive: bool = False) -> Ingredient:
        ingredient = self.db.scalar(
            select(Ingredient)
            .where(Ingredient.id == ingredient_id, Ingredient.tenant_id == self.tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        # Archived ingredients still accept reversals of events that used them.
        if not ingredient or not (ingredient.is_active or include_inactive):
            raise NotFoundError("Ingredient not found", ingredient_id=ingredient_id)
        return ingredient

    def lock(self, ingredient_ids: Iterable[int], *, include_inactive: bool = False) -> dict[int, Ingredient]:
        """Lock rows in the order given. Sales pass recipe line order."""
        locked: dict[int, Ingredient] = {}
        for ingredient_id in ingredient_ids:
            if ingredient_id not in locked:
                locked[ingredient_id] = self._lock_row(ingredient_id, include_inactive)
        return locked

    def get(self, ingredient_id: int) -> Ingredient:
        ingredient = self.db.scalar(
            select(Ingredient).where(Ingredient.id == ingredient_id, Ingredient.tenant_id == self.tenant_id)
        )
        if not ingredient:
            raise NotFoundError("Ingredient not found", ingredient_id=ingredient_id)
        return ingredient

    def adjust(
        self,
        ingredient_id: int,
        delta,
        reason: str | None = None,
        *,
        source_type: str | None = None,
        source_id: int | None = None,
        include_inactive: bool = False,
    ) -> Adjustment:
        requested = quantize(require_finite(delta, "delta"))
        ingredient = self._lock_row(ingredient_id, include_inactive)

        before = Decimal(ingredient.quantity_on_hand or 0)
        after = max(ZERO, before + requested)
        applied = after - before

        ingredient.quantity_on_hand = after
        ingredient.last_stock_update_at = datetime.utcnow()
        self.db.add(
            StockMovement(
                tenant_id=self.tenant_id,
                ingredient_id=ingredient.id,
                quantity_before=before,
                quantity_after=after,
                requested_delta=requested,
                applied_delta=applied,
                reason=reason.strip()[:255] if reason else None,
                source_type=source_type,
                source_id=source_id,
            )
        )
        self.db.flush()

        adjustment = Adjustment(
            ingredient_id=ingredient.id,
            requested_delta=requested,
            applied_delta=applied,
            quantity_before=before,
            new_quantity=after,
        )
        log = logger.warning if adjustment.clamped else logger.info
        log(
            "stock_adjusted",
            extra={
                "tenant_id": self.tenant_id,
                "ingredient_id": ingredient.id,
                "requested_delta": requested,
                "applied_delta": applied,
                "new_quantity": after,
                "reason": reason,
                "clamped": adjustment.clamped,
            },
        )
        return adjustment

    def bulk_adjust(self, items: Iterable[dict], reason: str | None = None) -> BulkResult:
        """Apply each ``{"id", "delta"}`` item in its own savepoint.

        A bad item lands in ``errors`` and leaves the others untouched.
        """
        outcome = BulkResult()
        for item in items:
            ingredient_id = item.get("id")
            try:
                if ingredient_id is None:
                    raise NotFoundError("Ingredient id is required", ingredient_id=None)
                with self.db.begin_nested():
                    adjustment = self.adjust(
                        ingredient_id,
                        item.get("delta"),
                        reason,
                        source_type="bulk_adjust",
                    )
                outcome.results.append(adjustment)
            except LedgerError as exc:
                outcome.errors.append({"id": ingredient_id, "code": exc.code, "error": exc.message})

        logger.info(
            "bulk_stock_adjusted",
            extra={
                "tenant_id": self.tenant_id,
                "succeeded": len(outcome.results),
                "failed": len(outcome.errors),
                "reason": reason,
            },
        )
        return outcome

    def set_counted(self, ingredient_id: int, counted, note: str | None = None) -> Adjustment:
        """Stocktake: overwrite the quantity with a physical count."""
        counted_quantity = quantize(require_finite(counted, "counted_quantity"))
        if counted_quantity < ZERO:
            raise InvalidInputError("Counted quantity must be >= 0", field="counted_quantity")

        ingredient = self._lock_row(ingredient_id)
        before = Decimal(ingredient.quantity_on_hand or 0)
        difference = counted_quantity - before

        ingredient.quantity_on_hand = counted_quantity
        ingredient.last_stock_update_at = datetime.utcnow()
        self.db.add(
            StockCount(
                tenant_id=self.tenant_id,
                ingredient_id=ingredient.id,
                expected_quantity=before,
                counted_quantity=counted_quantity,
                difference=difference,
                note=note.strip()[:255] if note else None,
            )
        )
        self.db.add(
            StockMovement(
                tenant_id=self.tenant_id,
                ingredient_id=ingredient.id,
                quantity_before=before,
                quantity_after=counted_quantity,
                requested_delta=difference,
                applied_delta=difference,
                reason=note.strip()[:255] if note else "stocktake",
                source_type="stocktake",
            )
        )
        self.db.flush()
        logger.info(
            "stock_counted",
            extra={
                "tenant_id": self.tenant_id,
                "ingredient_id": ingredient.id,
                "expected_quantity": before,
                "counted_quantity": counted_quantity,
            },
        )
        return Adjustment(
            ingredient_id=ingredient.id,
            requested_delta=difference,
            applied_delta=difference,
            quantity_before=before,
            new_quantity=counted_quantity,
        )
