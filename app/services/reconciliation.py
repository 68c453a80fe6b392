"""Stocktake and aggregate reconciliation.

The daily aggregate rows are a cache built by additive upserts; this module
re-derives them from the active events and reports (or repairs) drift.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import InvalidInputError
from app.models.aggregates import AggregateKind, DailyAggregate
from app.models.events import PurchaseReceiptEvent, SaleEvent, WasteEvent
from app.services.aggregates import AggregateDelta, AggregateMaintainer
from app.services.deductions import ZERO, quantize
from app.services.ledger import Adjustment, StockLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockCountLine:
    ingredient_id: int
    counted_quantity: Decimal
    note: str | None = None


@dataclass(frozen=True)
class Drift:
    kind: AggregateKind
    entity_id: int
    day: date
    expected: AggregateDelta
    stored: AggregateDelta

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "entity_id": self.entity_id,
            "day": self.day.isoformat(),
            "expected": vars(self.expected),
            "stored": vars(self.stored),
        }


def _delta(quantity, revenue, cost) -> AggregateDelta:
    return AggregateDelta(
        quantity=quantize(quantity or ZERO),
        revenue=quantize(revenue or ZERO),
        cost=quantize(cost or ZERO),
    )


class Reconciler:
    def __init__(self, db: Session, tenant_id: int) -> None:
        self.db = db
        self.tenant_id = tenant_id

    def stocktake(self, counts: Iterable[StockCountLine]) -> list[Adjustment]:
        counts = list(counts)
        if not counts:
            raise InvalidInputError("At least one count is required", field="counts")
        ledger = StockLedger(self.db, self.tenant_id)
        ledger.lock(line.ingredient_id for line in counts)
        return [ledger.set_counted(line.ingredient_id, line.counted_quantity, line.note) for line in counts]

    def expected_daily(self, day: date) -> dict[tuple[AggregateKind, int], AggregateDelta]:
        """Replay the day's active events into aggregate values."""
        expected: dict[tuple[AggregateKind, int], AggregateDelta] = {}

        sales = self.db.execute(
            select(
                SaleEvent.recipe_id,
                func.sum(SaleEvent.quantity_sold),
                func.sum(SaleEvent.total),
                func.sum(SaleEvent.cost),
            )
            .where(SaleEvent.tenant_id == self.tenant_id, SaleEvent.sold_on == day, SaleEvent.active())
            .group_by(SaleEvent.recipe_id)
        ).all()
        for recipe_id, quantity, revenue, cost in sales:
            expected[(AggregateKind.SALES, recipe_id)] = _delta(quantity, revenue, cost)

        receipts = self.db.execute(
            select(
                PurchaseReceiptEvent.ingredient_id,
                func.sum(PurchaseReceiptEvent.applied_quantity),
                func.sum(PurchaseReceiptEvent.total_cost),
            )
            .where(
                PurchaseReceiptEvent.tenant_id == self.tenant_id,
                PurchaseReceiptEvent.received_on == day,
                PurchaseReceiptEvent.active(),
            )
            .group_by(PurchaseReceiptEvent.ingredient_id)
        ).all()
        for ingredient_id, quantity, cost in receipts:
            expected[(AggregateKind.PURCHASES, ingredient_id)] = _delta(quantity, ZERO, cost)

        waste = self.db.execute(
            select(
                WasteEvent.ingredient_id,
                func.sum(WasteEvent.applied_quantity),
                func.sum(WasteEvent.loss_value),
            )
            .where(WasteEvent.tenant_id == self.tenant_id, WasteEvent.wasted_on == day, WasteEvent.active())
            .group_by(WasteEvent.ingredient_id)
        ).all()
        for ingredient_id, quantity, cost in waste:
            expected[(AggregateKind.WASTE, ingredient_id)] = _delta(quantity, ZERO, cost)

        return expected

    def reconcile_daily(self, day: date, repair: bool = False) -> list[Drift]:
        expected = self.expected_daily(day)
        stored_rows = {
            (AggregateKind(row.kind), row.entity_id): row
            for row in AggregateMaintainer(self.db, self.tenant_id).daily(day_from=day, day_to=day)
        }

        empty = _delta(ZERO, ZERO, ZERO)
        drifts = []
        for key in sorted(set(expected) | set(stored_rows), key=lambda item: (item[0].value, item[1])):
            row = stored_rows.get(key)
            stored = _delta(row.quantity, row.revenue, row.cost) if row else empty
            wanted = expected.get(key, empty)
            if stored == wanted:
                continue
            kind, entity_id = key
            drifts.append(Drift(kind=kind, entity_id=entity_id, day=day, expected=wanted, stored=stored))
            if repair:
                self._rewrite(row, kind, entity_id, day, wanted)

        if repair and drifts:
            self.db.flush()
        log = logger.warning if drifts else logger.info
        log(
            "aggregates_reconciled",
            extra={"tenant_id": self.tenant_id, "day": day.isoformat(), "drift": len(drifts), "repair": repair},
        )
        return drifts

    def _rewrite(self, row: DailyAggregate | None, kind: AggregateKind, entity_id: int, day: date, wanted: AggregateDelta) -> None:
        if row is None:
            row = DailyAggregate(kind=kind.value, entity_id=entity_id, tenant_id=self.tenant_id, day=day)
            self.db.add(row)
        row.quantity = wanted.quantity
        row.revenue = wanted.revenue
        row.cost = wanted.cost
        row.updated_at = datetime.utcnow()
