"""Daily and monthly summary rows kept in step with the event tables.

These rows are a cache. ``accumulate`` is an additive upsert keyed by
(kind, entity, day, tenant); ``subtract`` is its exact inverse with every
column floored at zero. Anything that must be exact should reconcile against
the events (see ``app.services.reconciliation``).
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import case, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.core.errors import InternalError
from app.models.aggregates import AggregateKind, DailyAggregate, MonthlyAggregate
from app.services.deductions import ZERO, quantize

logger = logging.getLogger(__name__)

_DAILY_KEY = ("kind", "entity_id", "day", "tenant_id")
_MONTHLY_KEY = ("kind", "entity_id", "period_id", "tenant_id")


@dataclass(frozen=True)
class AggregateDelta:
    quantity: Decimal = ZERO
    revenue: Decimal = ZERO
    cost: Decimal = ZERO


def period_of(day: date) -> int:
    return day.year * 100 + day.month


def _floored_minus(column, amount: Decimal):
    return case((column - amount < 0, 0), else_=column - amount)


class AggregateMaintainer:
    def __init__(self, db: Session, tenant_id: int) -> None:
        self.db = db
        self.tenant_id = tenant_id

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise InternalError(f"Aggregate upsert is not supported on {dialect}")

    def _upsert(self, model, key: tuple[str, ...], values: dict, delta: AggregateDelta) -> None:
        table = model.__table__
        insert = self._insert()
        stmt = insert(table).values(
            **values,
            quantity=quantize(delta.quantity),
            revenue=quantize(delta.revenue),
            cost=quantize(delta.cost),
            updated_at=datetime.utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=list(key),
            set_={
                "quantity": table.c.quantity + stmt.excluded.quantity,
                "revenue": table.c.revenue + stmt.excluded.revenue,
                "cost": table.c.cost + stmt.excluded.cost,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self.db.execute(stmt)

    def accumulate(self, kind: AggregateKind, entity_id: int, day: date, delta: AggregateDelta) -> None:
        self._upsert(
            DailyAggregate,
            _DAILY_KEY,
            {"kind": kind.value, "entity_id": entity_id, "day": day, "tenant_id": self.tenant_id},
            delta,
        )
        self._upsert(
            MonthlyAggregate,
            _MONTHLY_KEY,
            {"kind": kind.value, "entity_id": entity_id, "period_id": period_of(day), "tenant_id": self.tenant_id},
            delta,
        )

    def _subtract(self, model, where: list, delta: AggregateDelta) -> int:
        table = model.__table__
        result = self.db.execute(
            update(table)
            .where(*where)
            .values(
                quantity=_floored_minus(table.c.quantity, quantize(delta.quantity)),
                revenue=_floored_minus(table.c.revenue, quantize(delta.revenue)),
                cost=_floored_minus(table.c.cost, quantize(delta.cost)),
                updated_at=datetime.utcnow(),
            )
        )
        return result.rowcount or 0

    def subtract(self, kind: AggregateKind, entity_id: int, day: date, delta: AggregateDelta) -> None:
        daily = DailyAggregate.__table__
        monthly = MonthlyAggregate.__table__
        touched = self._subtract(
            DailyAggregate,
            [
                daily.c.kind == kind.value,
                daily.c.entity_id == entity_id,
                daily.c.day == day,
                daily.c.tenant_id == self.tenant_id,
            ],
            delta,
        )
        touched += self._subtract(
            MonthlyAggregate,
            [
                monthly.c.kind == kind.value,
                monthly.c.entity_id == entity_id,
                monthly.c.period_id == period_of(day),
                monthly.c.tenant_id == self.tenant_id,
            ],
            delta,
        )
        if touched < 2:
            logger.warning(
                "aggregate_row_missing_on_subtract",
                extra={"tenant_id": self.tenant_id, "kind": kind.value, "entity_id": entity_id, "day": day.isoformat()},
            )

    def daily(
        self,
        kind: AggregateKind | None = None,
        day_from: date | None = None,
        day_to: date | None = None,
        entity_id: int | None = None,
    ) -> list[DailyAggregate]:
        query = (
            select(DailyAggregate)
            .where(DailyAggregate.tenant_id == self.tenant_id)
            .order_by(DailyAggregate.day, DailyAggregate.kind, DailyAggregate.entity_id)
            .execution_options(populate_existing=True)
        )
        if kind is not None:
            query = query.where(DailyAggregate.kind == kind.value)
        if day_from is not None:
            query = query.where(DailyAggregate.day >= day_from)
        if day_to is not None:
            query = query.where(DailyAggregate.day <= day_to)
        if entity_id is not None:
            query = query.where(DailyAggregate.entity_id == entity_id)
        return list(self.db.scalars(query).all())

    def monthly(self, kind: AggregateKind, entity_id: int, period_id: int) -> MonthlyAggregate | None:
        return self.db.scalar(
            select(MonthlyAggregate)
            .where(
                MonthlyAggregate.tenant_id == self.tenant_id,
                MonthlyAggregate.kind == kind.value,
                MonthlyAggregate.entity_id == entity_id,
                MonthlyAggregate.period_id == period_id,
            )
            .execution_options(populate_existing=True)
        )
