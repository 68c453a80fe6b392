from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.database import Base
from app.models.inventory import MONEY, QUANTITY


class AggregateKind(str, Enum):
    SALES = "sales"          # entity = recipe
    PURCHASES = "purchases"  # entity = ingredient
    WASTE = "waste"          # entity = ingredient


class DailyAggregate(Base):
    __tablename__ = "daily_aggregates"
    __table_args__ = (
        UniqueConstraint("kind", "entity_id", "day", "tenant_id", name="uq_daily_aggregates_key"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    kind: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    day: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, default=Decimal("0"), nullable=False)
    revenue: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    cost: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class MonthlyAggregate(Base):
    __tablename__ = "monthly_aggregates"
    __table_args__ = (
        UniqueConstraint("kind", "entity_id", "period_id", "tenant_id", name="uq_monthly_aggregates_key"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    kind: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    # YYYYMM, e.g. 202610
    period_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, default=Decimal("0"), nullable=False)
    revenue: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    cost: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
