from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.database import Base
from app.models.inventory import MONEY, QUANTITY


class PendingPurchaseState(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PendingPurchase(Base):
    __tablename__ = "pending_purchases"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    batch_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    ingredient_name: Mapped[str] = mapped_column(String(160), nullable=False)
    ingredient_id: Mapped[int | None] = mapped_column(
        ForeignKey("ingredients.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    state: Mapped[PendingPurchaseState] = mapped_column(
        SQLEnum(PendingPurchaseState),
        default=PendingPurchaseState.PENDING,
        nullable=False,
        index=True,
    )
    decided_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)
