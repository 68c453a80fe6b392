"""Staging area for purchase lines read from supplier invoices.

Submitting a batch never touches stock. A candidate moves
``pending -> approved`` or ``pending -> rejected`` exactly once and only the
approval goes through the ledger.
"""

import logging
import re
import unicodedata
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import InvalidInputError, InvalidStateError, NotFoundError
from app.models.events import PurchaseReceiptEvent
from app.models.inventory import Ingredient
from app.models.purchasing import PendingPurchase, PendingPurchaseState
from app.services.deductions import ZERO, quantize, require_finite
from app.services.recorder import EventRecorder

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^a-z0-9\s]")
_SPACES = re.compile(r"\s+")


@dataclass(frozen=True)
class PendingCandidate:
    ingredient_name: str
    quantity: Decimal
    price: Decimal
    purchase_date: date | None = None
    ingredient_id: int | None = None


def normalize_name(value: str | None) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    text = unicodedata.normalize("NFD", (value or "").lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _NON_WORD.sub("", text)
    return _SPACES.sub(" ", text).strip()


def match_ingredient(name: str, catalog: dict[str, int]) -> int | None:
    """Exact normalized match first, then the first partial match either way."""
    needle = normalize_name(name)
    if not needle:
        return None
    if needle in catalog:
        return catalog[needle]
    for candidate, ingredient_id in catalog.items():
        if candidate and (needle in candidate or candidate in needle):
            return ingredient_id
    return None


class PendingPurchaseService:
    def __init__(self, db: Session, tenant_id: int) -> None:
        self.db = db
        self.tenant_id = tenant_id

    def _catalog(self) -> dict[str, int]:
        rows = self.db.execute(
            select(Ingredient.id, Ingredient.name)
            .where(Ingredient.tenant_id == self.tenant_id, Ingredient.is_active.is_(True))
            .order_by(Ingredient.id)
        ).all()
        catalog: dict[str, int] = {}
        for ingredient_id, name in rows:
            catalog.setdefault(normalize_name(name), ingredient_id)
        return catalog

    def _check_ingredient(self, ingredient_id: int) -> None:
        exists = self.db.scalar(
            select(Ingredient.id).where(
                Ingredient.id == ingredient_id,
                Ingredient.tenant_id == self.tenant_id,
                Ingredient.is_active.is_(True),
            )
        )
        if not exists:
            raise InvalidInputError("Ingredient is not valid for this tenant", field="ingredient_id")

    def _locked(self, pending_id: int) -> PendingPurchase:
        pending = self.db.scalar(
            select(PendingPurchase)
            .where(PendingPurchase.id == pending_id, PendingPurchase.tenant_id == self.tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if not pending:
            raise NotFoundError("Pending purchase not found", pending_id=pending_id)
        return pending

    @staticmethod
    def _require_pending(pending: PendingPurchase) -> None:
        if pending.state != PendingPurchaseState.PENDING:
            raise InvalidStateError(
                "Pending purchase has already been processed",
                pending_id=pending.id,
                state=pending.state.value,
            )

    def submit(self, candidates: Iterable[PendingCandidate]) -> dict:
        candidates = list(candidates)
        if not candidates:
            raise InvalidInputError("At least one purchase line is required", field="items")

        rows = []
        for candidate in candidates:
            name = (candidate.ingredient_name or "").strip()
            if not name:
                raise InvalidInputError("Ingredient name is required", field="ingredient_name")
            quantity = quantize(require_finite(candidate.quantity, "quantity"))
            price = quantize(require_finite(candidate.price, "price"))
            if quantity <= ZERO:
                raise InvalidInputError("quantity must be positive", field="quantity")
            if price < ZERO:
                raise InvalidInputError("price must be >= 0", field="price")
            rows.append((candidate, name, quantity, price))

        batch_id = str(uuid.uuid4())
        catalog = self._catalog()
        for candidate, name, quantity, price in rows:
            if candidate.ingredient_id is not None:
                self._check_ingredient(candidate.ingredient_id)
                ingredient_id = candidate.ingredient_id
            else:
                ingredient_id = match_ingredient(name, catalog)
            self.db.add(
                PendingPurchase(
                    tenant_id=self.tenant_id,
                    batch_id=batch_id,
                    ingredient_name=name[:160],
                    ingredient_id=ingredient_id,
                    quantity=quantity,
                    price=price,
                    purchase_date=candidate.purchase_date or date.today(),
                    state=PendingPurchaseState.PENDING,
                )
            )
        self.db.flush()
        logger.info("pending_purchases_submitted", extra={"tenant_id": self.tenant_id, "batch_id": batch_id, "count": len(rows)})
        return {"batch_id": batch_id, "count": len(rows)}

    def list_pending(self, state: PendingPurchaseState | None = PendingPurchaseState.PENDING) -> list[PendingPurchase]:
        query = (
            select(PendingPurchase)
            .where(PendingPurchase.tenant_id == self.tenant_id)
            .order_by(PendingPurchase.created_at.desc(), PendingPurchase.batch_id, PendingPurchase.ingredient_name)
        )
        if state is not None:
            query = query.where(PendingPurchase.state == state)
        return list(self.db.scalars(query).all())

    def update_pending(
        self,
        pending_id: int,
        *,
        ingredient_id: int | None = None,
        quantity=None,
        price=None,
        purchase_date: date | None = None,
    ) -> PendingPurchase:
        if ingredient_id is None and quantity is None and price is None and purchase_date is None:
            raise InvalidInputError("Nothing to update")

        pending = self._locked(pending_id)
        self._require_pending(pending)

        if ingredient_id is not None:
            self._check_ingredient(ingredient_id)
            pending.ingredient_id = ingredient_id
        if quantity is not None:
            quantity = quantize(require_finite(quantity, "quantity"))
            if quantity <= ZERO:
                raise InvalidInputError("quantity must be positive", field="quantity")
            pending.quantity = quantity
        if price is not None:
            price = quantize(require_finite(price, "price"))
            if price < ZERO:
                raise InvalidInputError("price must be >= 0", field="price")
            pending.price = price
        if purchase_date is not None:
            pending.purchase_date = purchase_date
        self.db.flush()
        return pending

    def _apply(self, pending: PendingPurchase) -> PurchaseReceiptEvent:
        # Invoice quantities are already in base units: no format conversion.
        receipt = EventRecorder(self.db, self.tenant_id).record_purchase_receipt(
            pending.ingredient_id,
            pending.quantity,
            pending.price,
            pending.purchase_date,
            pending_purchase_id=pending.id,
        )
        pending.state = PendingPurchaseState.APPROVED
        pending.decided_at = datetime.utcnow()
        return receipt

    def approve(self, pending_id: int) -> PurchaseReceiptEvent:
        pending = self._locked(pending_id)
        self._require_pending(pending)
        if pending.ingredient_id is None:
            raise InvalidInputError("Pending purchase has no ingredient assigned, edit it first", field="ingredient_id")

        receipt = self._apply(pending)
        self.db.flush()
        logger.info(
            "pending_purchase_approved",
            extra={"tenant_id": self.tenant_id, "pending_id": pending.id, "ingredient_id": pending.ingredient_id},
        )
        return receipt

    def reject(self, pending_id: int) -> PendingPurchase:
        pending = self._locked(pending_id)
        self._require_pending(pending)
        pending.state = PendingPurchaseState.REJECTED
        pending.decided_at = datetime.utcnow()
        self.db.flush()
        logger.info("pending_purchase_rejected", extra={"tenant_id": self.tenant_id, "pending_id": pending.id})
        return pending

    def approve_batch(self, batch_id: str) -> dict:
        """Approve every pending line of a batch; unmatched lines are skipped."""
        items = list(
            self.db.scalars(
                select(PendingPurchase)
                .where(
                    PendingPurchase.batch_id == batch_id,
                    PendingPurchase.tenant_id == self.tenant_id,
                    PendingPurchase.state == PendingPurchaseState.PENDING,
                )
                .order_by(PendingPurchase.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).all()
        )
        if not items:
            raise NotFoundError("No pending items in this batch", batch_id=batch_id)

        approved = skipped = 0
        for pending in items:
            if pending.ingredient_id is None:
                skipped += 1
                continue
            self._apply(pending)
            approved += 1
        self.db.flush()
        logger.info(
            "pending_batch_approved",
            extra={"tenant_id": self.tenant_id, "batch_id": batch_id, "approved": approved, "skipped": skipped},
        )
        return {"approved": approved, "skipped": skipped}
