"""Reversal Engine: undo a recorded event by replaying its stored deltas.

Only active (non-deleted) events can be reversed; the event row is locked
first so two concurrent deletes of the same event serialize and the second
one gets ``NotFoundError``.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models.aggregates import AggregateKind
from app.models.events import OrderStatus, PurchaseOrder, PurchaseReceiptEvent, SaleEvent, WasteEvent
from app.models.inventory import Recipe
from app.services.aggregates import AggregateDelta, AggregateMaintainer, period_of
from app.services.deductions import ZERO, compute_deductions
from app.services.ledger import Adjustment, StockLedger

logger = logging.getLogger(__name__)


class ReversalEngine:
    def __init__(self, db: Session, tenant_id: int) -> None:
        self.db = db
        self.tenant_id = tenant_id
        self.ledger = StockLedger(db, tenant_id)
        self.aggregates = AggregateMaintainer(db, tenant_id)

    def _load_active(self, model, event_id: int, label: str):
        event = self.db.scalar(
            select(model)
            .where(model.id == event_id, model.tenant_id == self.tenant_id, model.active())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if not event:
            raise NotFoundError(f"{label} not found", **{f"{label.lower()}_id": event_id})
        return event

    def _legacy_sale_amounts(self, sale: SaleEvent) -> list[tuple[int, Decimal]]:
        # Rows written before deductions were stored: recompute from the
        # current recipe. Lower fidelity if the recipe changed since.
        recipe = self.db.scalar(
            select(Recipe).where(Recipe.id == sale.recipe_id, Recipe.tenant_id == self.tenant_id)
        )
        if not recipe:
            raise NotFoundError("Recipe not found", recipe_id=sale.recipe_id)
        logger.warning(
            "legacy_sale_reversal",
            extra={"tenant_id": self.tenant_id, "sale_id": sale.id, "recipe_id": recipe.id},
        )
        deltas = compute_deductions(
            recipe.lines,
            recipe.servings_per_batch,
            sale.quantity_sold,
            sale.variant_factor,
        )
        return [(delta.ingredient_id, delta.amount) for delta in deltas]

    def reverse_sale(self, sale_id: int) -> list[Adjustment]:
        sale = self._load_active(SaleEvent, sale_id, "Sale")

        if sale.deductions_recorded:
            amounts = [(row.ingredient_id, row.applied_amount) for row in sale.deductions]
        else:
            amounts = self._legacy_sale_amounts(sale)

        self.ledger.lock((ingredient_id for ingredient_id, _ in amounts), include_inactive=True)
        restored = []
        for ingredient_id, amount in amounts:
            if amount <= ZERO:
                continue
            restored.append(
                self.ledger.adjust(
                    ingredient_id,
                    amount,
                    "sale deleted",
                    source_type="sale_reversal",
                    source_id=sale.id,
                    include_inactive=True,
                )
            )

        self.aggregates.subtract(
            AggregateKind.SALES,
            sale.recipe_id,
            sale.sold_on,
            AggregateDelta(quantity=sale.quantity_sold, revenue=sale.total, cost=sale.cost),
        )
        sale.deleted_at = datetime.utcnow()
        self.db.flush()
        logger.info(
            "sale_reversed",
            extra={"tenant_id": self.tenant_id, "sale_id": sale.id, "restored": len(restored)},
        )
        return restored

    def reverse_order(self, order_id: int) -> list[Adjustment]:
        """Undo the receipts of this order only, never a sibling order's."""
        order = self._load_active(PurchaseOrder, order_id, "Order")
        receipts = list(
            self.db.scalars(
                select(PurchaseReceiptEvent)
                .where(
                    PurchaseReceiptEvent.order_id == order.id,
                    PurchaseReceiptEvent.tenant_id == self.tenant_id,
                    PurchaseReceiptEvent.active(),
                )
                .order_by(PurchaseReceiptEvent.id)
                .with_for_update()
            ).all()
        )

        self.ledger.lock((receipt.ingredient_id for receipt in receipts), include_inactive=True)
        now = datetime.utcnow()
        restored = []
        for receipt in receipts:
            if receipt.applied_quantity > ZERO:
                restored.append(
                    self.ledger.adjust(
                        receipt.ingredient_id,
                        -receipt.applied_quantity,
                        "order deleted",
                        source_type="purchase_order_reversal",
                        source_id=order.id,
                        include_inactive=True,
                    )
                )
            self.aggregates.subtract(
                AggregateKind.PURCHASES,
                receipt.ingredient_id,
                receipt.received_on,
                AggregateDelta(quantity=receipt.applied_quantity, cost=receipt.total_cost),
            )
            receipt.deleted_at = now

        order.status = OrderStatus.CANCELLED
        order.deleted_at = now
        self.db.flush()
        logger.info(
            "order_reversed",
            extra={"tenant_id": self.tenant_id, "order_id": order.id, "receipts": len(receipts)},
        )
        return restored

    def reverse_waste(self, waste_id: int) -> Adjustment | None:
        waste = self._load_active(WasteEvent, waste_id, "Waste")

        restored = None
        if waste.applied_quantity > ZERO:
            restored = self.ledger.adjust(
                waste.ingredient_id,
                waste.applied_quantity,
                "waste deleted",
                source_type="waste_reversal",
                source_id=waste.id,
                include_inactive=True,
            )
        self.aggregates.subtract(
            AggregateKind.WASTE,
            waste.ingredient_id,
            waste.wasted_on,
            AggregateDelta(quantity=waste.applied_quantity, cost=waste.loss_value),
        )
        waste.deleted_at = datetime.utcnow()
        self.db.flush()
        logger.info("waste_reversed", extra={"tenant_id": self.tenant_id, "waste_id": waste.id})
        return restored

    def reset_waste_period(self, period_id: int | None = None, reason: str | None = None) -> list[int]:
        """Reverse every active waste event of a month (the current one by default)."""
        period_id = period_id or period_of(date.today())
        events = list(
            self.db.scalars(
                select(WasteEvent)
                .where(
                    WasteEvent.tenant_id == self.tenant_id,
                    WasteEvent.period_id == period_id,
                    WasteEvent.active(),
                )
                .order_by(WasteEvent.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).all()
        )
        self.ledger.lock((event.ingredient_id for event in events), include_inactive=True)

        reversed_ids = []
        for event in events:
            self.reverse_waste(event.id)
            reversed_ids.append(event.id)
        logger.info(
            "waste_period_reset",
            extra={
                "tenant_id": self.tenant_id,
                "period_id": period_id,
                "count": len(reversed_ids),
                "reason": reason or "manual",
            },
        )
        return reversed_ids
