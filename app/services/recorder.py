"""Event Recorder: business events that move stock.

Every event stores what the ledger actually applied (after the zero floor),
never the requested amount, so ``app.services.reversal`` can undo it exactly.
The ledger write, the event row and the aggregate upsert all happen in the
caller's unit of work.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import InvalidInputError, InvalidStateError, NotFoundError
from app.models.aggregates import AggregateKind
from app.models.events import (
    OrderStatus,
    PurchaseOrder,
    PurchaseReceiptEvent,
    SaleDeduction,
    SaleEvent,
    WasteEvent,
)
from app.models.inventory import Recipe, RecipeVariant
from app.services.aggregates import AggregateDelta, AggregateMaintainer, period_of
from app.services.deductions import (
    ZERO,
    compute_deductions,
    deductions_cost,
    ingredient_unit_cost,
    purchase_formats_to_units,
    quantize,
    require_finite,
)
from app.services.ledger import StockLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleInput:
    recipe_id: int
    quantity: Decimal
    variant_id: int | None = None
    unit_price: Decimal | None = None
    sold_on: date | None = None
    # Ticket total from the till; defaults to unit price x quantity.
    total: Decimal | None = None


@dataclass(frozen=True)
class ReceiptLine:
    ingredient_id: int
    quantity: Decimal
    # Price of one unit of ``quantity``: per format when in_purchase_formats.
    unit_price: Decimal | None = None
    in_purchase_formats: bool = False


@dataclass(frozen=True)
class WasteLine:
    ingredient_id: int
    quantity: Decimal
    reason: str = "other"
    note: str | None = None
    loss_value: Decimal | None = None
    wasted_on: date | None = None


def _positive(value, field: str) -> Decimal:
    number = quantize(require_finite(value, field))
    if number <= ZERO:
        raise InvalidInputError(f"{field} must be positive", field=field)
    return number


def _non_negative(value, field: str) -> Decimal:
    number = quantize(require_finite(value, field))
    if number < ZERO:
        raise InvalidInputError(f"{field} must be >= 0", field=field)
    return number


class EventRecorder:
    def __init__(self, db: Session, tenant_id: int) -> None:
        self.db = db
        self.tenant_id = tenant_id
        self.ledger = StockLedger(db, tenant_id)
        self.aggregates = AggregateMaintainer(db, tenant_id)

    # -- sales -----------------------------------------------------------

    def record_sale(self, payload: SaleInput) -> SaleEvent:
        quantity = _positive(payload.quantity, "quantity")
        explicit_price = None
        if payload.unit_price is not None:
            explicit_price = _non_negative(payload.unit_price, "unit_price")
        explicit_total = None
        if payload.total is not None:
            explicit_total = _non_negative(payload.total, "total")

        recipe = self.db.scalar(
            select(Recipe).where(
                Recipe.id == payload.recipe_id,
                Recipe.tenant_id == self.tenant_id,
                Recipe.is_active.is_(True),
            )
        )
        if not recipe:
            raise NotFoundError("Recipe not found", recipe_id=payload.recipe_id)

        variant = None
        if payload.variant_id is not None:
            variant = self.db.scalar(
                select(RecipeVariant).where(
                    RecipeVariant.id == payload.variant_id,
                    RecipeVariant.recipe_id == recipe.id,
                )
            )
            if not variant:
                raise NotFoundError("Recipe variant not found", variant_id=payload.variant_id)

        factor = Decimal(variant.factor) if variant else None
        deltas = compute_deductions(recipe.lines, recipe.servings_per_batch, quantity, factor)

        # Recipe line order is the global lock order for sales.
        ingredients = self.ledger.lock(delta.ingredient_id for delta in deltas)
        unit_costs = {
            ingredient_id: ingredient_unit_cost(ingredient.unit_price, ingredient.units_per_purchase_format)
            for ingredient_id, ingredient in ingredients.items()
        }

        if explicit_price is not None:
            unit_price = explicit_price
        elif variant and variant.price_override is not None:
            unit_price = quantize(variant.price_override)
        else:
            unit_price = quantize(recipe.sale_price)
        total = explicit_total if explicit_total is not None else quantize(unit_price * quantity)
        cost = deductions_cost(deltas, unit_costs)
        sold_on = payload.sold_on or date.today()

        sale = SaleEvent(
            tenant_id=self.tenant_id,
            recipe_id=recipe.id,
            variant_id=variant.id if variant else None,
            variant_factor=factor if factor is not None else Decimal("1"),
            quantity_sold=quantity,
            unit_price=unit_price,
            total=total,
            cost=cost,
            sold_on=sold_on,
            deductions_recorded=True,
        )
        self.db.add(sale)
        self.db.flush()

        for delta in deltas:
            adjustment = self.ledger.adjust(
                delta.ingredient_id,
                -delta.amount,
                "sale",
                source_type="sale",
                source_id=sale.id,
            )
            sale.deductions.append(
                SaleDeduction(
                    ingredient_id=delta.ingredient_id,
                    position=delta.position,
                    requested_amount=delta.amount,
                    applied_amount=-adjustment.applied_delta,
                )
            )

        self.aggregates.accumulate(
            AggregateKind.SALES,
            recipe.id,
            sold_on,
            AggregateDelta(quantity=quantity, revenue=total, cost=cost),
        )
        self.db.flush()
        logger.info(
            "sale_recorded",
            extra={
                "tenant_id": self.tenant_id,
                "sale_id": sale.id,
                "recipe_id": recipe.id,
                "variant_id": sale.variant_id,
                "quantity": quantity,
                "total": total,
                "lines": len(deltas),
            },
        )
        return sale

    # -- purchases ---------------------------------------------------------

    def record_purchase_receipt(
        self,
        ingredient_id: int,
        quantity,
        unit_cost,
        received_on: date,
        *,
        order_id: int | None = None,
        pending_purchase_id: int | None = None,
        total_cost=None,
    ) -> PurchaseReceiptEvent:
        """Add received stock and store the receipt with its applied quantity."""
        quantity = _positive(quantity, "quantity")
        unit_cost = _non_negative(unit_cost, "unit_cost")
        total = quantize(unit_cost * quantity) if total_cost is None else _non_negative(total_cost, "total_cost")

        receipt = PurchaseReceiptEvent(
            tenant_id=self.tenant_id,
            order_id=order_id,
            pending_purchase_id=pending_purchase_id,
            ingredient_id=ingredient_id,
            quantity_received=quantity,
            applied_quantity=ZERO,
            unit_cost=unit_cost,
            total_cost=total,
            received_on=received_on,
        )
        adjustment = self.ledger.adjust(
            ingredient_id,
            quantity,
            "purchase",
            source_type="purchase_order" if order_id is not None else "pending_purchase",
            source_id=order_id if order_id is not None else pending_purchase_id,
        )
        receipt.applied_quantity = adjustment.applied_delta
        self.db.add(receipt)
        self.db.flush()

        self.aggregates.accumulate(
            AggregateKind.PURCHASES,
            ingredient_id,
            received_on,
            AggregateDelta(quantity=receipt.applied_quantity, cost=total),
        )
        return receipt

    def create_order(
        self,
        supplier_name: str | None,
        ordered_on: date | None = None,
        lines: Iterable[ReceiptLine] | None = None,
        *,
        received: bool = False,
        note: str | None = None,
    ) -> tuple[PurchaseOrder, list[PurchaseReceiptEvent]]:
        """Open a purchase order; ``received=True`` books a market purchase at once."""
        lines = list(lines or [])
        if received and not lines:
            raise InvalidInputError("A received order needs at least one line", field="lines")

        order = PurchaseOrder(
            tenant_id=self.tenant_id,
            supplier_name=supplier_name.strip() if supplier_name else None,
            status=OrderStatus.PENDING,
            ordered_on=ordered_on or date.today(),
            note=note.strip() if note else None,
        )
        self.db.add(order)
        self.db.flush()
        logger.info("order_created", extra={"tenant_id": self.tenant_id, "order_id": order.id})

        receipts: list[PurchaseReceiptEvent] = []
        if received:
            receipts = self.receive_order(order.id, lines, received_on=order.ordered_on)
        return order, receipts

    def receive_order(
        self,
        order_id: int,
        lines: Iterable[ReceiptLine],
        received_on: date | None = None,
    ) -> list[PurchaseReceiptEvent]:
        order = self.db.scalar(
            select(PurchaseOrder)
            .where(
                PurchaseOrder.id == order_id,
                PurchaseOrder.tenant_id == self.tenant_id,
                PurchaseOrder.active(),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if not order:
            raise NotFoundError("Order not found", order_id=order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidStateError("Order has already been processed", order_id=order_id, status=order.status.value)

        lines = list(lines)
        if not lines:
            raise InvalidInputError("At least one line is required", field="lines")
        for line in lines:
            _positive(line.quantity, "quantity")
            if line.unit_price is not None:
                _non_negative(line.unit_price, "unit_price")

        ingredients = self.ledger.lock(line.ingredient_id for line in lines)

        # One receipt per (order, ingredient, day): repeated lines are merged.
        merged: dict[int, list[Decimal]] = {}
        for line in lines:
            ingredient = ingredients[line.ingredient_id]
            given = quantize(Decimal(line.quantity))
            if line.in_purchase_formats:
                # A tiny format count can round to zero base units.
                base_quantity = _positive(
                    purchase_formats_to_units(given, ingredient.units_per_purchase_format), "quantity"
                )
                price = Decimal(line.unit_price) if line.unit_price is not None else Decimal(ingredient.unit_price)
            else:
                base_quantity = given
                price = (
                    Decimal(line.unit_price)
                    if line.unit_price is not None
                    else ingredient_unit_cost(ingredient.unit_price, ingredient.units_per_purchase_format)
                )
            totals = merged.setdefault(line.ingredient_id, [ZERO, ZERO])
            totals[0] += base_quantity
            totals[1] += given * price

        day = received_on or date.today()
        receipts = []
        for ingredient_id, (base_quantity, total) in merged.items():
            receipts.append(
                self.record_purchase_receipt(
                    ingredient_id,
                    base_quantity,
                    quantize(total / base_quantity),
                    day,
                    order_id=order.id,
                    total_cost=quantize(total),
                )
            )

        order.status = OrderStatus.RECEIVED
        order.received_on = day
        self.db.flush()
        logger.info(
            "order_received",
            extra={"tenant_id": self.tenant_id, "order_id": order.id, "receipts": len(receipts)},
        )
        return receipts

    # -- waste -------------------------------------------------------------

    def record_waste(self, lines: Iterable[WasteLine]) -> list[WasteEvent]:
        """Register a batch of waste. Any failing line aborts the whole batch."""
        lines = list(lines)
        if not lines:
            raise InvalidInputError("At least one waste line is required", field="lines")
        validated = []
        for line in lines:
            quantity = _positive(line.quantity, "quantity")
            loss = None if line.loss_value is None else _non_negative(line.loss_value, "loss_value")
            validated.append((line, quantity, loss))

        ingredients = self.ledger.lock(line.ingredient_id for line in lines)

        events = []
        for line, quantity, loss in validated:
            ingredient = ingredients[line.ingredient_id]
            if loss is None:
                unit_cost = ingredient_unit_cost(ingredient.unit_price, ingredient.units_per_purchase_format)
                loss = quantize(quantity * unit_cost)
            wasted_on = line.wasted_on or date.today()

            waste = WasteEvent(
                tenant_id=self.tenant_id,
                ingredient_id=line.ingredient_id,
                quantity_wasted=quantity,
                applied_quantity=ZERO,
                loss_value=loss,
                reason=(line.reason or "other").strip()[:80],
                note=line.note.strip()[:255] if line.note else None,
                period_id=period_of(wasted_on),
                wasted_on=wasted_on,
            )
            self.db.add(waste)
            self.db.flush()

            adjustment = self.ledger.adjust(
                line.ingredient_id,
                -quantity,
                f"waste: {waste.reason}",
                source_type="waste",
                source_id=waste.id,
            )
            waste.applied_quantity = -adjustment.applied_delta
            self.aggregates.accumulate(
                AggregateKind.WASTE,
                line.ingredient_id,
                wasted_on,
                AggregateDelta(quantity=waste.applied_quantity, cost=loss),
            )
            events.append(waste)

        self.db.flush()
        logger.info("waste_recorded", extra={"tenant_id": self.tenant_id, "count": len(events)})
        return events