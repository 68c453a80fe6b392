from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_tenant_id
from app.db.database import get_db, unit_of_work
from app.models.aggregates import AggregateKind
from app.models.inventory import StockMovement
from app.schemas.inventory import (
    BulkAdjustError,
    BulkAdjustOut,
    BulkAdjustRequest,
    DailyAggregateOut,
    DriftOut,
    IngredientOut,
    ReconcileOut,
    ReconcileRequest,
    StockAdjustOut,
    StockAdjustRequest,
    StocktakeOut,
    StocktakeRequest,
    StockMovementOut,
)
from app.services.aggregates import AggregateMaintainer
from app.services.ledger import StockLedger
from app.services.reconciliation import Reconciler, StockCountLine

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.get("/ingredients/{ingredient_id}", response_model=IngredientOut)
def get_ingredient(
    ingredient_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return StockLedger(db, tenant_id).get(ingredient_id)


@router.post("/ingredients/{ingredient_id}/adjust", response_model=StockAdjustOut)
def adjust_stock(
    ingredient_id: int,
    payload: StockAdjustRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        adjustment = StockLedger(db, tenant_id).adjust(
            ingredient_id,
            payload.delta,
            payload.reason,
            source_type="manual",
        )
    return StockAdjustOut.from_adjustment(adjustment)


@router.post("/ingredients/bulk-adjust", response_model=BulkAdjustOut)
def bulk_adjust_stock(
    payload: BulkAdjustRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        outcome = StockLedger(db, tenant_id).bulk_adjust(
            [{"id": item.id, "delta": item.delta} for item in payload.items],
            payload.reason,
        )
    return BulkAdjustOut(
        success=outcome.success,
        results=[StockAdjustOut.from_adjustment(adjustment) for adjustment in outcome.results],
        errors=[BulkAdjustError(**error) for error in outcome.errors],
    )


@router.get("/movements", response_model=list[StockMovementOut])
def list_movements(
    ingredient_id: int | None = Query(default=None),
    source_type: str | None = Query(default=None, max_length=40),
    limit: int = Query(default=100, ge=1, le=1000),
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    query = (
        select(StockMovement)
        .where(StockMovement.tenant_id == tenant_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
    )
    if ingredient_id is not None:
        query = query.where(StockMovement.ingredient_id == ingredient_id)
    if source_type:
        query = query.where(StockMovement.source_type == source_type)
    return db.scalars(query).all()


@router.post("/stocktake", response_model=StocktakeOut)
def stocktake(
    payload: StocktakeRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        adjustments = Reconciler(db, tenant_id).stocktake(
            StockCountLine(ingredient_id=item.ingredient_id, counted_quantity=item.counted_quantity, note=item.note)
            for item in payload.counts
        )
    return StocktakeOut(results=[StockAdjustOut.from_adjustment(adjustment) for adjustment in adjustments])


@router.get("/aggregates/daily", response_model=list[DailyAggregateOut])
def list_daily_aggregates(
    kind: AggregateKind | None = Query(default=None),
    day_from: date | None = Query(default=None),
    day_to: date | None = Query(default=None),
    entity_id: int | None = Query(default=None),
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return AggregateMaintainer(db, tenant_id).daily(kind, day_from, day_to, entity_id)


@router.post("/aggregates/reconcile", response_model=ReconcileOut)
def reconcile_aggregates(
    payload: ReconcileRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        drifts = Reconciler(db, tenant_id).reconcile_daily(payload.day, repair=payload.repair)
    return ReconcileOut(
        day=payload.day,
        repaired=payload.repair and bool(drifts),
        drift=[DriftOut(**drift.to_dict()) for drift in drifts],
    )
