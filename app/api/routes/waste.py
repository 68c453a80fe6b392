from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_tenant_id
from app.db.database import get_db, unit_of_work
from app.schemas.waste import WasteCreateOut, WasteCreateRequest, WasteOut, WasteResetOut, WasteReversalOut
from app.services.aggregates import period_of
from app.services.recorder import EventRecorder, WasteLine
from app.services.reversal import ReversalEngine

router = APIRouter(prefix="/waste", tags=["Waste"])


@router.post("", response_model=WasteCreateOut, status_code=status.HTTP_201_CREATED)
def register_waste(
    payload: WasteCreateRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        events = EventRecorder(db, tenant_id).record_waste(
            WasteLine(
                ingredient_id=item.ingredient_id,
                quantity=item.quantity,
                reason=item.reason,
                note=item.note,
                loss_value=item.loss_value,
                wasted_on=item.wasted_on,
            )
            for item in payload.items
        )
    return WasteCreateOut(count=len(events), items=[WasteOut.model_validate(event) for event in events])


@router.delete("/reset", response_model=WasteResetOut)
def reset_waste_period(
    period_id: int | None = Query(default=None, ge=190001, le=999912),
    reason: str | None = Query(default=None, max_length=120),
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    period_id = period_id or period_of(date.today())
    with unit_of_work(db):
        deleted = ReversalEngine(db, tenant_id).reset_waste_period(period_id, reason)
    return WasteResetOut(period_id=period_id, deleted=len(deleted), reason=reason or "manual")


@router.delete("/{waste_id}", response_model=WasteReversalOut)
def delete_waste(
    waste_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        restored = ReversalEngine(db, tenant_id).reverse_waste(waste_id)
    if restored is None:
        return WasteReversalOut(restored=Decimal("0"), new_quantity=None)
    return WasteReversalOut(restored=restored.applied_delta, new_quantity=restored.new_quantity)
