from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_tenant_id
from app.db.database import get_db, unit_of_work
from app.models.purchasing import PendingPurchase, PendingPurchaseState
from app.schemas.purchases import (
    ApproveBatchOut,
    ApproveBatchRequest,
    PendingApproveOut,
    PendingPurchaseOut,
    PendingSubmitOut,
    PendingSubmitRequest,
    PendingUpdateRequest,
    PurchaseReceiptOut,
)
from app.services.pending_purchases import PendingCandidate, PendingPurchaseService

router = APIRouter(prefix="/purchases", tags=["Purchases"])


@router.post("/pending", response_model=PendingSubmitOut, status_code=status.HTTP_201_CREATED)
def submit_pending_purchases(
    payload: PendingSubmitRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        result = PendingPurchaseService(db, tenant_id).submit(
            PendingCandidate(
                ingredient_name=item.ingredient_name,
                quantity=item.quantity,
                price=item.price,
                purchase_date=item.purchase_date,
                ingredient_id=item.ingredient_id,
            )
            for item in payload.items
        )
    return result


@router.get("/pending", response_model=list[PendingPurchaseOut])
def list_pending_purchases(
    state: Literal["pending", "approved", "rejected", "all"] = Query(default="pending"),
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    wanted = None if state == "all" else PendingPurchaseState(state)
    return PendingPurchaseService(db, tenant_id).list_pending(wanted)


@router.post("/pending/approve-batch", response_model=ApproveBatchOut)
def approve_pending_batch(
    payload: ApproveBatchRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        result = PendingPurchaseService(db, tenant_id).approve_batch(payload.batch_id)
    return result


@router.put("/pending/{pending_id}", response_model=PendingPurchaseOut)
def update_pending_purchase(
    pending_id: int,
    payload: PendingUpdateRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        pending = PendingPurchaseService(db, tenant_id).update_pending(
            pending_id,
            ingredient_id=payload.ingredient_id,
            quantity=payload.quantity,
            price=payload.price,
            purchase_date=payload.purchase_date,
        )
    db.refresh(pending)
    return pending


@router.post("/pending/{pending_id}/approve", response_model=PendingApproveOut)
def approve_pending_purchase(
    pending_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        receipt = PendingPurchaseService(db, tenant_id).approve(pending_id)
    pending = db.get(PendingPurchase, pending_id)
    return PendingApproveOut(
        pending=PendingPurchaseOut.model_validate(pending),
        receipt=PurchaseReceiptOut.model_validate(receipt),
    )


@router.post("/pending/{pending_id}/reject", response_model=PendingPurchaseOut)
def reject_pending_purchase(
    pending_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        pending = PendingPurchaseService(db, tenant_id).reject(pending_id)
    db.refresh(pending)
    return pending
