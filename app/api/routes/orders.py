from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_tenant_id
from app.db.database import get_db, unit_of_work
from app.schemas.purchases import OrderCreateRequest, OrderOut, OrderReceiveRequest, PurchaseReceiptOut, ReceiptLineIn
from app.schemas.sales import RestoredDeltaOut, ReversalOut
from app.services.recorder import EventRecorder, ReceiptLine
from app.services.reversal import ReversalEngine

router = APIRouter(prefix="/orders", tags=["Orders"])


def _receipt_lines(lines: list[ReceiptLineIn]) -> list[ReceiptLine]:
    return [
        ReceiptLine(
            ingredient_id=line.ingredient_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            in_purchase_formats=line.in_purchase_formats,
        )
        for line in lines
    ]


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreateRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        order, _ = EventRecorder(db, tenant_id).create_order(
            payload.supplier_name,
            payload.ordered_on,
            _receipt_lines(payload.lines),
            received=payload.received,
            note=payload.note,
        )
    db.refresh(order)
    return order


@router.post("/{order_id}/receive", response_model=list[PurchaseReceiptOut])
def receive_order(
    order_id: int,
    payload: OrderReceiveRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        receipts = EventRecorder(db, tenant_id).receive_order(
            order_id,
            _receipt_lines(payload.lines),
            received_on=payload.received_on,
        )
    return receipts


@router.delete("/{order_id}", response_model=ReversalOut)
def delete_order(
    order_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        restored = ReversalEngine(db, tenant_id).reverse_order(order_id)
    return ReversalOut(
        restored_deltas=[
            RestoredDeltaOut(
                ingredient_id=adjustment.ingredient_id,
                applied_delta=adjustment.applied_delta,
                new_quantity=adjustment.new_quantity,
            )
            for adjustment in restored
        ]
    )
