from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_tenant_id
from app.db.database import get_db, unit_of_work
from app.schemas.sales import (
    RestoredDeltaOut,
    ReversalOut,
    SaleCreateRequest,
    SaleImportError,
    SaleImportOut,
    SaleImportRequest,
    SaleOut,
)
from app.services.recorder import EventRecorder, SaleInput
from app.services.reversal import ReversalEngine
from app.services.sales_import import ImportedSale, SalesImporter

router = APIRouter(prefix="/sales", tags=["Sales"])


@router.post("", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
def create_sale(
    payload: SaleCreateRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        sale = EventRecorder(db, tenant_id).record_sale(
            SaleInput(
                recipe_id=payload.recipe_id,
                quantity=payload.quantity,
                variant_id=payload.variant_id,
                unit_price=payload.unit_price,
                sold_on=payload.sold_on,
            )
        )
    db.refresh(sale)
    return sale


@router.post("/bulk", response_model=SaleImportOut)
def import_sales(
    payload: SaleImportRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        outcome = SalesImporter(db, tenant_id).import_day(
            ImportedSale(
                quantity=item.quantity,
                recipe_name=item.recipe_name,
                pos_code=item.pos_code,
                total=item.total,
                sold_on=item.sold_on,
            )
            for item in payload.items
        )
    return SaleImportOut(
        success=not outcome.errors,
        sold_on=outcome.sold_on,
        processed=outcome.processed,
        failed=outcome.failed,
        errors=[SaleImportError(**error) for error in outcome.errors],
    )


@router.delete("/{sale_id}", response_model=ReversalOut)
def delete_sale(
    sale_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    with unit_of_work(db):
        restored = ReversalEngine(db, tenant_id).reverse_sale(sale_id)
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
