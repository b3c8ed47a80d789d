from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from schemas.invoice import (
    InvoiceAdjustments,
    InvoiceCreate,
    InvoiceLineCreate,
    InvoiceLineUpdate,
    InvoiceOut,
    RecalculateResponse,
)
from security.auth import require_admin
from services import invoices as invoice_service

router = APIRouter(prefix="/admin/invoices", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("", response_model=InvoiceOut, status_code=201)
def create_invoice(data: InvoiceCreate, db: Session = Depends(get_db)):
    return invoice_service.create_invoice(db, data.customer_id, data.customer_snapshot)


@router.get("/{invoice_id}", response_model=InvoiceOut)
def read_invoice(invoice_id: int, db: Session = Depends(get_db)):
    return invoice_service.get_invoice(db, invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(invoice_id: int, data: InvoiceAdjustments, db: Session = Depends(get_db)):
    return invoice_service.update_adjustments(db, invoice_id, data.delivery_cents, data.discount_cents)


@router.post("/{invoice_id}/lines", response_model=InvoiceOut, status_code=201)
def add_invoice_line(invoice_id: int, data: InvoiceLineCreate, db: Session = Depends(get_db)):
    return invoice_service.add_line(
        db,
        invoice_id,
        product_id=data.product_id,
        variant_id=data.variant_id,
        qty=data.qty,
        unit_price_cents=data.unit_price_cents,
        title_snapshot=data.title_snapshot,
    )


@router.patch("/{invoice_id}/lines/{line_id}", response_model=InvoiceOut)
def update_invoice_line(invoice_id: int, line_id: int, data: InvoiceLineUpdate, db: Session = Depends(get_db)):
    return invoice_service.update_line(db, invoice_id, line_id, qty=data.qty, unit_price_cents=data.unit_price_cents)


@router.delete("/{invoice_id}/lines/{line_id}", response_model=InvoiceOut)
def delete_invoice_line(invoice_id: int, line_id: int, db: Session = Depends(get_db)):
    return invoice_service.remove_line(db, invoice_id, line_id)


@router.post("/{invoice_id}/issue", response_model=InvoiceOut)
def issue_invoice(invoice_id: int, db: Session = Depends(get_db)):
    return invoice_service.issue_invoice(db, invoice_id)


@router.post("/{invoice_id}/cancel", response_model=InvoiceOut)
def cancel_invoice(invoice_id: int, db: Session = Depends(get_db)):
    return invoice_service.cancel_invoice(db, invoice_id)


@router.post("/{invoice_id}/recalculate", response_model=RecalculateResponse)
def recalculate_invoice(invoice_id: int, db: Session = Depends(get_db)):
    invoice, drift = invoice_service.recalculate_invoice(db, invoice_id)
    return RecalculateResponse(drift=drift, invoice=InvoiceOut.model_validate(invoice))
