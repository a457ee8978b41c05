from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional
import logging

from circuit_office.database import get_db
from circuit_office.schemas.invoice import (
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceResponse,
    InvoiceLineCreate,
    InvoiceLineUpdate,
    InvoiceLineResponse,
)
from circuit_office.services.invoicing import InvoiceService
from circuit_office.api.errors import service_errors

logger = logging.getLogger(__name__)

router = APIRouter()


class SendRequest(BaseModel):
    sent_to: Optional[str] = None


class MarkPaidRequest(BaseModel):
    payment_method: Optional[str] = None
    payment_ref: Optional[str] = None
    paid_amount: Optional[float] = None


class CancelRequest(BaseModel):
    reason: str
    create_credit_note: bool = False


@router.get("")
async def list_invoices(
    trip_id: Optional[int] = Query(None),
    type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    invoices, total = InvoiceService(db).list_invoices(
        trip_id=trip_id, type=type, status=status, search=search,
        page=page, page_size=page_size,
    )
    return {
        "items": [InvoiceResponse.model_validate(i) for i in invoices],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(data: InvoiceCreate, db: Session = Depends(get_db)):
    with service_errors():
        return InvoiceService(db).create(
            invoice_type=data.type,
            trip_id=data.trip_id,
            lines=[line.model_dump() for line in data.lines],
            client_name=data.client_name,
            client_email=data.client_email,
            currency=data.currency,
            notes=data.notes,
        )


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(invoice_id: int, db: Session = Depends(get_db)):
    with service_errors():
        return InvoiceService(db).get(invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(invoice_id: int, data: InvoiceUpdate, db: Session = Depends(get_db)):
    with service_errors():
        return InvoiceService(db).update(invoice_id, **data.model_dump(exclude_unset=True))


@router.delete("/{invoice_id}")
async def delete_invoice(invoice_id: int, db: Session = Depends(get_db)):
    with service_errors():
        InvoiceService(db).delete(invoice_id)
    return {"message": "Invoice deleted"}


# Lines

@router.post("/{invoice_id}/lines", response_model=InvoiceLineResponse, status_code=201)
async def add_line(invoice_id: int, data: InvoiceLineCreate, db: Session = Depends(get_db)):
    with service_errors():
        return InvoiceService(db).add_line(invoice_id, data.model_dump())


@router.patch("/{invoice_id}/lines/{line_id}", response_model=InvoiceLineResponse)
async def update_line(invoice_id: int, line_id: int, data: InvoiceLineUpdate, db: Session = Depends(get_db)):
    with service_errors():
        return InvoiceService(db).update_line(invoice_id, line_id, data.model_dump(exclude_unset=True))


@router.delete("/{invoice_id}/lines/{line_id}")
async def delete_line(invoice_id: int, line_id: int, db: Session = Depends(get_db)):
    with service_errors():
        InvoiceService(db).delete_line(invoice_id, line_id)
    return {"message": "Line deleted"}


# Workflow

@router.post("/{invoice_id}/send", response_model=InvoiceResponse)
async def send_invoice(invoice_id: int, data: SendRequest, db: Session = Depends(get_db)):
    with service_errors():
        return InvoiceService(db).send(invoice_id, sent_to=data.sent_to)


@router.post("/{invoice_id}/mark-paid")
async def mark_invoice_paid(invoice_id: int, data: MarkPaidRequest, db: Session = Depends(get_db)):
    with service_errors():
        invoice, generated = InvoiceService(db).mark_paid(invoice_id, **data.model_dump())
    return {
        "invoice": InvoiceResponse.model_validate(invoice),
        "generated_invoice": InvoiceResponse.model_validate(generated) if generated else None,
    }


@router.post("/{invoice_id}/cancel")
async def cancel_invoice(invoice_id: int, data: CancelRequest, db: Session = Depends(get_db)):
    with service_errors():
        invoice, credit_note = InvoiceService(db).cancel(
            invoice_id, data.reason, create_credit_note=data.create_credit_note
        )
    return {
        "invoice": InvoiceResponse.model_validate(invoice),
        "credit_note": InvoiceResponse.model_validate(credit_note) if credit_note else None,
    }


@router.post("/{invoice_id}/advance", response_model=InvoiceResponse, status_code=201)
async def advance_invoice(invoice_id: int, db: Session = Depends(get_db)):
    """Turn a quote (DEV) into a proforma (PRO)."""
    with service_errors():
        return InvoiceService(db).advance(invoice_id)
