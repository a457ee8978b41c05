from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class InvoiceLineBase(BaseModel):
    description: str
    details: Optional[str] = None
    quantity: float = 1.0
    unit_price_ttc: float = 0.0
    line_type: str = "service"


class InvoiceLineCreate(InvoiceLineBase):
    sort_order: Optional[int] = None


class InvoiceLineUpdate(BaseModel):
    description: Optional[str] = None
    details: Optional[str] = None
    quantity: Optional[float] = None
    unit_price_ttc: Optional[float] = None
    line_type: Optional[str] = None
    sort_order: Optional[int] = None


class InvoiceLineResponse(InvoiceLineBase):
    id: int
    total_ttc: float
    sort_order: int = 0

    class Config:
        from_attributes = True


class InvoiceCreate(BaseModel):
    type: str = "DEV"
    trip_id: Optional[int] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    currency: Optional[str] = None
    notes: Optional[str] = None
    lines: list[InvoiceLineCreate] = []


class InvoiceUpdate(BaseModel):
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    currency: Optional[str] = None
    notes: Optional[str] = None


class InvoiceResponse(BaseModel):
    id: int
    number: str
    type: str
    status: str
    trip_id: Optional[int] = None
    source_invoice_id: Optional[int] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    currency: Optional[str] = None
    total_ttc: float = 0.0
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    paid_amount: Optional[float] = None
    payment_method: Optional[str] = None
    payment_ref: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    notes: Optional[str] = None
    lines: list[InvoiceLineResponse] = []

    class Config:
        from_attributes = True
