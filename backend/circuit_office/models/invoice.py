from enum import Enum
from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from circuit_office.database import Base


class InvoiceType(str, Enum):
    QUOTE = "DEV"
    PROFORMA = "PRO"
    INVOICE = "FA"
    CREDIT_NOTE = "AV"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    CANCELLED = "cancelled"


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)

    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="SET NULL"), nullable=True, index=True)
    # Document this one was generated from (DEV -> PRO -> FA, FA -> AV)
    source_invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True)

    number = Column(String(30), nullable=False, unique=True)
    type = Column(String(3), nullable=False, default=InvoiceType.QUOTE.value)
    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value)

    client_name = Column(String(200), nullable=True)
    client_email = Column(String(200), nullable=True)
    currency = Column(String(3), default="EUR")
    total_ttc = Column(Float, default=0.0)

    sent_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    paid_amount = Column(Float, nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_ref = Column(String(100), nullable=True)

    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    lines = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.sort_order",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.number} ({self.status}) {self.total_ttc} {self.currency}>"


class InvoiceLine(Base):
    __tablename__ = "invoice_lines"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    description = Column(String(300), nullable=False)
    details = Column(Text, nullable=True)
    quantity = Column(Float, default=1.0)
    unit_price_ttc = Column(Float, default=0.0)
    total_ttc = Column(Float, default=0.0)
    line_type = Column(String(20), default="service")
    sort_order = Column(Integer, default=0)

    invoice = relationship("Invoice", back_populates="lines")
