"""
Invoice documents and their status transitions.

Document chain: DEV (quote) -> PRO (proforma) -> FA (invoice), and AV
(credit note) to cancel an FA. DEV and PRO are commercial documents that
stay editable once sent; FA and AV are final and only editable as drafts.
"""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from circuit_office.models.invoice import Invoice, InvoiceLine, InvoiceType, InvoiceStatus

logger = logging.getLogger(__name__)

COMMERCIAL_TYPES = {InvoiceType.QUOTE.value, InvoiceType.PROFORMA.value}
LINE_FIELDS = ("description", "details", "quantity", "unit_price_ttc", "line_type", "sort_order")
INVOICE_FIELDS = ("client_name", "client_email", "currency", "notes")


class InvoiceStateError(Exception):
    """The invoice's type/status does not allow the requested action."""


class InvoiceNotFound(Exception):
    pass


def is_editable(invoice: Invoice) -> bool:
    if invoice.type in COMMERCIAL_TYPES:
        return invoice.status in (InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value)
    return invoice.status == InvoiceStatus.DRAFT.value


def can_send(invoice: Invoice) -> bool:
    if invoice.status == InvoiceStatus.DRAFT.value:
        return True
    return invoice.type in COMMERCIAL_TYPES and invoice.status == InvoiceStatus.SENT.value


def can_mark_paid(invoice: Invoice) -> bool:
    return (
        invoice.status not in (InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value)
        and invoice.type != InvoiceType.CREDIT_NOTE.value
    )


def line_total(quantity: Optional[float], unit_price_ttc: Optional[float]) -> float:
    return round((quantity or 0.0) * (unit_price_ttc or 0.0), 2)


class InvoiceService:

    def __init__(self, db: Session):
        self.db = db

    def get(self, invoice_id: int) -> Invoice:
        invoice = self.db.query(Invoice).filter(Invoice.id == invoice_id).first()
        if not invoice:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found")
        return invoice

    def list_invoices(
        self,
        trip_id: Optional[int] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Invoice], int]:
        query = self.db.query(Invoice)
        if trip_id is not None:
            query = query.filter(Invoice.trip_id == trip_id)
        if type:
            query = query.filter(Invoice.type == type)
        if status:
            query = query.filter(Invoice.status == status)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                (Invoice.number.ilike(pattern)) | (Invoice.client_name.ilike(pattern))
            )
        total = query.count()
        invoices = (
            query.order_by(Invoice.id.desc())
            .offset((max(page, 1) - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return invoices, total

    def next_number(self, invoice_type: str, year: Optional[int] = None) -> str:
        year = year or datetime.utcnow().year
        prefix = f"{invoice_type}-{year}-"
        numbers = self.db.query(Invoice.number).filter(Invoice.number.like(f"{prefix}%")).all()
        # Deleted drafts leave gaps, so continue from the highest suffix in use
        last = max(
            (int(number[len(prefix):]) for (number,) in numbers if number[len(prefix):].isdigit()),
            default=0,
        )
        return f"{prefix}{last + 1:04d}"

    def create(
        self,
        invoice_type: str = InvoiceType.QUOTE.value,
        trip_id: Optional[int] = None,
        lines: Optional[list[dict]] = None,
        source_invoice_id: Optional[int] = None,
        **fields,
    ) -> Invoice:
        invoice_type = InvoiceType(invoice_type).value
        invoice = Invoice(
            number=self.next_number(invoice_type),
            type=invoice_type,
            status=InvoiceStatus.DRAFT.value,
            trip_id=trip_id,
            source_invoice_id=source_invoice_id,
            **{k: v for k, v in fields.items() if k in INVOICE_FIELDS and v is not None},
        )
        for position, data in enumerate(lines or []):
            invoice.lines.append(self._build_line(data, position))
        self._recompute_total(invoice)
        self.db.add(invoice)
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Created invoice {invoice.number}")
        return invoice

    def update(self, invoice_id: int, **fields) -> Invoice:
        invoice = self._editable(invoice_id)
        for key, value in fields.items():
            if key in INVOICE_FIELDS and value is not None:
                setattr(invoice, key, value)
        self.db.commit()
        self.db.refresh(invoice)
        return invoice

    def delete(self, invoice_id: int) -> None:
        invoice = self.get(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise InvoiceStateError(f"Only draft invoices can be deleted ({invoice.number} is {invoice.status})")
        self.db.delete(invoice)
        self.db.commit()

    # -- lines -----------------------------------------------------------

    def add_line(self, invoice_id: int, data: dict) -> InvoiceLine:
        invoice = self._editable(invoice_id)
        line = self._build_line(data, len(invoice.lines))
        invoice.lines.append(line)
        self._recompute_total(invoice)
        self.db.commit()
        self.db.refresh(line)
        return line

    def update_line(self, invoice_id: int, line_id: int, data: dict) -> InvoiceLine:
        invoice = self._editable(invoice_id)
        line = self._line(invoice, line_id)
        for key, value in data.items():
            if key in LINE_FIELDS and value is not None:
                setattr(line, key, value)
        line.total_ttc = line_total(line.quantity, line.unit_price_ttc)
        self._recompute_total(invoice)
        self.db.commit()
        self.db.refresh(line)
        return line

    def delete_line(self, invoice_id: int, line_id: int) -> None:
        invoice = self._editable(invoice_id)
        invoice.lines.remove(self._line(invoice, line_id))
        self._recompute_total(invoice)
        self.db.commit()

    # -- workflow --------------------------------------------------------

    def send(self, invoice_id: int, sent_to: Optional[str] = None) -> Invoice:
        invoice = self.get(invoice_id)
        if not can_send(invoice):
            raise InvoiceStateError(f"Invoice {invoice.number} cannot be sent while {invoice.status}")
        invoice.status = InvoiceStatus.SENT.value
        invoice.sent_at = datetime.utcnow()
        if sent_to:
            invoice.client_email = sent_to
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.number} marked as sent")
        return invoice

    def mark_paid(
        self,
        invoice_id: int,
        payment_method: Optional[str] = None,
        payment_ref: Optional[str] = None,
        paid_amount: Optional[float] = None,
    ) -> tuple[Invoice, Optional[Invoice]]:
        """Mark an invoice paid; a paid proforma generates the final invoice."""
        invoice = self.get(invoice_id)
        if not can_mark_paid(invoice):
            raise InvoiceStateError(f"Invoice {invoice.number} cannot be marked paid")

        invoice.status = InvoiceStatus.PAID.value
        invoice.paid_at = datetime.utcnow()
        invoice.payment_method = payment_method
        invoice.payment_ref = payment_ref
        invoice.paid_amount = paid_amount if paid_amount is not None else invoice.total_ttc
        self.db.commit()

        generated = None
        if invoice.type == InvoiceType.PROFORMA.value:
            generated = self._derive(invoice, InvoiceType.INVOICE.value)
            generated.status = InvoiceStatus.PAID.value
            generated.paid_at = invoice.paid_at
            generated.paid_amount = invoice.paid_amount
            self.db.commit()
            self.db.refresh(generated)

        self.db.refresh(invoice)
        return invoice, generated

    def cancel(self, invoice_id: int, reason: str, create_credit_note: bool = False) -> tuple[Invoice, Optional[Invoice]]:
        invoice = self.get(invoice_id)
        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise InvoiceStateError(f"Invoice {invoice.number} is already cancelled")

        invoice.status = InvoiceStatus.CANCELLED.value
        invoice.cancelled_at = datetime.utcnow()
        invoice.cancel_reason = reason
        self.db.commit()

        credit_note = None
        if create_credit_note and invoice.type == InvoiceType.INVOICE.value:
            credit_note = self._derive(invoice, InvoiceType.CREDIT_NOTE.value, negate=True)
            self.db.commit()
            self.db.refresh(credit_note)

        self.db.refresh(invoice)
        return invoice, credit_note

    def advance(self, invoice_id: int) -> Invoice:
        """Turn a quote into a proforma carrying the same lines."""
        invoice = self.get(invoice_id)
        if invoice.type != InvoiceType.QUOTE.value or invoice.status == InvoiceStatus.CANCELLED.value:
            raise InvoiceStateError(f"Only an active quote can become a proforma ({invoice.number})")
        proforma = self._derive(invoice, InvoiceType.PROFORMA.value)
        self.db.commit()
        self.db.refresh(proforma)
        return proforma

    # -- helpers ---------------------------------------------------------

    def _editable(self, invoice_id: int) -> Invoice:
        invoice = self.get(invoice_id)
        if not is_editable(invoice):
            raise InvoiceStateError(f"Invoice {invoice.number} is not editable while {invoice.status}")
        return invoice

    @staticmethod
    def _line(invoice: Invoice, line_id: int) -> InvoiceLine:
        for line in invoice.lines:
            if line.id == line_id:
                return line
        raise InvoiceNotFound(f"Line {line_id} not found on invoice {invoice.number}")

    @staticmethod
    def _build_line(data: dict, position: int) -> InvoiceLine:
        fields = {k: v for k, v in data.items() if k in LINE_FIELDS and v is not None}
        fields.setdefault("sort_order", position)
        line = InvoiceLine(**fields)
        line.total_ttc = line_total(line.quantity if line.quantity is not None else 1.0, line.unit_price_ttc)
        return line

    @staticmethod
    def _recompute_total(invoice: Invoice) -> None:
        invoice.total_ttc = round(sum(line.total_ttc or 0.0 for line in invoice.lines), 2)

    def _derive(self, source: Invoice, invoice_type: str, negate: bool = False) -> Invoice:
        sign = -1 if negate else 1
        derived = Invoice(
            number=self.next_number(invoice_type),
            type=invoice_type,
            status=InvoiceStatus.DRAFT.value,
            trip_id=source.trip_id,
            source_invoice_id=source.id,
            client_name=source.client_name,
            client_email=source.client_email,
            currency=source.currency,
        )
        for line in source.lines:
            derived.lines.append(InvoiceLine(
                description=line.description,
                details=line.details,
                quantity=line.quantity,
                unit_price_ttc=sign * (line.unit_price_ttc or 0.0),
                total_ttc=sign * (line.total_ttc or 0.0),
                line_type=line.line_type,
                sort_order=line.sort_order,
            ))
        self._recompute_total(derived)
        self.db.add(derived)
        logger.info(f"Generated {invoice_type} {derived.number} from {source.number}")
        return derived
