"""Tests for invoices and their DEV -> PRO -> FA / AV workflow."""
import pytest
from datetime import datetime

from circuit_office.models import Invoice
from circuit_office.services.invoicing import (
    InvoiceService,
    InvoiceStateError,
    InvoiceNotFound,
    line_total,
)

YEAR = datetime.utcnow().year

LINES = [
    {"description": "Northern Thailand circuit", "quantity": 2, "unit_price_ttc": 1250.0},
    {"description": "Single supplement", "quantity": 1, "unit_price_ttc": 180.5},
]


@pytest.fixture
def service(db_session):
    return InvoiceService(db_session)


class TestNumbering:
    def test_numbers_are_sequential_per_type(self, service):
        first = service.create("DEV", client_name="Martin")
        second = service.create("DEV", client_name="Durand")
        proforma = service.create("PRO")

        assert first.number == f"DEV-{YEAR}-0001"
        assert second.number == f"DEV-{YEAR}-0002"
        assert proforma.number == f"PRO-{YEAR}-0001"

    def test_deleted_draft_does_not_reuse_a_number(self, service):
        first = service.create("DEV")
        service.create("DEV")
        service.delete(first.id)

        third = service.create("DEV")
        assert third.number == f"DEV-{YEAR}-0003"

    def test_unknown_type_is_rejected(self, service):
        with pytest.raises(ValueError):
            service.create("XX")


class TestLines:
    def test_totals(self, service):
        invoice = service.create("DEV", lines=LINES)
        assert [line.total_ttc for line in invoice.lines] == [2500.0, 180.5]
        assert invoice.total_ttc == 2680.5

    def test_quantity_defaults_to_one(self, service):
        invoice = service.create("DEV", lines=[{"description": "Visa fees", "unit_price_ttc": 35.0}])
        assert invoice.total_ttc == 35.0

    def test_line_total_rounding(self):
        assert line_total(3, 33.333) == 100.0
        assert line_total(None, 10.0) == 0.0

    def test_add_update_delete_line(self, service):
        invoice = service.create("DEV", lines=LINES)

        line = service.add_line(invoice.id, {"description": "Airport transfer", "quantity": 1, "unit_price_ttc": 60})
        assert service.get(invoice.id).total_ttc == 2740.5

        service.update_line(invoice.id, line.id, {"quantity": 2})
        assert service.get(invoice.id).total_ttc == 2800.5

        service.delete_line(invoice.id, line.id)
        assert service.get(invoice.id).total_ttc == 2680.5

    def test_unknown_line(self, service):
        invoice = service.create("DEV", lines=LINES)
        with pytest.raises(InvoiceNotFound):
            service.update_line(invoice.id, 999, {"quantity": 3})


class TestEditRules:
    def test_sent_quote_stays_editable(self, service):
        invoice = service.create("DEV", lines=LINES)
        service.send(invoice.id)
        updated = service.update(invoice.id, client_name="Martin & Co")
        assert updated.client_name == "Martin & Co"

    def test_sent_invoice_is_locked(self, service):
        invoice = service.create("FA", lines=LINES)
        service.send(invoice.id)
        with pytest.raises(InvoiceStateError):
            service.add_line(invoice.id, {"description": "Extra", "unit_price_ttc": 10})

    def test_quote_can_be_resent(self, service):
        invoice = service.create("DEV")
        service.send(invoice.id)
        resent = service.send(invoice.id, sent_to="client@example.com")
        assert resent.status == "sent"
        assert resent.client_email == "client@example.com"

    def test_invoice_cannot_be_resent(self, service):
        invoice = service.create("FA")
        service.send(invoice.id)
        with pytest.raises(InvoiceStateError):
            service.send(invoice.id)

    def test_only_drafts_can_be_deleted(self, service):
        draft = service.create("DEV")
        sent = service.create("DEV")
        service.send(sent.id)

        service.delete(draft.id)
        with pytest.raises(InvoiceNotFound):
            service.get(draft.id)
        with pytest.raises(InvoiceStateError):
            service.delete(sent.id)


class TestWorkflow:
    def test_advance_quote_to_proforma(self, service, sample_trip):
        quote = service.create("DEV", trip_id=sample_trip.id, client_name="Martin", lines=LINES)
        proforma = service.advance(quote.id)

        assert proforma.type == "PRO"
        assert proforma.status == "draft"
        assert proforma.source_invoice_id == quote.id
        assert proforma.trip_id == sample_trip.id
        assert proforma.client_name == "Martin"
        assert proforma.total_ttc == quote.total_ttc

    def test_only_quotes_advance(self, service):
        invoice = service.create("FA")
        with pytest.raises(InvoiceStateError):
            service.advance(invoice.id)

    def test_paid_proforma_generates_invoice(self, service):
        proforma = service.create("PRO", lines=LINES)
        paid, generated = service.mark_paid(proforma.id, payment_method="transfer", payment_ref="VIR-42")

        assert paid.status == "paid"
        assert paid.paid_amount == 2680.5
        assert generated.type == "FA"
        assert generated.number == f"FA-{YEAR}-0001"
        assert generated.status == "paid"
        assert generated.paid_amount == 2680.5
        assert generated.source_invoice_id == proforma.id
        assert len(generated.lines) == 2

    def test_paid_quote_generates_nothing(self, service):
        quote = service.create("DEV", lines=LINES)
        _, generated = service.mark_paid(quote.id, paid_amount=500.0)
        assert generated is None
        assert service.get(quote.id).paid_amount == 500.0

    def test_paid_twice(self, service):
        invoice = service.create("FA")
        service.mark_paid(invoice.id)
        with pytest.raises(InvoiceStateError):
            service.mark_paid(invoice.id)

    def test_credit_note_cannot_be_paid(self, service):
        credit_note = service.create("AV")
        with pytest.raises(InvoiceStateError):
            service.mark_paid(credit_note.id)

    def test_cancel_invoice_with_credit_note(self, service):
        invoice = service.create("FA", lines=LINES)
        service.send(invoice.id)

        cancelled, credit_note = service.cancel(invoice.id, "Trip cancelled by client", create_credit_note=True)
        assert cancelled.status == "cancelled"
        assert cancelled.cancel_reason == "Trip cancelled by client"
        assert credit_note.type == "AV"
        assert credit_note.total_ttc == -2680.5
        assert [line.unit_price_ttc for line in credit_note.lines] == [-1250.0, -180.5]

    def test_cancel_quote_has_no_credit_note(self, service):
        quote = service.create("DEV")
        _, credit_note = service.cancel(quote.id, "Declined", create_credit_note=True)
        assert credit_note is None
        with pytest.raises(InvoiceStateError):
            service.cancel(quote.id, "Again")
        with pytest.raises(InvoiceStateError):
            service.advance(quote.id)


class TestListing:
    def test_filters_and_pagination(self, service, db_session):
        for name in ("Martin", "Durand", "Martinez"):
            service.create("DEV", client_name=name)
        service.create("FA", client_name="Martin")

        items, total = service.list_invoices(type="DEV")
        assert total == 3
        # Newest first
        assert items[0].client_name == "Martinez"

        items, total = service.list_invoices(search="martin")
        assert total == 3

        items, total = service.list_invoices(page=2, page_size=3)
        assert total == 4
        assert len(items) == 1
        assert db_session.query(Invoice).count() == 4
