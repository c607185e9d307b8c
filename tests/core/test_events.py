"""Tests for domain event models."""

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from core.events import (
    InvoicingEvent,
    InvoiceEvent, InvoiceCreated, InvoiceSent, InvoicePaid, CreditInvoiceCreated,
    PaymentRecorded,
)
from core.models import InvoiceType


class TestEventBase:

    def test_event_id_is_uuid_string(self, sample_invoice):
        event = InvoiceCreated.create(invoice=sample_invoice)
        UUID(event.event_id)

    def test_occurred_at_is_utc(self, sample_invoice):
        event = InvoiceSent.create(invoice=sample_invoice)
        assert isinstance(event.occurred_at, datetime)
        assert event.occurred_at.tzinfo == timezone.utc

    def test_events_are_frozen(self, sample_invoice):
        event = InvoicePaid.create(invoice=sample_invoice)
        with pytest.raises(FrozenInstanceError):
            event.invoice = None

    def test_each_event_gets_unique_id(self, sample_invoice):
        assert (
            InvoiceCreated.create(invoice=sample_invoice).event_id
            != InvoiceCreated.create(invoice=sample_invoice).event_id
        )

    def test_hierarchy(self, sample_invoice):
        event = InvoiceCreated.create(invoice=sample_invoice)
        assert isinstance(event, InvoiceEvent)
        assert isinstance(event, InvoicingEvent)


class TestPayloads:

    def test_credit_event_carries_both_invoices(self, sample_invoice, make_invoice):
        credit = make_invoice(
            invoice_type=InvoiceType.CREDIT,
            credited_invoice_id=sample_invoice.id,
            total_amount=Decimal("-250.00"),
        )

        event = CreditInvoiceCreated.create(credit, sample_invoice)

        assert event.credit_invoice is credit
        assert event.credited_invoice is sample_invoice

    def test_payment_recorded_carries_payment_and_invoice(self, sample_invoice, make_payment):
        payment = make_payment(sample_invoice.id)

        event = PaymentRecorded.create(payment=payment, invoice=sample_invoice)

        assert event.payment is payment
        assert event.invoice is sample_invoice
        assert isinstance(event, InvoicingEvent)
        assert not isinstance(event, InvoiceEvent)
