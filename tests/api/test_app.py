"""Tests for service wiring in build_services."""

from unittest.mock import Mock

import pytest

from api.app import build_services
from clients.postgres_client import PostgresClient
from core.events import (
    CreditInvoiceCreated,
    InvoiceCreated,
    InvoicePaid,
    InvoiceSent,
    PaymentRecorded,
)


@pytest.fixture
def services():
    return build_services(Mock(spec=PostgresClient))


class TestBuildServices:

    def test_routers_find_their_services(self, services):
        assert {"audit", "event_bus", "numbering", "quota", "credit", "invoice", "payment"} <= set(services)

    @pytest.mark.parametrize(
        "event_type",
        [InvoiceCreated, InvoiceSent, InvoicePaid, PaymentRecorded, CreditInvoiceCreated],
    )
    def test_every_published_event_has_a_subscriber(self, services, event_type):
        assert services["event_bus"].handlers_for(event_type)

    def test_services_share_one_event_bus(self, services):
        bus = services["event_bus"]

        assert services["invoice"].event_bus is bus
        assert services["payment"].event_bus is bus
        assert services["credit"].event_bus is bus
