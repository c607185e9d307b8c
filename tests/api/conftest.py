"""API test fixtures — TestClient over the real app with mocked services."""

from unittest.mock import Mock
from uuid import UUID

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from core.audit import InvoiceAuditTrail
from core.models import InvoiceStatus, NotificationOutcome, PaymentResult
from core.services.credit_service import CreditService
from core.services.invoice_service import InvoiceService
from core.services.numbering_service import NumberingService
from core.services.payment_service import PaymentService
from core.services.quota_service import QuotaGate, QuotaService

# Test tenant constants (must match tests/conftest.py)
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_ORG_ID = UUID("00000000-0000-0000-0000-0000000000a1")


@pytest.fixture
def sample_payment_result(sample_invoice, make_payment):
    invoice = sample_invoice.model_copy(update={"status": InvoiceStatus.PARTIALLY_PAID})
    return PaymentResult(
        payment=make_payment(invoice.id),
        invoice=invoice,
        notification=NotificationOutcome(status="failed", error="Gateway error: down"),
    )


# =============================================================================
# SERVICES DICT
# =============================================================================


@pytest.fixture
def services():
    quota = Mock(spec=QuotaService)
    quota.gate = QuotaGate(10)
    return {
        "audit": Mock(spec=InvoiceAuditTrail),
        "numbering": Mock(spec=NumberingService),
        "quota": quota,
        "credit": Mock(spec=CreditService),
        "invoice": Mock(spec=InvoiceService),
        "payment": Mock(spec=PaymentService),
    }


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    """FastAPI app with middleware, error handlers, and data/actions routes."""
    return create_app(services)


@pytest.fixture
def client(app):
    """Test client acting as the primary test tenant."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers.update({
        "X-User-ID": str(TEST_USER_ID),
        "X-Organization-ID": str(TEST_ORG_ID),
    })
    return c


@pytest.fixture
def anonymous_client(app):
    """Test client without tenant headers."""
    return TestClient(app, raise_server_exceptions=False)
