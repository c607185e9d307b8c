"""Shared test fixtures for the invoicing test suite."""

import os
import pytest
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4
from pathlib import Path
from unittest.mock import MagicMock, Mock

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from clients.postgres_client import PostgresClient
from core.models import Invoice, InvoiceStatus, InvoiceType, Payment, PaymentMethod
from utils.tenant_context import tenant_context, clear_tenant
from utils.timezone import now_utc


# =============================================================================
# TEST TENANT CONSTANTS
# =============================================================================

# Primary test user and organization - use for single-tenant tests
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_ORG_ID = UUID("00000000-0000-0000-0000-0000000000a1")
TEST_CLIENT_ID = UUID("00000000-0000-0000-0000-0000000000c1")
TEST_CLIENT_EMAIL = "client@test.local"

# Secondary organization - use for tenant isolation tests
TEST_USER_B_ID = UUID("00000000-0000-0000-0000-000000000002")
TEST_ORG_B_ID = UUID("00000000-0000-0000-0000-0000000000b1")
TEST_CLIENT_B_ID = UUID("00000000-0000-0000-0000-0000000000c2")

# Second client of the primary organization
TEST_OTHER_CLIENT_ID = UUID("00000000-0000-0000-0000-0000000000c3")

SCHEMA_PATH = Path(__file__).parent.parent / "db" / "schema.sql"


# =============================================================================
# TENANT CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_tenant_context():
    """Ensure clean tenant context before and after each test."""
    clear_tenant()
    yield
    clear_tenant()


@pytest.fixture
def test_user_id() -> UUID:
    return TEST_USER_ID


@pytest.fixture
def test_org_id() -> UUID:
    return TEST_ORG_ID


@pytest.fixture
def as_test_tenant():
    """Act as the primary test user in the primary organization."""
    with tenant_context(TEST_USER_ID, TEST_ORG_ID):
        yield TEST_ORG_ID


@pytest.fixture
def as_test_tenant_b():
    """Act as the secondary test user in the secondary organization."""
    with tenant_context(TEST_USER_B_ID, TEST_ORG_B_ID):
        yield TEST_ORG_B_ID


# =============================================================================
# SAMPLE ENTITIES (in-memory, no DB needed)
# =============================================================================


def _make_invoice(**overrides) -> Invoice:
    now = now_utc()
    fields = {
        "id": uuid4(),
        "organization_id": TEST_ORG_ID,
        "client_id": TEST_CLIENT_ID,
        "invoice_number": "INV-0001",
        "invoice_type": InvoiceType.DEBET,
        "status": InvoiceStatus.DRAFT,
        "credited_invoice_id": None,
        "currency": "SEK",
        "exchange_rate": Decimal("1"),
        "subtotal": Decimal("800.00"),
        "tax_amount": Decimal("200.00"),
        "total_amount": Decimal("1000.00"),
        "issue_date": date(2024, 3, 1),
        "due_date": date(2024, 3, 31),
        "payment_reference": "18",
        "notes": None,
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return Invoice(**fields)


def _make_payment(invoice_id: UUID, **overrides) -> Payment:
    fields = {
        "id": uuid4(),
        "invoice_id": invoice_id,
        "organization_id": TEST_ORG_ID,
        "user_id": TEST_USER_ID,
        "amount": Decimal("400.00"),
        "payment_date": date(2024, 3, 10),
        "payment_method": PaymentMethod.BANK_TRANSFER,
        "reference": None,
        "notes": None,
        "created_at": now_utc(),
    }
    fields.update(overrides)
    return Payment(**fields)


@pytest.fixture
def make_invoice():
    """Factory for Invoice entities with overridable fields."""
    return _make_invoice


@pytest.fixture
def make_payment():
    """Factory for Payment entities with overridable fields."""
    return _make_payment


@pytest.fixture
def sample_invoice():
    """Draft DEBET invoice of 1000.00 for the primary test client."""
    return _make_invoice()


# =============================================================================
# MOCK COLLABORATORS
# =============================================================================


@pytest.fixture
def mock_postgres():
    """PostgresClient mock whose transaction() yields a mock cursor.

    The cursor is exposed as `mock_postgres.cursor`.
    """
    postgres = Mock(spec=PostgresClient)
    cursor = Mock()
    ctx = MagicMock()
    ctx.__enter__.return_value = cursor
    ctx.__exit__.return_value = False
    postgres.transaction.return_value = ctx
    postgres.cursor = cursor
    return postgres


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db_url():
    """Integration database URL. Tests using the database skip without one."""
    url = os.environ.get("INVOICING_TEST_DATABASE_URL")
    if not url:
        pytest.skip("INVOICING_TEST_DATABASE_URL not set")
    return url


@pytest.fixture(scope="session")
def db(db_url):
    """Session-scoped PostgresClient with the schema applied."""
    client = PostgresClient(db_url)
    client.execute(SCHEMA_PATH.read_text())
    yield client
    client.close()


@pytest.fixture
def clean_db(db):
    """Empty invoice tables and seed two organizations with clients."""
    db.execute("""
        TRUNCATE invoice_events, payments, invoice_rows, invoices, clients, organizations
        CASCADE
    """)

    db.execute("""
        INSERT INTO organizations (id, name, invoice_numbering_mode, invoice_number_prefix,
                                   next_invoice_number, subscription_tier)
        VALUES
            (%s, 'Test Org', 'automatic', 'INV', 1, 'free'),
            (%s, 'Other Org', 'automatic', 'INV', 1, 'free')
    """, (TEST_ORG_ID, TEST_ORG_B_ID))

    db.execute("""
        INSERT INTO clients (id, organization_id, name, email)
        VALUES
            (%s, %s, 'Acme AB', %s),
            (%s, %s, 'Other Client', NULL),
            (%s, %s, 'Beta AB', NULL)
    """, (
        TEST_CLIENT_ID, TEST_ORG_ID, TEST_CLIENT_EMAIL,
        TEST_CLIENT_B_ID, TEST_ORG_B_ID,
        TEST_OTHER_CLIENT_ID, TEST_ORG_ID,
    ))

    yield db
