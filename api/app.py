"""FastAPI application factory and service wiring."""

import logging

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware, TenantContextMiddleware
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from core.audit import InvoiceAuditTrail
from core.config import EngineConfig
from core.event_bus import EventBus
from core.events import CreditInvoiceCreated
from core.handlers.credit_invoice_handler import handle_credit_invoice_created
from core.handlers.invoice_activity_handler import ACTIVITY_EVENTS, handle_invoice_activity
from core.handlers.payment_confirmation_handler import PaymentConfirmationSender
from core.services.credit_service import CreditService
from core.services.invoice_service import InvoiceService
from core.services.numbering_service import NumberingService
from core.services.payment_service import PaymentService
from core.services.quota_service import QuotaService

logger = logging.getLogger(__name__)


def build_services(
    postgres: PostgresClient,
    email: EmailGatewayClient | None = None,
    config: EngineConfig | None = None,
) -> dict:
    """
    Construct the engine's services around one database client.

    Returns:
        Dict keyed by the names the routers look up
    """
    config = config or EngineConfig()
    audit = InvoiceAuditTrail(postgres)
    event_bus = EventBus()
    event_bus.subscribe(CreditInvoiceCreated, handle_credit_invoice_created(audit))
    activity = handle_invoice_activity()
    for event_type in ACTIVITY_EVENTS:
        event_bus.subscribe(event_type, activity)

    numbering = NumberingService(postgres, config)
    quota = QuotaService(postgres, config)
    credit = CreditService(postgres, audit, event_bus)

    return {
        "audit": audit,
        "event_bus": event_bus,
        "numbering": numbering,
        "quota": quota,
        "credit": credit,
        "invoice": InvoiceService(postgres, audit, event_bus, numbering, quota, credit, config),
        "payment": PaymentService(
            postgres, audit, event_bus,
            PaymentConfirmationSender(postgres, email, config),
        ),
    }


def create_app(services: dict, config: EngineConfig | None = None) -> FastAPI:
    """Build the HTTP app around already-constructed services."""
    config = config or EngineConfig()
    app = FastAPI(title=config.app_name)

    # Added last runs first: request id is assigned before the tenant check
    app.add_middleware(TenantContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_actions_router(services), prefix="/api")
    app.include_router(create_data_router(services), prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def create_production_app() -> FastAPI:
    """App wired to Vault-provided database and email gateway credentials."""
    from clients.vault_client import get_database_url, get_email_config

    config = EngineConfig()
    postgres = PostgresClient(get_database_url())

    email = None
    if config.payment_confirmation_enabled:
        email = EmailGatewayClient(**get_email_config())

    logger.info("Starting %s", config.app_name)
    return create_app(build_services(postgres, email, config), config)
