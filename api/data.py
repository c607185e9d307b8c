"""GET /api/data — unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.models import InvoiceStatus
from utils.timezone import parse_date


VALID_TYPES = {"invoices", "payments", "events", "balance", "credits", "numbering"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    payment_svc = services["payment"]
    numbering_svc = services["numbering"]
    quota_svc = services["quota"]
    credit_svc = services["credit"]
    audit = services["audit"]

    # -------------------------------------------------------------------------
    # Convenience routes (must be registered before the generic /data route)
    # -------------------------------------------------------------------------

    @router.get("/data/invoices/overdue")
    async def invoices_overdue(request: Request, today: str | None = Query(None)):
        invoices = invoice_svc.list_overdue(parse_date(today) if today else None)
        return success_response(
            [i.model_dump(mode="json") for i in invoices],
            getattr(request.state, "request_id", None),
        ).model_dump(mode="json")

    @router.get("/data/invoices/{invoice_id}/document")
    async def invoice_document(request: Request, invoice_id: UUID):
        document = invoice_svc.get_document(invoice_id)
        return success_response(
            document.model_dump(mode="json"), getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Generic data endpoint
    # -------------------------------------------------------------------------

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        client_id: str | None = Query(None),
        status: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        if type == "invoices":
            data = _handle_invoices(invoice_svc, id, client_id, status, limit, offset)
        elif type == "numbering":
            data = _handle_numbering(numbering_svc, quota_svc)
        else:
            if not id:
                raise ValueError(f"'{type}' type requires 'id' parameter")
            invoice_id = UUID(id)

            if type == "payments":
                data = [p.model_dump(mode="json") for p in payment_svc.list_payments(invoice_id)]
            elif type == "balance":
                data = payment_svc.get_balance(invoice_id).model_dump(mode="json")
            elif type == "credits":
                data = [c.model_dump(mode="json") for c in credit_svc.list_credits(invoice_id)]
            else:
                data = _handle_events(invoice_svc, audit, invoice_id)

        return success_response(
            data, getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    return router


def _handle_invoices(invoice_svc, id, client_id, status, limit, offset):
    if id:
        invoice = invoice_svc.get_by_id(UUID(id))
        if invoice is None:
            raise ValueError(f"Invoice {id} not found")
        return invoice.model_dump(mode="json")

    if client_id:
        invoices = invoice_svc.list_for_client(UUID(client_id), limit)
    else:
        invoices = invoice_svc.list_invoices(InvoiceStatus(status) if status else None, limit, offset)

    return [i.model_dump(mode="json") for i in invoices]


def _handle_events(invoice_svc, audit, invoice_id):
    if invoice_svc.get_by_id(invoice_id) is None:
        raise ValueError(f"Invoice {invoice_id} not found")
    return [e.model_dump(mode="json") for e in audit.list_events(invoice_id)]


def _handle_numbering(numbering_svc, quota_svc):
    organization = numbering_svc.get_organization()
    usage = quota_svc.get_usage(organization.id)
    return {
        "invoice_numbering_mode": organization.invoice_numbering_mode.value,
        "invoice_number_prefix": organization.invoice_number_prefix,
        "next_invoice_number": numbering_svc.preview_next_number(organization.id),
        "is_premium": usage.is_premium,
        "invoice_count": usage.invoice_count,
        "invoices_remaining": quota_svc.gate.remaining(usage),
    }
