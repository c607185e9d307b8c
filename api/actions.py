"""POST /api/actions — unified mutation endpoint."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from core.models import (
    InvoiceCreate, InvoiceUpdate,
    PaymentCreate,
    NumberingSettingsUpdate,
)
from utils.timezone import parse_date


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "invoice": InvoiceHandler(services["invoice"]),
        "payment": PaymentHandler(services["payment"]),
        "numbering": NumberingHandler(services["numbering"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}", None)
        result = method(body.data)
        return success_response(
            result, getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    return router


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class InvoiceHandler:
    ALLOWED_ACTIONS = {
        "create", "update", "delete", "send", "mark_viewed",
        "send_reminder", "void", "copy", "mark_overdue",
    }

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        invoice = self.service.create(InvoiceCreate(**data))
        return invoice.model_dump(mode="json")

    def _handle_update(self, data: dict):
        invoice_id = UUID(data.pop("id"))
        invoice = self.service.update(invoice_id, InvoiceUpdate(**data))
        return invoice.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        invoice_id = UUID(data["id"])
        deleted = self.service.delete(invoice_id)
        if not deleted:
            raise ValueError(f"Invoice {invoice_id} not found")
        return {"deleted": True}

    def _handle_send(self, data: dict):
        invoice = self.service.send(UUID(data["id"]))
        return invoice.model_dump(mode="json")

    def _handle_mark_viewed(self, data: dict):
        recorded = self.service.mark_viewed(UUID(data["id"]))
        return {"recorded": recorded}

    def _handle_send_reminder(self, data: dict):
        invoice = self.service.send_reminder(UUID(data["id"]))
        return invoice.model_dump(mode="json")

    def _handle_void(self, data: dict):
        invoice = self.service.void(UUID(data["id"]))
        return invoice.model_dump(mode="json")

    def _handle_copy(self, data: dict):
        invoice = self.service.copy(UUID(data["id"]), data.get("invoice_number"))
        return invoice.model_dump(mode="json")

    def _handle_mark_overdue(self, data: dict):
        today = parse_date(data["today"]) if data.get("today") else None
        invoices = self.service.mark_overdue(today)
        return [i.model_dump(mode="json") for i in invoices]


class PaymentHandler:
    ALLOWED_ACTIONS = {"record"}

    def __init__(self, service):
        self.service = service

    def _handle_record(self, data: dict):
        invoice_id = UUID(data.pop("invoice_id"))
        result = self.service.record_payment(invoice_id, PaymentCreate(**data))
        return result.model_dump(mode="json")


class NumberingHandler:
    ALLOWED_ACTIONS = {"update_settings"}

    def __init__(self, service):
        self.service = service

    def _handle_update_settings(self, data: dict):
        organization = self.service.update_settings(NumberingSettingsUpdate(**data))
        return organization.model_dump(mode="json")
