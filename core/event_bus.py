"""
Event bus for invoice lifecycle events.

Synchronous in-process pub/sub. Handlers run in the publisher's thread right
after the publishing service has committed. A failing handler is logged and
skipped; it never fails the mutation that published the event.
"""

import logging
from collections import defaultdict
from typing import Callable

from core.events import InvoicingEvent

logger = logging.getLogger(__name__)

Handler = Callable[[InvoicingEvent], None]


def _event_name(event_type: type[InvoicingEvent] | str) -> str:
    return event_type if isinstance(event_type, str) else event_type.__name__


class EventBus:
    """
    In-process event bus keyed by event class name.

    Usage:
        bus = EventBus()
        bus.subscribe(CreditInvoiceCreated, handle_credit_invoice_created(audit))
        bus.publish(CreditInvoiceCreated.create(credit, target))
    """

    def __init__(self):
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[InvoicingEvent] | str, callback: Handler) -> None:
        """
        Register a handler for one event type.

        Args:
            event_type: Event class, or its name (e.g. 'InvoicePaid')
            callback: Called with the event instance, in subscription order
        """
        self._subscribers[_event_name(event_type)].append(callback)

    def unsubscribe(self, event_type: type[InvoicingEvent] | str, callback: Handler) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._subscribers.get(_event_name(event_type), [])
        if callback in handlers:
            handlers.remove(callback)

    def handlers_for(self, event_type: type[InvoicingEvent] | str) -> list[Handler]:
        return list(self._subscribers.get(_event_name(event_type), []))

    def publish(self, event: InvoicingEvent) -> int:
        """
        Deliver an event to every handler subscribed to its class.

        Returns:
            Number of handlers that raised. Their exceptions are logged here.
        """
        event_type = event.__class__.__name__
        failures = 0

        for callback in self.handlers_for(event_type):
            try:
                callback(event)
            except Exception:
                failures += 1
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    event.event_id,
                )

        return failures
