"""
Message handlers -- one per message type -- and their registry.

``default_handler_registry()`` wires the remote-call handlers to the
service clients supplied by the application.
"""

from __future__ import annotations

from claimant_messaging.handlers.base import (
    HandlerRegistry,
    MessageHandler,
    RemoteCallHandler,
)
from claimant_messaging.handlers.card_handlers import (
    MakePaymentHandler,
    RequestNewCardHandler,
)
from claimant_messaging.handlers.clients import (
    CardClient,
    NotificationClient,
    ReportingClient,
)
from claimant_messaging.handlers.notification_handlers import (
    SendEmailHandler,
    SendLetterHandler,
)
from claimant_messaging.handlers.reporting_handlers import (
    ReportClaimHandler,
    ReportPaymentHandler,
)


def default_handler_registry(
    card_client: CardClient,
    notification_client: NotificationClient,
    reporting_client: ReportingClient,
) -> HandlerRegistry:
    """Registry with a handler for every type backed by a remote client.

    Types whose work lives elsewhere in the claimant service
    (entitlement determination, payment cycle bookkeeping) are registered
    by the application on the returned registry.
    """
    registry = HandlerRegistry()
    registry.register(RequestNewCardHandler(card_client))
    registry.register(MakePaymentHandler(card_client))
    registry.register(SendEmailHandler(notification_client))
    registry.register(SendLetterHandler(notification_client))
    registry.register(ReportClaimHandler(reporting_client))
    registry.register(ReportPaymentHandler(reporting_client))
    return registry


__all__ = [
    "CardClient",
    "HandlerRegistry",
    "MakePaymentHandler",
    "MessageHandler",
    "NotificationClient",
    "RemoteCallHandler",
    "ReportClaimHandler",
    "ReportPaymentHandler",
    "ReportingClient",
    "RequestNewCardHandler",
    "SendEmailHandler",
    "SendLetterHandler",
    "default_handler_registry",
]
