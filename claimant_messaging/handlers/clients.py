"""
Remote service client protocols used by the message handlers.

Implementations live outside this package (HTTP clients for the card
provider, the notification service and the reporting service).  They
raise ``RemoteServiceUnavailableError`` for transient failures and
``RemoteRequestRejectedError`` for permanent ones; every call takes an
``idempotency_key`` so a re-delivered message does not repeat its effect.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable
from uuid import UUID


@runtime_checkable
class CardClient(Protocol):
    """Card provider: issues cards and loads funds onto them."""

    def request_new_card(
        self, claim_id: UUID, *, idempotency_key: str,
    ) -> str:
        """Request a card for a claim; returns the card account id."""
        ...

    def transfer_funds(
        self,
        card_account_id: str,
        amount_in_pence: int,
        *,
        reference: str,
        idempotency_key: str,
    ) -> str:
        """Load funds onto a card; returns the provider's transfer reference."""
        ...


@runtime_checkable
class NotificationClient(Protocol):
    """Templated email and letter delivery."""

    def send_email(
        self,
        claim_id: UUID,
        template: str,
        personalisation: dict[str, str],
        *,
        idempotency_key: str,
    ) -> None: ...

    def send_letter(
        self,
        claim_id: UUID,
        template: str,
        personalisation: dict[str, str],
        *,
        idempotency_key: str,
    ) -> None: ...


@runtime_checkable
class ReportingClient(Protocol):
    """Analytics event sink for claim and payment activity."""

    def report_event(
        self,
        event_type: str,
        properties: dict[str, Any],
        *,
        idempotency_key: str,
    ) -> None: ...
