"""
Message payloads -- typed bodies for queued messages and their JSON codec.

Contract:
    ``encode_payload()`` turns whatever a producer hands the queue (payload
    dataclass, mapping, JSON text, UTF-8 bytes) into the JSON text stored
    in ``message_queue.payload``.  ``MessagePayload.from_json()`` turns it
    back into a typed payload for the handler.

Architecture: claimant_messaging.  Pure; no ORM, no clock.

Failure modes:
    - encode_payload raises TypeError / ValueError on unencodable input
      (the queue client wraps these in MessageSerializationError).
    - from_json raises MessagePayloadError on malformed JSON, missing
      fields or values of the wrong shape.  Handlers map that to a fatal
      outcome: retrying cannot fix a bad payload.
"""

from __future__ import annotations

import dataclasses
import json
import types
import typing
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from claimant_kernel.exceptions import MessagePayloadError

P = TypeVar("P", bound="MessagePayload")


# =============================================================================
# JSON codec
# =============================================================================


class _PayloadEncoder(json.JSONEncoder):
    """Handle UUID, date/datetime, Decimal, Enum and dataclasses."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
        return super().default(obj)


def encode_payload(payload: Any) -> str:
    """Serialize a payload to the JSON text stored on the message.

    ``str`` is taken as already-serialized JSON and must parse; ``bytes``
    must be UTF-8 JSON.

    Raises:
        TypeError: If the payload contains unencodable values.
        ValueError: If text/bytes are not valid UTF-8 JSON.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        json.loads(payload)
        return payload
    if payload is None:
        raise TypeError("payload must not be None")
    if not isinstance(payload, Mapping) and not (
        dataclasses.is_dataclass(payload) and not isinstance(payload, type)
    ):
        raise TypeError(
            f"payload must be a dataclass, mapping, str or bytes, "
            f"got {type(payload).__name__}"
        )
    return json.dumps(payload, cls=_PayloadEncoder, sort_keys=True, allow_nan=False)


def _coerce(value: Any, hint: Any) -> Any:
    """Convert a decoded JSON value back to the annotated Python type."""
    if value is None:
        return None

    origin = typing.get_origin(hint)
    args = typing.get_args(hint)

    if origin in (typing.Union, types.UnionType):
        non_none = [a for a in args if a is not type(None)]
        return _coerce(value, non_none[0]) if len(non_none) == 1 else value
    if origin is tuple:
        item_hint = args[0] if args else Any
        return tuple(_coerce(v, item_hint) for v in value)
    if origin is dict:
        value_hint = args[1] if len(args) == 2 else Any
        return {k: _coerce(v, value_hint) for k, v in value.items()}
    if hint is UUID:
        return UUID(str(value))
    if hint is datetime:
        return datetime.fromisoformat(value)
    if hint is date:
        return date.fromisoformat(value)
    if hint is Decimal:
        return Decimal(str(value))
    if isinstance(hint, type) and issubclass(hint, Enum):
        return hint(value)
    if hint is int and not isinstance(value, int):
        raise ValueError(f"expected int, got {type(value).__name__}")
    return value


class MessagePayload:
    """Mixin for payload dataclasses: JSON round-trip."""

    def to_json(self) -> str:
        return encode_payload(self)

    @classmethod
    def from_json(cls: type[P], text: str) -> P:
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as exc:
            raise MessagePayloadError(cls.__name__, f"not valid JSON: {exc}") from None
        if not isinstance(data, dict):
            raise MessagePayloadError(cls.__name__, "expected a JSON object")

        hints = typing.get_type_hints(cls)
        kwargs: dict[str, Any] = {}
        try:
            for f in dataclasses.fields(cls):  # type: ignore[arg-type]
                if f.name not in data:
                    if (
                        f.default is dataclasses.MISSING
                        and f.default_factory is dataclasses.MISSING
                    ):
                        raise MessagePayloadError(
                            cls.__name__, f"missing field '{f.name}'",
                        )
                    continue
                kwargs[f.name] = _coerce(data[f.name], hints[f.name])
        except (TypeError, ValueError, AttributeError) as exc:
            raise MessagePayloadError(cls.__name__, str(exc)) from None
        return cls(**kwargs)


# =============================================================================
# Enumerations carried inside payloads
# =============================================================================


class EmailType(str, Enum):
    NEW_CARD = "NEW_CARD"
    PAYMENT = "PAYMENT"
    CHILD_TURNS_ONE = "CHILD_TURNS_ONE"
    CHILD_TURNS_FOUR = "CHILD_TURNS_FOUR"
    NO_CHILD_ON_FEED_NO_LONGER_ELIGIBLE = "NO_CHILD_ON_FEED_NO_LONGER_ELIGIBLE"
    CLAIM_NO_LONGER_ELIGIBLE = "CLAIM_NO_LONGER_ELIGIBLE"


class LetterType(str, Enum):
    UPDATE_YOUR_ADDRESS = "UPDATE_YOUR_ADDRESS"
    APPLICATION_SUCCESS_CHILDREN_MATCH = "APPLICATION_SUCCESS_CHILDREN_MATCH"
    APPLICATION_SUCCESS_CHILDREN_MISMATCH = "APPLICATION_SUCCESS_CHILDREN_MISMATCH"


class ClaimAction(str, Enum):
    NEW = "NEW"
    REJECTED = "REJECTED"
    UPDATED = "UPDATED"
    UPDATED_FROM_ACTIVE_TO_EXPIRED = "UPDATED_FROM_ACTIVE_TO_EXPIRED"
    UPDATED_FROM_PENDING_EXPIRY_TO_EXPIRED = "UPDATED_FROM_PENDING_EXPIRY_TO_EXPIRED"


class PaymentAction(str, Enum):
    INITIAL_PAYMENT = "INITIAL_PAYMENT"
    SCHEDULED_PAYMENT = "SCHEDULED_PAYMENT"
    TOP_UP_PAYMENT = "TOP_UP_PAYMENT"


# =============================================================================
# Payloads
# =============================================================================


@dataclass(frozen=True)
class NewCardRequestMessagePayload(MessagePayload):
    """REQUEST_NEW_CARD: ask the card provider to issue a card for a claim."""

    claim_id: UUID
    voucher_entitlement: dict[str, int] = field(default_factory=dict)
    dates_of_birth_of_children: tuple[date, ...] = ()


@dataclass(frozen=True)
class CompleteNewCardMessagePayload(MessagePayload):
    """COMPLETE_NEW_CARD_PROCESS: follow-up once a card account exists."""

    claim_id: UUID
    card_account_id: str
    voucher_entitlement: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class MakePaymentMessagePayload(MessagePayload):
    """MAKE_PAYMENT: transfer one cycle's entitlement onto a card."""

    claim_id: UUID
    payment_cycle_id: UUID
    card_account_id: str
    amount_in_pence: int


@dataclass(frozen=True)
class EmailMessagePayload(MessagePayload):
    """SEND_EMAIL: templated email to the claimant."""

    claim_id: UUID
    email_type: EmailType
    email_personalisation: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LetterMessagePayload(MessagePayload):
    """SEND_LETTER: templated letter to the claimant's address."""

    claim_id: UUID
    letter_type: LetterType
    personalisation: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ReportClaimMessagePayload(MessagePayload):
    """REPORT_CLAIM: analytics event for a claim state change."""

    claim_id: UUID
    claim_action: ClaimAction
    timestamp: datetime


@dataclass(frozen=True)
class ReportPaymentMessagePayload(MessagePayload):
    """REPORT_PAYMENT: analytics event for a payment, amounts in pence."""

    claim_id: UUID
    payment_cycle_id: UUID
    payment_action: PaymentAction
    timestamp: datetime
    payment_for_pregnancy: int = 0
    payment_for_children_under_one: int = 0
    payment_for_children_between_one_and_four: int = 0
    payment_for_backdated_vouchers: int = 0

    @property
    def total_payment(self) -> int:
        return (
            self.payment_for_pregnancy
            + self.payment_for_children_under_one
            + self.payment_for_children_between_one_and_four
            + self.payment_for_backdated_vouchers
        )
