"""Shared types for the notification package.

Mental model refresher:
- Value objects here are immutable; the pipeline never mutates an event.
- `DeliveryAttempt` rows are append-only audit records.
- Callable aliases describe the seams where collaborators get injected.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

EventDict = dict[str, Any]
Headers = Mapping[str, Any]
ProcessingResult = dict[str, Any]


class EventKind(str, Enum):
    CREATED = "APPOINTMENT_CREATED"
    UPDATED = "APPOINTMENT_UPDATED"
    CANCELLED = "APPOINTMENT_CANCELLED"
    CONFIRMED = "APPOINTMENT_CONFIRMED"
    COMPLETED = "APPOINTMENT_COMPLETED"
    NO_SHOW = "APPOINTMENT_NO_SHOW"

    @property
    def routing_key(self) -> str:
        return "appointment." + self.name.lower()


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    SKIPPED_NO_ADDRESS = "skipped-no-address"
    FAILED = "failed"


@dataclass(frozen=True)
class NotificationEvent:
    kind: EventKind
    tenant_id: str
    appointment_id: str
    user_id: str
    stylist_id: str | None = None
    occurred_at: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)
    event_id: str | None = None

    @property
    def dedupe_key(self) -> str:
        """Identity shared by every redelivery of the same logical event."""
        if self.event_id:
            return self.event_id
        if self.occurred_at:
            return f"{self.kind.value}:{self.appointment_id}:{self.occurred_at}"
        # Without a producer identity the body itself is the identity.
        body = json.dumps(self.as_dict(), sort_keys=True, separators=(",", ":"), default=str)
        digest = hashlib.sha256(body.encode("utf-8")).hexdigest()
        return f"{self.kind.value}:{self.appointment_id}:{digest}"

    def as_dict(self) -> EventDict:
        return {
            "eventId": self.event_id,
            "type": self.kind.value,
            "tenantId": self.tenant_id,
            "appointmentId": self.appointment_id,
            "userId": self.user_id,
            "stylistId": self.stylist_id,
            "occurredAt": self.occurred_at,
            "payload": dict(self.payload),
        }


@dataclass(frozen=True)
class DeliveryAttempt:
    event_key: str
    tenant_id: str
    appointment_id: str
    channel: Channel
    status: DeliveryStatus
    attempted_at: str
    delivery_id: str | None = None
    error: str | None = None
    retry_count: int = 0

    def __post_init__(self) -> None:
        if (self.status is DeliveryStatus.FAILED) != bool(self.error):
            raise ValueError("DeliveryAttempt.error must be set iff status is failed")

    def as_dict(self) -> EventDict:
        return {
            "event_key": self.event_key,
            "tenant_id": self.tenant_id,
            "appointment_id": self.appointment_id,
            "channel": self.channel.value,
            "status": self.status.value,
            "delivery_id": self.delivery_id,
            "error": self.error,
            "retry_count": self.retry_count,
            "attempted_at": self.attempted_at,
        }


@dataclass(frozen=True)
class TenantBranding:
    name: str = "Your Salon"
    logo_url: str | None = None
    primary_color: str = "#4a4a4a"
    contact_address: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    currency_symbol: str = "$"
    date_format: str | None = None
    time_format: str | None = None


DEFAULT_BRANDING = TenantBranding()


@dataclass(frozen=True)
class Recipient:
    user_id: str
    name: str
    email: str | None = None
    phone: str | None = None
    device_tokens: tuple[str, ...] = ()


@dataclass(frozen=True)
class MessageContext:
    event: NotificationEvent
    branding: TenantBranding
    recipient: Recipient
    stylist_name: str
    services: tuple[str, ...]
    total_price: Decimal
    starts_at: datetime
    reason: str | None = None

    @property
    def client_name(self) -> str:
        return self.recipient.name


@dataclass(frozen=True)
class RenderedContent:
    subject: str
    html: str
    text: str
    sms: str
    push_title: str
    push: str


@dataclass(frozen=True)
class ChannelOutcome:
    channel: Channel
    status: DeliveryStatus
    delivery_id: str | None = None
    error: str | None = None


class EmailTransport(Protocol):
    def send(self, *, to: str, subject: str, html: str, text: str) -> str: ...

    def close(self) -> None: ...


class SMSTransport(Protocol):
    def send(self, *, to: str, message: str) -> str: ...

    def close(self) -> None: ...


class PushTransport(Protocol):
    def send(
        self,
        *,
        user_id: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        device_tokens: tuple[str, ...],
    ) -> str: ...

    def close(self) -> None: ...


ClockFn = Callable[[], datetime]
