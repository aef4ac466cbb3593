"""Payload adapter functions.

Mental model refresher:
- This is an adapter/edge module.
- It translates broker-shaped data (raw body bytes plus headers) into the
  immutable `NotificationEvent` used by application/domain code.
- It validates shape and required fields. Anything it rejects is permanent:
  redelivering the same bytes cannot make them parse.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from ..errors import MalformedEventError, MissingTenantError, UnknownEventKindError
from ..types import EventDict, EventKind, Headers, NotificationEvent

TENANT_HEADER = "x-tenant-id"
RETRY_HEADER = "x-retry-count"


def decode_message_body(raw: bytes | str | Mapping[str, Any] | None) -> EventDict:
    """Decode a broker message body into a JSON object."""
    if isinstance(raw, Mapping):
        return dict(raw)

    if isinstance(raw, bytes):
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedEventError("message body is not valid UTF-8") from exc
    elif isinstance(raw, str):
        text = raw
    else:
        raise MalformedEventError(f"Unsupported message body type: {type(raw).__name__}")

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedEventError(f"message body is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedEventError("message body must decode to a JSON object")
    return parsed


def header_text(headers: Headers | None, name: str) -> str | None:
    if not headers:
        return None
    value = headers.get(name)
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    text = str(value).strip()
    return text or None


def retry_count_from_headers(headers: Headers | None) -> int:
    """Read the retry counter; a missing or garbled header counts as zero."""
    text = header_text(headers, RETRY_HEADER)
    if text is None:
        return 0
    try:
        return max(int(text), 0)
    except ValueError:
        return 0


def parse_event_kind(raw: Any) -> EventKind:
    text = _as_optional_str(raw)
    if text is None:
        raise MalformedEventError("Missing required field: type")

    wanted = _normalize_kind(text)
    for kind in EventKind:
        if text == kind.value or text.lower() == kind.routing_key:
            return kind
        if wanted == _normalize_kind(kind.name):
            return kind
    raise UnknownEventKindError(f"Unknown event kind: {text!r}")


def parse_event_payload(payload: Mapping[str, Any], headers: Headers | None = None) -> NotificationEvent:
    """Normalize an inbound message into a `NotificationEvent`.

    `tenantId` comes from the body; the `x-tenant-id` header fills in when the
    body omits it.
    """
    kind = parse_event_kind(payload.get("type", payload.get("kind")))

    tenant_id = _as_optional_str(payload.get("tenantId")) or header_text(headers, TENANT_HEADER)
    if not tenant_id:
        raise MissingTenantError("Missing tenantId in message body and x-tenant-id header")

    raw_payload = payload.get("payload") or {}
    if not isinstance(raw_payload, Mapping):
        raise MalformedEventError("payload must be a JSON object")
    event_payload = dict(raw_payload)
    if "reason" in payload and "reason" not in event_payload:
        event_payload["reason"] = payload["reason"]

    return NotificationEvent(
        kind=kind,
        tenant_id=tenant_id,
        appointment_id=_as_required_str(payload.get("appointmentId"), "appointmentId"),
        user_id=_as_required_str(payload.get("userId"), "userId"),
        stylist_id=_as_optional_str(payload.get("stylistId")),
        occurred_at=_as_optional_str(payload.get("occurredAt", payload.get("timestamp"))),
        payload=event_payload,
        event_id=_as_optional_str(payload.get("eventId")),
    )


def _normalize_kind(text: str) -> str:
    compact = "".join(ch for ch in text.lower() if ch.isalnum())
    return compact.removeprefix("appointment")


def _as_required_str(value: Any, field_name: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise MalformedEventError(f"Missing required field: {field_name}")
    return text


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
