"""SMS channel decision logic."""

from __future__ import annotations

import re

from ..types import (
    Channel,
    ChannelOutcome,
    DeliveryStatus,
    Recipient,
    RenderedContent,
    SMSTransport,
)


def normalize_phone_number(phone: str) -> str | None:
    """Return an E.164 number, assuming North America when no country code is given."""
    if phone.strip().startswith("+"):
        digits = re.sub(r"\D", "", phone)
        return f"+{digits}" if digits else None
    digits = re.sub(r"\D", "", phone)
    if not digits:
        return None
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


def send_sms_notification(
    recipient: Recipient,
    content: RenderedContent,
    transport: SMSTransport,
) -> ChannelOutcome:
    """Run SMS-channel rules and return the channel outcome."""
    phone = normalize_phone_number(recipient.phone) if recipient.phone else None
    if not phone:
        return ChannelOutcome(channel=Channel.SMS, status=DeliveryStatus.SKIPPED_NO_ADDRESS)

    try:
        delivery_id = transport.send(to=phone, message=content.sms)
    except Exception as exc:
        return ChannelOutcome(
            channel=Channel.SMS,
            status=DeliveryStatus.FAILED,
            error=str(exc) or type(exc).__name__,
        )

    return ChannelOutcome(channel=Channel.SMS, status=DeliveryStatus.SENT, delivery_id=delivery_id)
