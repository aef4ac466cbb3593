"""Push channel decision logic.

A user without registered device tokens has no push address; that is a
skip, not a failure.
"""

from __future__ import annotations

from ..types import (
    Channel,
    ChannelOutcome,
    DeliveryStatus,
    NotificationEvent,
    PushTransport,
    Recipient,
    RenderedContent,
)


def send_push_notification(
    recipient: Recipient,
    content: RenderedContent,
    transport: PushTransport,
    event: NotificationEvent,
) -> ChannelOutcome:
    """Run push-channel rules and return the channel outcome."""
    if not recipient.device_tokens:
        return ChannelOutcome(channel=Channel.PUSH, status=DeliveryStatus.SKIPPED_NO_ADDRESS)

    data = {
        "type": event.kind.value,
        "appointmentId": event.appointment_id,
        "tenantId": event.tenant_id,
    }
    try:
        delivery_id = transport.send(
            user_id=recipient.user_id,
            title=content.push_title,
            body=content.push,
            data=data,
            device_tokens=recipient.device_tokens,
        )
    except Exception as exc:
        return ChannelOutcome(
            channel=Channel.PUSH,
            status=DeliveryStatus.FAILED,
            error=str(exc) or type(exc).__name__,
        )

    return ChannelOutcome(channel=Channel.PUSH, status=DeliveryStatus.SENT, delivery_id=delivery_id)
