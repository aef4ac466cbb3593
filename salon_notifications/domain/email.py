"""Email channel decision logic.

Mental model refresher:
- Domain modules hold channel rules.
- They decide what should happen for this channel:
  - is the required address present?
  - what content goes to the transport?
- They do not parse broker records, time out transports, or ack messages.
"""

from __future__ import annotations

from ..types import (
    Channel,
    ChannelOutcome,
    DeliveryStatus,
    EmailTransport,
    Recipient,
    RenderedContent,
)


def send_email_notification(
    recipient: Recipient,
    content: RenderedContent,
    transport: EmailTransport,
) -> ChannelOutcome:
    """Run email-channel rules and return the channel outcome."""
    if not recipient.email:
        return ChannelOutcome(channel=Channel.EMAIL, status=DeliveryStatus.SKIPPED_NO_ADDRESS)

    try:
        delivery_id = transport.send(
            to=recipient.email,
            subject=content.subject,
            html=content.html,
            text=content.text,
        )
    except Exception as exc:
        return ChannelOutcome(
            channel=Channel.EMAIL,
            status=DeliveryStatus.FAILED,
            error=str(exc) or type(exc).__name__,
        )

    return ChannelOutcome(channel=Channel.EMAIL, status=DeliveryStatus.SENT, delivery_id=delivery_id)
