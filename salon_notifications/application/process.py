"""Application orchestration for one notification event.

Mental model refresher:
- Application layer coordinates the use-case flow across domain modules.
- In this project it:
  1) enriches the event through the directories
  2) renders the tenant-branded content
  3) fans out to every channel and joins
  4) appends the delivery attempts to the audit log
- Failures leave here wrapped in `StageError` so the consumer can classify
  them without knowing which collaborator raised.
"""

from __future__ import annotations

from ..adapters.delivery_log import DeliveryLog
from ..domain.templates import AppointmentTemplate, render_template
from ..errors import PartialDeliveryError, StageError
from ..logging import get_logger
from ..types import DeliveryStatus, NotificationEvent, ProcessingResult
from .dispatch import ChannelDispatcher
from .enrichment import EnrichmentGateway

logger = get_logger(__name__)


def process_notification_event(
    event: NotificationEvent,
    *,
    template: AppointmentTemplate,
    gateway: EnrichmentGateway,
    dispatcher: ChannelDispatcher,
    delivery_log: DeliveryLog,
    retry_count: int = 0,
    retry_on_partial_failure: bool = True,
) -> ProcessingResult:
    """Execute enrich -> render -> dispatch -> record for one event."""
    try:
        context = gateway.enrich(event)
    except Exception as exc:
        raise StageError("enrich", exc) from exc

    try:
        content = render_template(template, context)
    except Exception as exc:
        raise StageError("render", exc) from exc

    try:
        already_sent = delivery_log.sent_channels(event.dedupe_key)
        attempts = dispatcher.dispatch(
            context.recipient,
            content,
            event=event,
            retry_count=retry_count,
            skip_channels=already_sent,
        )
        delivery_log.record(attempts)
    except Exception as exc:
        raise StageError("dispatch", exc) from exc

    failed_channels = [
        item.channel.value for item in attempts if item.status is DeliveryStatus.FAILED
    ]
    if failed_channels and retry_on_partial_failure:
        raise StageError("dispatch", PartialDeliveryError(failed_channels))
    if failed_channels:
        logger.warning(
            "Partial delivery accepted without retry",
            failed_channels=failed_channels,
        )

    return {
        "event_key": event.dedupe_key,
        "appointment_id": event.appointment_id,
        "kind": event.kind.value,
        "attempts": attempts,
        "all_delivered": not failed_channels,
    }
