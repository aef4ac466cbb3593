"""Channel fan-out for one rendered message.

Mental model refresher:
- Email, SMS and push run concurrently and are all joined before `dispatch`
  returns, so every channel outcome is known before the message is acked.
- A channel that fails, raises, or does not answer within the per-channel
  timeout yields a `failed` attempt; the other channels are unaffected.
- Transports arrive through the constructor. Nothing here reaches for
  process-wide provider state.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import UTC, datetime
from typing import Callable, Collection

from ..domain.email import send_email_notification
from ..domain.push import send_push_notification
from ..domain.sms import send_sms_notification
from ..logging import get_logger
from ..types import (
    Channel,
    ChannelOutcome,
    ClockFn,
    DeliveryAttempt,
    DeliveryStatus,
    EmailTransport,
    NotificationEvent,
    PushTransport,
    Recipient,
    RenderedContent,
    SMSTransport,
)

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class ChannelDispatcher:
    def __init__(
        self,
        *,
        email: EmailTransport,
        sms: SMSTransport,
        push: PushTransport,
        channel_timeout_seconds: float = 10.0,
        clock: ClockFn = _utcnow,
    ) -> None:
        self.email = email
        self.sms = sms
        self.push = push
        self.channel_timeout_seconds = channel_timeout_seconds
        self.clock = clock

    def dispatch(
        self,
        recipient: Recipient,
        content: RenderedContent,
        *,
        event: NotificationEvent,
        retry_count: int = 0,
        skip_channels: Collection[Channel] = (),
    ) -> list[DeliveryAttempt]:
        """Send on every channel concurrently and return one attempt per channel sent."""
        jobs: dict[Channel, Callable[[], ChannelOutcome]] = {
            Channel.EMAIL: lambda: send_email_notification(recipient, content, self.email),
            Channel.SMS: lambda: send_sms_notification(recipient, content, self.sms),
            Channel.PUSH: lambda: send_push_notification(recipient, content, self.push, event),
        }
        for channel in skip_channels:
            if jobs.pop(channel, None) is not None:
                logger.info(
                    "Channel already delivered for this event, suppressing duplicate send",
                    channel=channel.value,
                    event_key=event.dedupe_key,
                )
        if not jobs:
            return []

        executor = ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="dispatch")
        try:
            futures = {channel: executor.submit(job) for channel, job in jobs.items()}
            done, _pending = wait(futures.values(), timeout=self.channel_timeout_seconds)
            outcomes = [
                self._collect(channel, future, future in done)
                for channel, future in futures.items()
            ]
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        attempted_at = self.clock().isoformat()
        attempts = [
            DeliveryAttempt(
                event_key=event.dedupe_key,
                tenant_id=event.tenant_id,
                appointment_id=event.appointment_id,
                channel=outcome.channel,
                status=outcome.status,
                attempted_at=attempted_at,
                delivery_id=outcome.delivery_id,
                error=outcome.error,
                retry_count=retry_count,
            )
            for outcome in outcomes
        ]
        for attempt in attempts:
            log = logger.warning if attempt.status is DeliveryStatus.FAILED else logger.info
            log(
                "Channel delivery attempt",
                channel=attempt.channel.value,
                status=attempt.status.value,
                delivery_id=attempt.delivery_id,
                error=attempt.error,
            )
        return attempts

    def _collect(self, channel: Channel, future: Future, finished: bool) -> ChannelOutcome:
        if not finished:
            future.cancel()
            return ChannelOutcome(
                channel=channel,
                status=DeliveryStatus.FAILED,
                error=f"timed out after {self.channel_timeout_seconds:g}s",
            )
        try:
            return future.result()
        except Exception as exc:
            return ChannelOutcome(
                channel=channel,
                status=DeliveryStatus.FAILED,
                error=str(exc) or type(exc).__name__,
            )

    def close(self) -> None:
        """Flush and close every transport; one failing close does not skip the rest."""
        for name, transport in (("email", self.email), ("sms", self.sms), ("push", self.push)):
            try:
                transport.close()
            except Exception as exc:
                logger.warning("Transport close failed", channel=name, error=str(exc))
