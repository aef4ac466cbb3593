"""Consumer-handler adapter functions (broker-independent settle decisions).

Mental model refresher:
- This is the controller-like entrypoint for event processing.
- The broker runtime calls this after polling a record.
- Flow:
  record -> parse adapter -> router/use-case -> ack / requeue / dead-letter
- This module owns the retry budget and the settle decision, not channel
  rules. Every record ends in exactly one of:
  - ack: the handler succeeded
  - requeue: retryable failure with budget left (`x-retry-count` + 1)
  - dead-letter: permanent failure, or retryable with budget exhausted
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

from ..errors import is_retryable
from ..logging import bind_message_context, clear_message_context, get_logger
from ..types import NotificationEvent, ProcessingResult
from .payload import decode_message_body, parse_event_payload, retry_count_from_headers

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

Record = Mapping[str, Any]
Handler = Callable[[NotificationEvent, dict[str, Any]], ProcessingResult]
AckFn = Callable[[Record], None]
RequeueFn = Callable[[Record, int], None]
DeadLetterFn = Callable[[Record, str], None]


def handle_message(
    record: Record,
    *,
    handler: Handler,
    ack: AckFn,
    requeue: RequeueFn,
    dead_letter: DeadLetterFn,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> dict[str, Any]:
    """Handle one incoming record and settle it exactly once."""
    headers = record.get("headers") or {}
    retry_count = retry_count_from_headers(headers)
    meta = _record_meta(record)

    try:
        payload = decode_message_body(record.get("value"))
        event = parse_event_payload(payload, headers)
    except Exception as exc:
        error = f"parse_failed: {exc}"
        logger.error(
            "Permanent failure parsing message, dead-lettering",
            error=error,
            raw_payload=_printable(record.get("value")),
            **meta,
        )
        dead_letter(record, error)
        return _result("dead_lettered", meta, retry_count, None, None, error)

    bind_message_context(
        event_key=event.dedupe_key,
        tenant_id=event.tenant_id,
        kind=event.kind.value,
        retry_count=retry_count,
    )
    try:
        try:
            processing = handler(event, {"retry_count": retry_count, **meta})
        except Exception as exc:
            return _settle_failure(
                record,
                exc,
                event=event,
                meta=meta,
                retry_count=retry_count,
                max_attempts=max_attempts,
                requeue=requeue,
                dead_letter=dead_letter,
            )

        ack(record)
        logger.info("Event handled and acknowledged")
        return _result("acked", meta, retry_count, event, processing, None)
    finally:
        clear_message_context()


def handle_batch(
    records: Sequence[Record],
    *,
    handler: Handler,
    ack: AckFn,
    requeue: RequeueFn,
    dead_letter: DeadLetterFn,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> list[dict[str, Any]]:
    """Handle a batch of records sequentially using `handle_message`."""
    results: list[dict[str, Any]] = []
    for record in records:
        result = handle_message(
            record,
            handler=handler,
            ack=ack,
            requeue=requeue,
            dead_letter=dead_letter,
            max_attempts=max_attempts,
        )
        results.append(result)
    return results


def _settle_failure(
    record: Record,
    exc: Exception,
    *,
    event: NotificationEvent,
    meta: dict[str, Any],
    retry_count: int,
    max_attempts: int,
    requeue: RequeueFn,
    dead_letter: DeadLetterFn,
) -> dict[str, Any]:
    error = str(exc) or type(exc).__name__

    if not is_retryable(exc):
        reason = f"permanent_failure: {error}"
        logger.error(
            "Permanent failure, dead-lettering without retry",
            error=error,
            event_payload=event.as_dict(),
        )
        dead_letter(record, reason)
        return _result("dead_lettered", meta, retry_count, event, None, reason)

    next_attempt = retry_count + 1
    if next_attempt <= max_attempts:
        logger.warning(
            "Retryable failure, requeueing",
            error=error,
            next_retry_count=next_attempt,
            max_attempts=max_attempts,
        )
        requeue(record, next_attempt)
        return _result("requeued", meta, retry_count, event, None, error)

    reason = f"retries_exhausted: {error}"
    logger.error(
        "Retry budget exhausted, dead-lettering",
        error=error,
        max_attempts=max_attempts,
        event_payload=event.as_dict(),
    )
    dead_letter(record, reason)
    return _result("dead_lettered", meta, retry_count, event, None, reason)


def _result(
    status: str,
    meta: dict[str, Any],
    retry_count: int,
    event: NotificationEvent | None,
    processing: ProcessingResult | None,
    error: str | None,
) -> dict[str, Any]:
    return {
        "status": status,
        "record_meta": meta,
        "retry_count": retry_count,
        "event": event,
        "processing": processing,
        "error": error,
    }


def _record_meta(record: Record) -> dict[str, Any]:
    return {
        "topic": record.get("topic"),
        "partition": record.get("partition"),
        "offset": record.get("offset"),
    }


def _printable(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
