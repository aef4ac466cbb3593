from __future__ import annotations

import json
import unittest
from typing import Any

from salon_notifications.adapters.consumer_handler import handle_batch, handle_message
from salon_notifications.errors import (
    DirectoryError,
    PartialDeliveryError,
    StageError,
    TenantNotFoundError,
)
from salon_notifications.types import NotificationEvent


def make_record(
    value: dict[str, Any] | bytes,
    *,
    offset: int,
    headers: dict[str, bytes] | None = None,
) -> dict[str, Any]:
    return {
        "topic": "appointment.created",
        "partition": 0,
        "offset": offset,
        "value": value if isinstance(value, bytes) else json.dumps(value).encode("utf-8"),
        "headers": headers or {},
    }


def make_payload(**overrides: Any) -> dict[str, Any]:
    base: dict[str, Any] = {
        "eventId": "evt-1",
        "type": "APPOINTMENT_CREATED",
        "tenantId": "t1",
        "appointmentId": "a1",
        "userId": "u1",
        "stylistId": "s1",
    }
    return base | overrides


class SettleRecorder:
    def __init__(self) -> None:
        self.acked: list[int] = []
        self.requeued: list[tuple[int, int]] = []
        self.dead_lettered: list[tuple[int, str]] = []

    def ack(self, record: dict[str, Any]) -> None:
        self.acked.append(int(record["offset"]))

    def requeue(self, record: dict[str, Any], next_attempt: int) -> None:
        self.requeued.append((int(record["offset"]), next_attempt))

    def dead_letter(self, record: dict[str, Any], reason: str) -> None:
        self.dead_lettered.append((int(record["offset"]), reason))

    def callbacks(self) -> dict[str, Any]:
        return {"ack": self.ack, "requeue": self.requeue, "dead_letter": self.dead_letter}

    def settle_count(self) -> int:
        return len(self.acked) + len(self.requeued) + len(self.dead_lettered)


def succeeding_handler(event: NotificationEvent, metadata: dict[str, Any]) -> dict[str, Any]:
    return {"event_key": event.dedupe_key, "all_delivered": True}


def raising_handler(exc: Exception):
    def handler(event: NotificationEvent, metadata: dict[str, Any]) -> dict[str, Any]:
        raise exc

    return handler


class ConsumerHandlerTests(unittest.TestCase):
    def test_success_acks(self) -> None:
        settle = SettleRecorder()

        result = handle_message(
            make_record(make_payload(), offset=10),
            handler=succeeding_handler,
            **settle.callbacks(),
        )

        self.assertEqual(result["status"], "acked")
        self.assertEqual(settle.acked, [10])
        self.assertEqual(settle.settle_count(), 1)
        self.assertEqual(result["processing"]["event_key"], "evt-1")

    def test_handler_receives_retry_count(self) -> None:
        seen: list[int] = []

        def handler(event: NotificationEvent, metadata: dict[str, Any]) -> dict[str, Any]:
            seen.append(metadata["retry_count"])
            return {}

        handle_message(
            make_record(make_payload(), offset=1, headers={"x-retry-count": b"2"}),
            handler=handler,
            **SettleRecorder().callbacks(),
        )

        self.assertEqual(seen, [2])

    def test_retryable_failure_requeues_with_next_attempt(self) -> None:
        settle = SettleRecorder()

        result = handle_message(
            make_record(make_payload(), offset=11),
            handler=raising_handler(StageError("enrich", DirectoryError("directory down"))),
            **settle.callbacks(),
        )

        self.assertEqual(result["status"], "requeued")
        self.assertEqual(settle.requeued, [(11, 1)])
        self.assertEqual(settle.settle_count(), 1)

    def test_last_allowed_attempt_still_requeues(self) -> None:
        settle = SettleRecorder()

        handle_message(
            make_record(make_payload(), offset=12, headers={"x-retry-count": b"2"}),
            handler=raising_handler(DirectoryError("directory down")),
            max_attempts=3,
            **settle.callbacks(),
        )

        self.assertEqual(settle.requeued, [(12, 3)])

    def test_exhausted_budget_dead_letters(self) -> None:
        settle = SettleRecorder()

        result = handle_message(
            make_record(make_payload(), offset=13, headers={"x-retry-count": b"3"}),
            handler=raising_handler(PartialDeliveryError(["sms"])),
            max_attempts=3,
            **settle.callbacks(),
        )

        self.assertEqual(result["status"], "dead_lettered")
        self.assertEqual(settle.requeued, [])
        self.assertEqual(len(settle.dead_lettered), 1)
        self.assertTrue(settle.dead_lettered[0][1].startswith("retries_exhausted:"))

    def test_zero_budget_dead_letters_first_retryable_failure(self) -> None:
        settle = SettleRecorder()

        handle_message(
            make_record(make_payload(), offset=14),
            handler=raising_handler(DirectoryError("directory down")),
            max_attempts=0,
            **settle.callbacks(),
        )

        self.assertEqual(settle.requeued, [])
        self.assertEqual(len(settle.dead_lettered), 1)

    def test_permanent_failure_dead_letters_without_budget(self) -> None:
        settle = SettleRecorder()

        result = handle_message(
            make_record(make_payload(), offset=15),
            handler=raising_handler(StageError("enrich", TenantNotFoundError("Tenant not found: t1"))),
            **settle.callbacks(),
        )

        self.assertEqual(result["status"], "dead_lettered")
        self.assertEqual(settle.requeued, [])
        self.assertTrue(settle.dead_lettered[0][1].startswith("permanent_failure:"))

    def test_unclassified_exception_is_retryable(self) -> None:
        settle = SettleRecorder()

        handle_message(
            make_record(make_payload(), offset=16),
            handler=raising_handler(KeyError("boom")),
            **settle.callbacks(),
        )

        self.assertEqual(settle.requeued, [(16, 1)])

    def test_unknown_kind_dead_letters_without_calling_handler(self) -> None:
        settle = SettleRecorder()
        calls: list[NotificationEvent] = []

        def handler(event: NotificationEvent, metadata: dict[str, Any]) -> dict[str, Any]:
            calls.append(event)
            return {}

        result = handle_message(
            make_record(make_payload(type="APPOINTMENT_RESCHEDULED"), offset=17),
            handler=handler,
            **settle.callbacks(),
        )

        self.assertEqual(result["status"], "dead_lettered")
        self.assertEqual(calls, [])
        self.assertTrue(settle.dead_lettered[0][1].startswith("parse_failed:"))

    def test_missing_tenant_dead_letters_on_first_delivery(self) -> None:
        settle = SettleRecorder()
        payload = make_payload()
        del payload["tenantId"]

        handle_message(
            make_record(payload, offset=18),
            handler=succeeding_handler,
            **settle.callbacks(),
        )

        self.assertEqual([offset for offset, _ in settle.dead_lettered], [18])
        self.assertEqual(settle.requeued, [])

    def test_tenant_header_is_accepted(self) -> None:
        settle = SettleRecorder()
        payload = make_payload()
        del payload["tenantId"]

        result = handle_message(
            make_record(payload, offset=19, headers={"x-tenant-id": b"t1"}),
            handler=succeeding_handler,
            **settle.callbacks(),
        )

        self.assertEqual(result["status"], "acked")
        self.assertEqual(result["event"].tenant_id, "t1")

    def test_handle_batch_settles_each_record_exactly_once(self) -> None:
        settle = SettleRecorder()
        records = [
            make_record(make_payload(), offset=20),
            make_record(b"not-json", offset=21),
            make_record(make_payload(eventId="evt-22"), offset=22),
        ]

        def handler(event: NotificationEvent, metadata: dict[str, Any]) -> dict[str, Any]:
            if event.dedupe_key == "evt-22":
                raise DirectoryError("appointment record not found yet")
            return {}

        results = handle_batch(records, handler=handler, **settle.callbacks())

        self.assertEqual([item["status"] for item in results], ["acked", "dead_lettered", "requeued"])
        self.assertEqual(settle.settle_count(), 3)


if __name__ == "__main__":
    unittest.main()
