from __future__ import annotations

import unittest

from salon_notifications.adapters.payload import (
    decode_message_body,
    parse_event_kind,
    parse_event_payload,
    retry_count_from_headers,
)
from salon_notifications.errors import (
    MalformedEventError,
    MissingTenantError,
    UnknownEventKindError,
)
from salon_notifications.types import EventKind


class DecodeMessageBodyTests(unittest.TestCase):
    def test_accepts_bytes(self) -> None:
        payload = decode_message_body(b'{"type":"APPOINTMENT_CREATED","tenantId":"t1"}')
        self.assertEqual(payload["tenantId"], "t1")

    def test_rejects_non_object_json(self) -> None:
        with self.assertRaises(MalformedEventError):
            decode_message_body(b'["not","an","object"]')

    def test_rejects_invalid_json(self) -> None:
        with self.assertRaises(MalformedEventError):
            decode_message_body(b"not-json")

    def test_rejects_invalid_utf8(self) -> None:
        with self.assertRaises(MalformedEventError):
            decode_message_body(b"\xff\xfe")

    def test_rejects_missing_body(self) -> None:
        with self.assertRaises(MalformedEventError):
            decode_message_body(None)


class ParseEventKindTests(unittest.TestCase):
    def test_accepts_value_routing_key_and_short_name(self) -> None:
        self.assertIs(parse_event_kind("APPOINTMENT_NO_SHOW"), EventKind.NO_SHOW)
        self.assertIs(parse_event_kind("appointment.cancelled"), EventKind.CANCELLED)
        self.assertIs(parse_event_kind("confirmed"), EventKind.CONFIRMED)
        self.assertIs(parse_event_kind("no-show"), EventKind.NO_SHOW)

    def test_unknown_kind_is_permanent(self) -> None:
        with self.assertRaises(UnknownEventKindError) as captured:
            parse_event_kind("APPOINTMENT_RESCHEDULED")
        self.assertFalse(captured.exception.retryable)

    def test_missing_kind(self) -> None:
        with self.assertRaises(MalformedEventError):
            parse_event_kind(None)


class ParseEventPayloadTests(unittest.TestCase):
    def base_payload(self) -> dict[str, object]:
        return {
            "eventId": "evt-1",
            "type": "APPOINTMENT_CREATED",
            "tenantId": "t1",
            "appointmentId": "a1",
            "userId": "u1",
            "stylistId": "s1",
            "occurredAt": "2026-02-13T19:35:00Z",
            "payload": {"source": "booking"},
        }

    def test_parses_complete_event(self) -> None:
        event = parse_event_payload(self.base_payload())

        self.assertIs(event.kind, EventKind.CREATED)
        self.assertEqual(event.tenant_id, "t1")
        self.assertEqual(event.appointment_id, "a1")
        self.assertEqual(event.user_id, "u1")
        self.assertEqual(event.stylist_id, "s1")
        self.assertEqual(event.occurred_at, "2026-02-13T19:35:00Z")
        self.assertEqual(event.payload, {"source": "booking"})
        self.assertEqual(event.dedupe_key, "evt-1")

    def test_tenant_falls_back_to_header(self) -> None:
        payload = self.base_payload()
        del payload["tenantId"]

        event = parse_event_payload(payload, {"x-tenant-id": b"t-from-header"})

        self.assertEqual(event.tenant_id, "t-from-header")

    def test_body_tenant_wins_over_header(self) -> None:
        event = parse_event_payload(self.base_payload(), {"x-tenant-id": b"t-other"})
        self.assertEqual(event.tenant_id, "t1")

    def test_missing_tenant_everywhere_is_permanent(self) -> None:
        payload = self.base_payload()
        del payload["tenantId"]

        with self.assertRaises(MissingTenantError) as captured:
            parse_event_payload(payload, {})
        self.assertFalse(captured.exception.retryable)

    def test_required_ids(self) -> None:
        for field in ("appointmentId", "userId"):
            with self.subTest(field=field):
                payload = self.base_payload()
                payload[field] = "  "
                with self.assertRaises(MalformedEventError):
                    parse_event_payload(payload)

    def test_top_level_reason_and_timestamp_alias(self) -> None:
        payload = self.base_payload()
        payload["type"] = "APPOINTMENT_CANCELLED"
        payload["reason"] = "Stylist is sick"
        del payload["occurredAt"]
        del payload["eventId"]
        payload["timestamp"] = "2026-02-13T20:00:00Z"

        event = parse_event_payload(payload)

        self.assertEqual(event.payload["reason"], "Stylist is sick")
        self.assertEqual(event.occurred_at, "2026-02-13T20:00:00Z")
        self.assertEqual(event.dedupe_key, "APPOINTMENT_CANCELLED:a1:2026-02-13T20:00:00Z")

    def test_dedupe_key_without_identity_follows_body(self) -> None:
        first = self.base_payload()
        first["type"] = "APPOINTMENT_UPDATED"
        del first["eventId"]
        del first["occurredAt"]
        first["payload"] = {"change": "time"}
        second = dict(first, payload={"change": "stylist"})

        first_key = parse_event_payload(first).dedupe_key
        second_key = parse_event_payload(second).dedupe_key

        self.assertNotEqual(first_key, second_key)
        self.assertTrue(first_key.startswith("APPOINTMENT_UPDATED:a1:"))
        self.assertEqual(parse_event_payload(dict(first)).dedupe_key, first_key)

    def test_payload_must_be_object(self) -> None:
        payload = self.base_payload()
        payload["payload"] = ["nope"]
        with self.assertRaises(MalformedEventError):
            parse_event_payload(payload)


class RetryCountHeaderTests(unittest.TestCase):
    def test_reads_bytes_and_strings(self) -> None:
        self.assertEqual(retry_count_from_headers({"x-retry-count": b"2"}), 2)
        self.assertEqual(retry_count_from_headers({"x-retry-count": "3"}), 3)

    def test_missing_or_garbled_counts_as_zero(self) -> None:
        self.assertEqual(retry_count_from_headers(None), 0)
        self.assertEqual(retry_count_from_headers({}), 0)
        self.assertEqual(retry_count_from_headers({"x-retry-count": b"abc"}), 0)
        self.assertEqual(retry_count_from_headers({"x-retry-count": b"-4"}), 0)


if __name__ == "__main__":
    unittest.main()
