#!/usr/bin/env python3
"""Run the consumer settle flow (ack / requeue / dead-letter) without Kafka."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from salon_notifications.adapters.consumer_handler import handle_batch  # noqa: E402
from salon_notifications.adapters.delivery_log import InMemoryDeliveryLog  # noqa: E402
from salon_notifications.adapters.directories import (  # noqa: E402
    StaticAppointmentDirectory,
    StaticTenantDirectory,
)
from salon_notifications.adapters.fake_senders import (  # noqa: E402
    ConsoleEmailTransport,
    ConsoleSMSTransport,
    NullTransport,
)
from salon_notifications.adapters.kafka_runtime import describe_result  # noqa: E402
from salon_notifications.application.dispatch import ChannelDispatcher  # noqa: E402
from salon_notifications.application.enrichment import EnrichmentGateway  # noqa: E402
from salon_notifications.application.router import EventRouter  # noqa: E402
from salon_notifications.logging import configure_logging  # noqa: E402


def main() -> int:
    configure_logging()
    acked: list[int] = []
    requeued: list[tuple[int, int]] = []
    dead_lettered: list[tuple[int, str]] = []

    def ack(record: dict[str, Any]) -> None:
        acked.append(int(record["offset"]))
        print(f"[COMMIT] offset={record['offset']}")

    def requeue(record: dict[str, Any], next_attempt: int) -> None:
        requeued.append((int(record["offset"]), next_attempt))
        print(f"[REQUEUE] offset={record['offset']} x-retry-count={next_attempt}")

    def dead_letter(record: dict[str, Any], reason: str) -> None:
        dead_lettered.append((int(record["offset"]), reason))
        print(f"[DLQ] offset={record['offset']} reason={reason}")

    router = EventRouter(
        gateway=EnrichmentGateway(
            tenants=StaticTenantDirectory({"t1": {"id": "t1", "name": "Studio Nine"}}),
            appointments=StaticAppointmentDirectory(
                appointments={
                    "a1": {
                        "id": "a1",
                        "services": [{"name": "Haircut", "price": "50.00"}],
                        "startsAt": "2026-02-20T15:00:00",
                    }
                },
                users={"u1": {"id": "u1", "name": "Jane Doe", "email": "jane@example.com"}},
                stylists={"s1": {"id": "s1", "name": "Sam"}},
            ),
        ),
        dispatcher=ChannelDispatcher(
            email=ConsoleEmailTransport(),
            sms=ConsoleSMSTransport(),
            push=NullTransport("push"),
        ),
        delivery_log=InMemoryDeliveryLog(),
    )

    results = handle_batch(
        sample_records(),
        handler=router,
        ack=ack,
        requeue=requeue,
        dead_letter=dead_letter,
    )

    print("")
    print("[BATCH SUMMARY]")
    for result in results:
        print(describe_result(result))

    print("")
    print("[OFFSETS]")
    print(f"acked={acked}")
    print(f"requeued={requeued}")
    print(f"dead_lettered={[offset for offset, _reason in dead_lettered]}")
    return 0


def sample_records() -> list[dict[str, Any]]:
    def record(offset: int, body: Any, headers: dict[str, bytes] | None = None) -> dict[str, Any]:
        value = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
        return {
            "topic": "appointment.created",
            "partition": 0,
            "offset": offset,
            "value": value,
            "headers": headers or {},
        }

    created = {
        "type": "APPOINTMENT_CREATED",
        "tenantId": "t1",
        "appointmentId": "a1",
        "userId": "u1",
        "stylistId": "s1",
    }
    return [
        # Delivered and acked.
        record(100, created),
        # Tenant only in the header.
        record(101, {**created, "tenantId": None}, {"x-tenant-id": b"t1"}),
        # Appointment not visible yet: retryable, requeued.
        record(102, {**created, "appointmentId": "a-missing"}),
        # Same failure on the last allowed attempt: dead-lettered.
        record(103, {**created, "appointmentId": "a-missing"}, {"x-retry-count": b"3"}),
        # Tenant unknown: permanent, dead-lettered at once.
        record(104, {**created, "tenantId": "t-unknown"}),
        # Kind outside the enumeration: dead-lettered.
        record(105, {**created, "type": "APPOINTMENT_RESCHEDULED"}),
        # Not JSON.
        record(106, b"not-json"),
    ]


if __name__ == "__main__":
    sys.exit(main())
