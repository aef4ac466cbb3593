#!/usr/bin/env python3
"""Run the notification pipeline locally without Kafka.

Enriches from static in-memory directories, renders the template for the
event kind, and dispatches through console transports.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from salon_notifications.adapters.delivery_log import InMemoryDeliveryLog  # noqa: E402
from salon_notifications.adapters.directories import (  # noqa: E402
    StaticAppointmentDirectory,
    StaticTenantDirectory,
)
from salon_notifications.adapters.fake_senders import (  # noqa: E402
    ConsoleEmailTransport,
    ConsolePushTransport,
    ConsoleSMSTransport,
)
from salon_notifications.adapters.payload import parse_event_payload  # noqa: E402
from salon_notifications.application.dispatch import ChannelDispatcher  # noqa: E402
from salon_notifications.application.enrichment import EnrichmentGateway  # noqa: E402
from salon_notifications.application.router import EventRouter  # noqa: E402
from salon_notifications.logging import configure_logging  # noqa: E402
from salon_notifications.types import EventKind  # noqa: E402


def main() -> int:
    args = parse_args()
    configure_logging()
    payload = load_payload(args.payload_file, args.kind)
    event = parse_event_payload(payload)

    delivery_log = InMemoryDeliveryLog()
    router = EventRouter(
        gateway=EnrichmentGateway(tenants=demo_tenants(), appointments=demo_appointments()),
        dispatcher=ChannelDispatcher(
            email=ConsoleEmailTransport(),
            sms=ConsoleSMSTransport(),
            push=ConsolePushTransport(),
        ),
        delivery_log=delivery_log,
    )
    result = router.route(event)

    print("")
    print("[SUMMARY]")
    print(f"event_key={result['event_key']}")
    print(f"appointment_id={result['appointment_id']} kind={result['kind']}")
    for attempt in result["attempts"]:
        print(
            f"channel={attempt.channel.value} status={attempt.status.value} "
            f"delivery_id={attempt.delivery_id} error={attempt.error}"
        )
    print(f"all_delivered={result['all_delivered']}")
    return 0 if result["all_delivered"] else 1


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Execute enrich/render/dispatch with a sample appointment event."
    )
    parser.add_argument(
        "--payload-file",
        type=Path,
        default=None,
        help="Optional JSON file matching the inbound event shape.",
    )
    parser.add_argument(
        "--kind",
        choices=[kind.name.lower() for kind in EventKind],
        default="created",
        help="Event kind for the built-in sample payload. Default: created.",
    )
    return parser.parse_args()


def load_payload(payload_file: Path | None, kind: str) -> dict[str, Any]:
    if payload_file is None:
        return sample_payload(EventKind[kind.upper()])
    with payload_file.open("r", encoding="utf-8") as file_handle:
        return json.load(file_handle)


def sample_payload(kind: EventKind) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if kind is EventKind.APPOINTMENT_CANCELLED:
        payload["reason"] = "Stylist is out sick"
    return {
        "eventId": "evt-demo-1",
        "type": kind.value,
        "tenantId": "t1",
        "appointmentId": "a1",
        "userId": "u1",
        "stylistId": "s1",
        "occurredAt": "2026-02-13T19:35:00Z",
        "payload": payload,
    }


def demo_tenants() -> StaticTenantDirectory:
    return StaticTenantDirectory(
        {
            "t1": {
                "id": "t1",
                "name": "Studio Nine",
                "primaryColor": "#7a3e9d",
                "contact": {"phone": "+1 555 555 0100", "email": "hello@studionine.example"},
            }
        }
    )


def demo_appointments() -> StaticAppointmentDirectory:
    return StaticAppointmentDirectory(
        appointments={
            "a1": {
                "id": "a1",
                "services": [{"name": "Haircut", "price": "50.00"}],
                "totalPrice": "50.00",
                "startsAt": "2026-02-20T15:00:00",
            }
        },
        users={
            "u1": {
                "id": "u1",
                "name": "Jane Doe",
                "email": "jane@example.com",
                "phone": "5555550123",
            }
        },
        stylists={"s1": {"id": "s1", "name": "Sam"}},
    )


if __name__ == "__main__":
    sys.exit(main())
