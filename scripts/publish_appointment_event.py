#!/usr/bin/env python3
"""Publish one appointment lifecycle event to Kafka for local testing."""

from __future__ import annotations

import argparse
import sys
import uuid
from datetime import UTC, datetime
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from salon_notifications.adapters.kafka_runtime import publish_appointment_event  # noqa: E402
from salon_notifications.config import load_env_file  # noqa: E402
from salon_notifications.types import EventKind  # noqa: E402


def main() -> int:
    load_env_file(REPO_ROOT / ".env")
    args = parse_args()
    payload = build_payload(args)
    metadata = publish_appointment_event(
        payload, routing_key=args.routing_key, tenant_id=args.tenant_id
    )

    print("[PUBLISHED]")
    print(f"topic={metadata['topic']}")
    print(f"partition={metadata['partition']}")
    print(f"offset={metadata['offset']}")
    print(f"event_id={payload['eventId']}")
    print(f"type={payload['type']} tenant_id={payload.get('tenantId')}")
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Publish one appointment lifecycle event for Kafka testing."
    )
    parser.add_argument(
        "--kind",
        choices=[kind.name.lower() for kind in EventKind],
        default="created",
        help="Lifecycle event kind. Default: created.",
    )
    parser.add_argument("--tenant-id", default="tenant-demo-1", help="Tenant id.")
    parser.add_argument(
        "--tenant-in-header",
        action="store_true",
        help="Send the tenant only as the x-tenant-id header, not in the body.",
    )
    parser.add_argument(
        "--appointment-id",
        default=None,
        help="Optional appointment id. Default: generated UUID suffix.",
    )
    parser.add_argument("--user-id", default="user-demo-1", help="Client user id.")
    parser.add_argument("--stylist-id", default="stylist-demo-1", help="Stylist id.")
    parser.add_argument(
        "--reason",
        default=None,
        help="Cancellation reason (only meaningful with --kind cancelled).",
    )
    parser.add_argument(
        "--event-id",
        default=None,
        help="Optional event id. Default: generated UUID.",
    )
    parser.add_argument(
        "--routing-key",
        default=None,
        help="Override the destination topic (defaults to the kind's routing key).",
    )
    return parser.parse_args()


def build_payload(args: argparse.Namespace) -> dict[str, object]:
    kind = EventKind[args.kind.upper()]
    payload: dict[str, object] = {
        "eventId": args.event_id or f"evt-{uuid.uuid4()}",
        "type": kind.value,
        "appointmentId": args.appointment_id or f"apt-{uuid.uuid4().hex[:12]}",
        "userId": args.user_id,
        "stylistId": args.stylist_id,
        "occurredAt": datetime.now(tz=UTC).isoformat(),
        "payload": {},
    }
    if args.reason:
        payload["payload"] = {"reason": args.reason}
    if not args.tenant_in_header:
        payload["tenantId"] = args.tenant_id
    return payload


if __name__ == "__main__":
    sys.exit(main())
