#!/usr/bin/env python3
"""Run the appointment notification worker.

Declares topology, serves `/health` and `/ready`, and consumes appointment
lifecycle events until SIGINT or SIGTERM.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from salon_notifications.adapters.kafka_runtime import run_notification_worker_forever  # noqa: E402
from salon_notifications.config import load_env_file  # noqa: E402


def main() -> int:
    args = parse_args()
    load_env_file(args.env_file)
    return run_notification_worker_forever()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the Kafka consumer loop for appointment notifications."
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=REPO_ROOT / ".env",
        help="Environment file loaded before settings are read. Default: ./.env",
    )
    return parser.parse_args()


if __name__ == "__main__":
    sys.exit(main())
