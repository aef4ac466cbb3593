"""Append-only delivery attempt stores.

Rows are written once and never updated. The operator viewer reads the
JSON-lines file; the in-memory log backs tests and demos.
"""

from __future__ import annotations

import json
import threading
from collections import defaultdict
from pathlib import Path
from typing import Iterable, Protocol

from ..logging import get_logger
from ..types import Channel, DeliveryAttempt, DeliveryStatus

logger = get_logger(__name__)


class DeliveryLog(Protocol):
    def record(self, attempts: Iterable[DeliveryAttempt]) -> None: ...

    def sent_channels(self, event_key: str) -> set[Channel]: ...


class InMemoryDeliveryLog:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.attempts: list[DeliveryAttempt] = []

    def record(self, attempts: Iterable[DeliveryAttempt]) -> None:
        with self._lock:
            self.attempts.extend(attempts)

    def sent_channels(self, event_key: str) -> set[Channel]:
        with self._lock:
            return {
                item.channel
                for item in self.attempts
                if item.event_key == event_key and item.status is DeliveryStatus.SENT
            }

    def for_event(self, event_key: str) -> list[DeliveryAttempt]:
        with self._lock:
            return [item for item in self.attempts if item.event_key == event_key]


class JsonLinesDeliveryLog:
    """One JSON object per line, appended under a process-wide lock.

    Sent channels are indexed in memory: read from the file once at
    construction, then kept current by `record()`. Rows that do not parse
    (a write torn by a crash) are skipped with a warning.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._sent: dict[str, set[Channel]] = defaultdict(set)
        self._needs_newline = False
        self._load_index()

    def record(self, attempts: Iterable[DeliveryAttempt]) -> None:
        attempts = list(attempts)
        if not attempts:
            return
        lines = [json.dumps(item.as_dict(), separators=(",", ":")) for item in attempts]
        with self._lock:
            with self.path.open("a", encoding="utf-8") as file_handle:
                if self._needs_newline:
                    file_handle.write("\n")
                    self._needs_newline = False
                file_handle.write("\n".join(lines) + "\n")
                file_handle.flush()
            for item in attempts:
                if item.status is DeliveryStatus.SENT:
                    self._sent[item.event_key].add(item.channel)

    def sent_channels(self, event_key: str) -> set[Channel]:
        with self._lock:
            return set(self._sent.get(event_key, ()))

    def _load_index(self) -> None:
        if not self.path.exists():
            return
        with self.path.open("rb") as raw:
            raw.seek(0, 2)
            if raw.tell() > 0:
                raw.seek(-1, 2)
                self._needs_newline = raw.read(1) != b"\n"
        with self.path.open("r", encoding="utf-8", errors="replace") as file_handle:
            for line_number, line in enumerate(file_handle, start=1):
                text = line.strip()
                if not text:
                    continue
                try:
                    row = json.loads(text)
                    if row.get("status") == DeliveryStatus.SENT.value:
                        self._sent[str(row["event_key"])].add(Channel(row["channel"]))
                except (json.JSONDecodeError, KeyError, ValueError, AttributeError) as exc:
                    logger.warning(
                        "Skipping unreadable delivery log row",
                        path=str(self.path),
                        line=line_number,
                        error=str(exc),
                    )
