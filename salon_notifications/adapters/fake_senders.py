"""Console and null transports for local runs.

Mental model refresher:
- This is outbound adapter code, selected once at start by configuration.
- Console transports print what would have been sent.
- `NullTransport` accepts every send and does nothing; it stands in for a
  channel that is switched off, so runtime code never checks for that case.
"""

from __future__ import annotations

import itertools
from typing import Mapping


class ConsoleEmailTransport:
    def __init__(self) -> None:
        self._ids = itertools.count(1)

    def send(self, *, to: str, subject: str, html: str, text: str) -> str:
        print("[EMAIL]")
        print(f"to={to}")
        print(f"subject={subject}")
        print(f"text={text}")
        return f"console-email-{next(self._ids)}"

    def close(self) -> None:
        return None


class ConsoleSMSTransport:
    def __init__(self) -> None:
        self._ids = itertools.count(1)

    def send(self, *, to: str, message: str) -> str:
        print("[SMS]")
        print(f"to={to}")
        print(f"message={message}")
        return f"console-sms-{next(self._ids)}"

    def close(self) -> None:
        return None


class ConsolePushTransport:
    def __init__(self) -> None:
        self._ids = itertools.count(1)

    def send(
        self,
        *,
        user_id: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        device_tokens: tuple[str, ...],
    ) -> str:
        print("[PUSH]")
        print(f"user_id={user_id} devices={len(device_tokens)}")
        print(f"title={title}")
        print(f"body={body}")
        return f"console-push-{next(self._ids)}"

    def close(self) -> None:
        return None


class NullTransport:
    """Satisfies the email, SMS and push transport interfaces."""

    def __init__(self, channel: str) -> None:
        self.channel = channel

    def send(self, **_message: object) -> str:
        return f"null-{self.channel}"

    def close(self) -> None:
        return None
