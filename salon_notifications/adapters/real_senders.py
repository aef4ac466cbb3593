"""Real provider transports for production sending.

Mental model refresher:
- This module is an outbound adapter.
- Each transport is built once at start from environment-variable config and
  injected into the dispatcher.
- Every failure surfaces as `TransportError`. Timeouts, 5xx, 408 and 429 are
  retryable; other 4xx answers are not.
"""

from __future__ import annotations

import base64
import json
import os
import socket
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Mapping

from ..config import required_env
from ..errors import TransportError
from ..logging import get_logger

logger = get_logger(__name__)

_RETRYABLE_STATUS = {408, 429}


class MailgunEmailTransport:
    def __init__(
        self,
        *,
        api_key: str,
        domain: str,
        from_email: str,
        base_url: str = "https://api.mailgun.net",
        timeout_seconds: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_env(cls) -> "MailgunEmailTransport":
        return cls(
            api_key=required_env("MAILGUN_API_KEY"),
            domain=required_env("MAILGUN_DOMAIN"),
            from_email=required_env("MAILGUN_FROM_EMAIL"),
            base_url=os.getenv("MAILGUN_API_BASE_URL", "https://api.mailgun.net"),
            timeout_seconds=float(os.getenv("MAILGUN_TIMEOUT_SECONDS", "10")),
        )

    def send(self, *, to: str, subject: str, html: str, text: str) -> str:
        encoded_domain = urllib.parse.quote(self.domain, safe="")
        endpoint = f"{self.base_url}/v3/{encoded_domain}/messages"
        payload = urllib.parse.urlencode(
            {"from": self.from_email, "to": to, "subject": subject, "text": text, "html": html}
        ).encode("utf-8")

        request = urllib.request.Request(endpoint, data=payload, method="POST")
        request.add_header("Authorization", _basic_auth_header("api", self.api_key))
        request.add_header("Content-Type", "application/x-www-form-urlencoded")

        body = _send(request, "Mailgun email send", self.timeout_seconds)
        return str(body.get("id") or "")

    def close(self) -> None:
        return None


class TwilioSMSTransport:
    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        from_phone: str,
        base_url: str = "https://api.twilio.com",
        timeout_seconds: float = 10.0,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_phone = from_phone
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_env(cls) -> "TwilioSMSTransport":
        return cls(
            account_sid=required_env("TWILIO_ACCOUNT_SID"),
            auth_token=required_env("TWILIO_AUTH_TOKEN"),
            from_phone=required_env("TWILIO_FROM_PHONE"),
            base_url=os.getenv("TWILIO_API_BASE_URL", "https://api.twilio.com"),
            timeout_seconds=float(os.getenv("TWILIO_TIMEOUT_SECONDS", "10")),
        )

    def send(self, *, to: str, message: str) -> str:
        endpoint = f"{self.base_url}/2010-04-01/Accounts/{self.account_sid}/Messages.json"
        payload = urllib.parse.urlencode(
            {"To": to, "From": self.from_phone, "Body": message}
        ).encode("utf-8")

        request = urllib.request.Request(endpoint, data=payload, method="POST")
        request.add_header("Authorization", _basic_auth_header(self.account_sid, self.auth_token))
        request.add_header("Content-Type", "application/x-www-form-urlencoded")

        body = _send(request, "Twilio SMS send", self.timeout_seconds)
        return str(body.get("sid") or "")

    def close(self) -> None:
        return None


class FcmPushTransport:
    """Firebase Cloud Messaging HTTP v1, one request per device token."""

    def __init__(
        self,
        *,
        project_id: str,
        access_token: str,
        base_url: str = "https://fcm.googleapis.com",
        timeout_seconds: float = 10.0,
    ) -> None:
        self.project_id = project_id
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_env(cls) -> "FcmPushTransport":
        return cls(
            project_id=required_env("FCM_PROJECT_ID"),
            access_token=required_env("FCM_ACCESS_TOKEN"),
            base_url=os.getenv("FCM_API_BASE_URL", "https://fcm.googleapis.com"),
            timeout_seconds=float(os.getenv("FCM_TIMEOUT_SECONDS", "10")),
        )

    def send(
        self,
        *,
        user_id: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        device_tokens: tuple[str, ...],
    ) -> str:
        endpoint = f"{self.base_url}/v1/projects/{self.project_id}/messages:send"
        message_ids: list[str] = []
        errors: list[TransportError] = []

        for token in device_tokens:
            payload = {
                "message": {
                    "token": token,
                    "notification": {"title": title, "body": body},
                    "data": {str(key): str(value) for key, value in data.items()},
                }
            }
            request = urllib.request.Request(
                endpoint, data=json.dumps(payload).encode("utf-8"), method="POST"
            )
            request.add_header("Authorization", f"Bearer {self.access_token}")
            request.add_header("Content-Type", "application/json; charset=utf-8")
            try:
                response = _send(request, "FCM push send", self.timeout_seconds)
            except TransportError as exc:
                logger.warning("Push token rejected", user_id=user_id, error=str(exc))
                errors.append(exc)
                continue
            message_ids.append(str(response.get("name") or ""))

        if not message_ids:
            retryable = any(item.retryable for item in errors)
            raise TransportError(
                f"FCM push send failed for all {len(device_tokens)} device tokens",
                retryable=retryable,
            )
        return ",".join(message_ids)

    def close(self) -> None:
        return None


def _send(request: urllib.request.Request, action: str, timeout_seconds: float) -> dict[str, Any]:
    try:
        with urllib.request.urlopen(request, timeout=timeout_seconds) as response:
            status = int(response.getcode())
            raw = response.read()
            if status < 200 or status >= 300:
                raise TransportError(
                    f"{action} failed with status {status}",
                    retryable=status >= 500 or status in _RETRYABLE_STATUS,
                )
    except urllib.error.HTTPError as exc:
        details = exc.read().decode("utf-8", errors="replace")
        raise TransportError(
            f"{action} failed HTTP {exc.code}: {details[:300]}",
            retryable=exc.code >= 500 or exc.code in _RETRYABLE_STATUS,
        ) from exc
    except urllib.error.URLError as exc:
        raise TransportError(f"{action} failed: {exc.reason}") from exc
    except (socket.timeout, TimeoutError) as exc:
        raise TransportError(f"{action} timed out after {timeout_seconds:g}s") from exc

    try:
        parsed = json.loads(raw.decode("utf-8")) if raw else {}
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _basic_auth_header(username: str, password: str) -> str:
    token = f"{username}:{password}".encode("utf-8")
    encoded = base64.b64encode(token).decode("ascii")
    return f"Basic {encoded}"
