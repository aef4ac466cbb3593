"""Environment-variable configuration.

Settings are read once at process start. Transport variants are chosen here
and nowhere else, so runtime code never asks whether it is running mocked.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

EMAIL_TRANSPORTS = ("mailgun", "console", "null")
SMS_TRANSPORTS = ("twilio", "console", "null")
PUSH_TRANSPORTS = ("fcm", "console", "null")


@dataclass(frozen=True)
class Settings:
    bootstrap_servers: tuple[str, ...] = ()
    group_id: str = "salon-notifications-worker"
    auto_offset_reset: str = "earliest"
    poll_timeout_seconds: float = 1.0
    send_timeout_seconds: float = 10.0
    work_topic: str = "appointment_notifications"
    dlq_topic: str = "appointment_notifications.dlq"
    binding_pattern: str = "appointment.#"
    work_partitions: int = 1
    replication_factor: int = 1
    max_attempts: int = 3
    retry_on_partial_failure: bool = True
    enrichment_timeout_seconds: float = 5.0
    channel_timeout_seconds: float = 10.0
    shutdown_grace_seconds: float = 30.0
    tenant_directory_url: str | None = None
    appointment_directory_url: str | None = None
    directory_timeout_seconds: float = 5.0
    directory_api_token: str | None = None
    email_transport: str = "console"
    sms_transport: str = "console"
    push_transport: str = "console"
    delivery_log_path: str | None = None
    health_host: str = "0.0.0.0"
    health_port: int = 8080

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            bootstrap_servers=tuple(_env_csv("KAFKA_BOOTSTRAP_SERVERS")),
            group_id=os.getenv("KAFKA_GROUP_ID", cls.group_id),
            auto_offset_reset=os.getenv("KAFKA_AUTO_OFFSET_RESET", cls.auto_offset_reset),
            poll_timeout_seconds=_env_float("KAFKA_POLL_TIMEOUT_SECONDS", cls.poll_timeout_seconds),
            send_timeout_seconds=_env_float("KAFKA_SEND_TIMEOUT_SECONDS", cls.send_timeout_seconds),
            work_topic=os.getenv("NOTIFICATION_WORK_TOPIC", cls.work_topic),
            dlq_topic=os.getenv("NOTIFICATION_DLQ_TOPIC", cls.dlq_topic),
            binding_pattern=os.getenv("NOTIFICATION_BINDING_PATTERN", cls.binding_pattern),
            work_partitions=_env_int("NOTIFICATION_WORK_PARTITIONS", cls.work_partitions),
            replication_factor=_env_int(
                "NOTIFICATION_REPLICATION_FACTOR", cls.replication_factor
            ),
            max_attempts=_env_int("NOTIFICATION_MAX_ATTEMPTS", cls.max_attempts),
            retry_on_partial_failure=_env_bool(
                "RETRY_ON_PARTIAL_FAILURE", cls.retry_on_partial_failure
            ),
            enrichment_timeout_seconds=_env_float(
                "ENRICHMENT_TIMEOUT_SECONDS", cls.enrichment_timeout_seconds
            ),
            channel_timeout_seconds=_env_float(
                "CHANNEL_TIMEOUT_SECONDS", cls.channel_timeout_seconds
            ),
            shutdown_grace_seconds=_env_float(
                "SHUTDOWN_GRACE_SECONDS", cls.shutdown_grace_seconds
            ),
            tenant_directory_url=_env_optional("TENANT_DIRECTORY_URL"),
            appointment_directory_url=_env_optional("APPOINTMENT_DIRECTORY_URL"),
            directory_timeout_seconds=_env_float(
                "DIRECTORY_TIMEOUT_SECONDS", cls.directory_timeout_seconds
            ),
            email_transport=_env_choice("EMAIL_TRANSPORT", cls.email_transport, EMAIL_TRANSPORTS),
            sms_transport=_env_choice("SMS_TRANSPORT", cls.sms_transport, SMS_TRANSPORTS),
            push_transport=_env_choice("PUSH_TRANSPORT", cls.push_transport, PUSH_TRANSPORTS),
            directory_api_token=_env_optional("DIRECTORY_API_TOKEN"),
            delivery_log_path=_env_optional("DELIVERY_LOG_PATH"),
            health_host=os.getenv("HEALTH_HOST", cls.health_host),
            health_port=_env_int("HEALTH_PORT", cls.health_port),
        )
        if settings.max_attempts < 0:
            raise RuntimeError("NOTIFICATION_MAX_ATTEMPTS must be >= 0")
        if settings.poll_timeout_seconds <= 0:
            raise RuntimeError("KAFKA_POLL_TIMEOUT_SECONDS must be > 0")
        return settings

    def require_bootstrap_servers(self) -> list[str]:
        if not self.bootstrap_servers:
            raise RuntimeError("KAFKA_BOOTSTRAP_SERVERS must include at least one host:port")
        return list(self.bootstrap_servers)


def load_env_file(path: Path) -> None:
    """Populate os.environ from a `.env` file without overriding set values."""
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        text = line.strip()
        if not text or text.startswith("#") or "=" not in text:
            continue
        key, value = text.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue
        if value.startswith(("'", '"')) and value.endswith(("'", '"')) and len(value) >= 2:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value.strip()


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise RuntimeError(f"Invalid boolean value for {name}: {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid number for {name}: {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer for {name}: {raw!r}") from exc


def _env_csv(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = (os.getenv(name) or default).strip().lower()
    if value not in choices:
        raise RuntimeError(f"{name} must be one of {', '.join(choices)}; got {value!r}")
    return value
