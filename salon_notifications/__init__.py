"""Appointment notification dispatch worker for multi-tenant salons."""

from .adapters.consumer_handler import handle_batch, handle_message
from .adapters.kafka_runtime import publish_appointment_event, run_notification_worker_forever
from .adapters.payload import parse_event_payload
from .application.process import process_notification_event
from .application.router import EventRouter
from .config import Settings
from .domain.templates import render
from .types import Channel, DeliveryAttempt, DeliveryStatus, EventKind, NotificationEvent

__all__ = [
    "Channel",
    "DeliveryAttempt",
    "DeliveryStatus",
    "EventKind",
    "EventRouter",
    "NotificationEvent",
    "Settings",
    "handle_batch",
    "handle_message",
    "parse_event_payload",
    "process_notification_event",
    "publish_appointment_event",
    "render",
    "run_notification_worker_forever",
]
