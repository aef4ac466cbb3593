"""Application layer: enrichment, routing, dispatch and use-case orchestration."""

from .dispatch import ChannelDispatcher
from .enrichment import EnrichmentGateway, build_message_context
from .process import process_notification_event
from .router import ROUTES, EventRouter, Route

__all__ = [
    "ROUTES",
    "ChannelDispatcher",
    "EnrichmentGateway",
    "EventRouter",
    "Route",
    "build_message_context",
    "process_notification_event",
]
