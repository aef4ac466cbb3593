"""Event routing table: event kind -> pipeline route.

Every kind runs the same enrich -> render -> dispatch pipeline and differs
only in the template it selects. The table must cover every `EventKind`;
a missing entry fails at import rather than at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..adapters.delivery_log import DeliveryLog
from ..domain.templates import TEMPLATE_REGISTRY, AppointmentTemplate
from ..errors import UnknownEventKindError
from ..types import EventKind, NotificationEvent, ProcessingResult
from .dispatch import ChannelDispatcher
from .enrichment import EnrichmentGateway
from .process import process_notification_event


@dataclass(frozen=True)
class Route:
    kind: EventKind
    template: AppointmentTemplate


ROUTES: dict[EventKind, Route] = {
    kind: Route(kind=kind, template=TEMPLATE_REGISTRY[kind]) for kind in TEMPLATE_REGISTRY
}

_unrouted = [kind.name for kind in EventKind if kind not in ROUTES]
if _unrouted:
    raise RuntimeError(f"Event kinds without a route: {', '.join(_unrouted)}")


class EventRouter:
    def __init__(
        self,
        *,
        gateway: EnrichmentGateway,
        dispatcher: ChannelDispatcher,
        delivery_log: DeliveryLog,
        retry_on_partial_failure: bool = True,
        routes: dict[EventKind, Route] | None = None,
    ) -> None:
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.delivery_log = delivery_log
        self.retry_on_partial_failure = retry_on_partial_failure
        self.routes = ROUTES if routes is None else routes

    def route(self, event: NotificationEvent, *, retry_count: int = 0) -> ProcessingResult:
        route = self.routes.get(event.kind)
        if route is None:
            raise UnknownEventKindError(f"No route for event kind: {event.kind}")
        return process_notification_event(
            event,
            template=route.template,
            gateway=self.gateway,
            dispatcher=self.dispatcher,
            delivery_log=self.delivery_log,
            retry_count=retry_count,
            retry_on_partial_failure=self.retry_on_partial_failure,
        )

    def __call__(self, event: NotificationEvent, metadata: dict) -> ProcessingResult:
        return self.route(event, retry_count=int(metadata.get("retry_count", 0)))
