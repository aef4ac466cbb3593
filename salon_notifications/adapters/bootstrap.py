"""Composition root: build the pipeline from `Settings`.

Mental model refresher:
- Transport variants are chosen here, once, from configuration.
- Nothing downstream knows whether it is talking to Mailgun or the console.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..application.dispatch import ChannelDispatcher
from ..application.enrichment import AppointmentDirectory, EnrichmentGateway, TenantDirectory
from ..application.router import EventRouter
from ..config import Settings
from ..types import EmailTransport, PushTransport, SMSTransport
from .delivery_log import DeliveryLog, InMemoryDeliveryLog, JsonLinesDeliveryLog
from .directories import (
    CachedTenantDirectory,
    HttpAppointmentDirectory,
    HttpDirectoryClient,
    HttpTenantDirectory,
)
from .fake_senders import (
    ConsoleEmailTransport,
    ConsolePushTransport,
    ConsoleSMSTransport,
    NullTransport,
)
from .real_senders import FcmPushTransport, MailgunEmailTransport, TwilioSMSTransport


@dataclass
class Pipeline:
    router: EventRouter
    dispatcher: ChannelDispatcher
    gateway: EnrichmentGateway
    delivery_log: DeliveryLog


def build_email_transport(settings: Settings) -> EmailTransport:
    if settings.email_transport == "mailgun":
        return MailgunEmailTransport.from_env()
    if settings.email_transport == "null":
        return NullTransport("email")
    return ConsoleEmailTransport()


def build_sms_transport(settings: Settings) -> SMSTransport:
    if settings.sms_transport == "twilio":
        return TwilioSMSTransport.from_env()
    if settings.sms_transport == "null":
        return NullTransport("sms")
    return ConsoleSMSTransport()


def build_push_transport(settings: Settings) -> PushTransport:
    if settings.push_transport == "fcm":
        return FcmPushTransport.from_env()
    if settings.push_transport == "null":
        return NullTransport("push")
    return ConsolePushTransport()


def build_dispatcher(settings: Settings) -> ChannelDispatcher:
    return ChannelDispatcher(
        email=build_email_transport(settings),
        sms=build_sms_transport(settings),
        push=build_push_transport(settings),
        channel_timeout_seconds=settings.channel_timeout_seconds,
    )


def build_http_directories(settings: Settings) -> tuple[TenantDirectory, AppointmentDirectory]:
    if not settings.tenant_directory_url or not settings.appointment_directory_url:
        raise RuntimeError(
            "TENANT_DIRECTORY_URL and APPOINTMENT_DIRECTORY_URL are required to run the worker"
        )
    api_token = settings.directory_api_token
    tenant_client = HttpDirectoryClient(
        settings.tenant_directory_url,
        timeout_seconds=settings.directory_timeout_seconds,
        api_token=api_token,
    )
    appointment_client = HttpDirectoryClient(
        settings.appointment_directory_url,
        timeout_seconds=settings.directory_timeout_seconds,
        api_token=api_token,
    )
    tenants = CachedTenantDirectory(HttpTenantDirectory(tenant_client))
    return tenants, HttpAppointmentDirectory(appointment_client)


def build_delivery_log(settings: Settings) -> DeliveryLog:
    if settings.delivery_log_path:
        return JsonLinesDeliveryLog(settings.delivery_log_path)
    return InMemoryDeliveryLog()


def build_pipeline(
    settings: Settings,
    *,
    tenants: TenantDirectory | None = None,
    appointments: AppointmentDirectory | None = None,
    dispatcher: ChannelDispatcher | None = None,
    delivery_log: DeliveryLog | None = None,
) -> Pipeline:
    """Wire gateway, dispatcher, delivery log and router.

    Directories and dispatcher can be passed in; otherwise they are built from
    `settings`.
    """
    if tenants is None or appointments is None:
        http_tenants, http_appointments = build_http_directories(settings)
        tenants = tenants or http_tenants
        appointments = appointments or http_appointments

    gateway = EnrichmentGateway(
        tenants=tenants,
        appointments=appointments,
        timeout_seconds=settings.enrichment_timeout_seconds,
    )
    dispatcher = dispatcher or build_dispatcher(settings)
    delivery_log = delivery_log or build_delivery_log(settings)
    router = EventRouter(
        gateway=gateway,
        dispatcher=dispatcher,
        delivery_log=delivery_log,
        retry_on_partial_failure=settings.retry_on_partial_failure,
    )
    return Pipeline(router=router, dispatcher=dispatcher, gateway=gateway, delivery_log=delivery_log)


def describe_pipeline(settings: Settings) -> dict[str, Any]:
    return {
        "email_transport": settings.email_transport,
        "sms_transport": settings.sms_transport,
        "push_transport": settings.push_transport,
        "max_attempts": settings.max_attempts,
        "retry_on_partial_failure": settings.retry_on_partial_failure,
        "delivery_log": settings.delivery_log_path or "memory",
    }
