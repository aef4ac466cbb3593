"""Event enrichment: hydrate an event into everything the templates need.

Mental model refresher:
- Tenant, appointment, user and stylist reads run in parallel, bounded by one
  timeout. A hung directory cannot hold the consumer.
- Classification:
  - confirmed "tenant not found" => permanent
  - every other read failure, timeouts included => retryable
- A tenant without branding still dispatches with default branding.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Protocol

from ..errors import DirectoryError, DirectoryTimeoutError, NotificationError, TenantNotFoundError
from ..logging import get_logger
from ..types import DEFAULT_BRANDING, MessageContext, NotificationEvent, Recipient, TenantBranding

logger = get_logger(__name__)

Record = Mapping[str, Any]


class TenantDirectory(Protocol):
    def get_tenant(self, tenant_id: str) -> Record: ...


class AppointmentDirectory(Protocol):
    def get_appointment(self, tenant_id: str, appointment_id: str) -> Record: ...

    def get_user(self, tenant_id: str, user_id: str) -> Record: ...

    def get_stylist(self, tenant_id: str, stylist_id: str) -> Record: ...


class EnrichmentGateway:
    def __init__(
        self,
        *,
        tenants: TenantDirectory,
        appointments: AppointmentDirectory,
        timeout_seconds: float = 5.0,
    ) -> None:
        self.tenants = tenants
        self.appointments = appointments
        self.timeout_seconds = timeout_seconds

    def enrich(self, event: NotificationEvent) -> MessageContext:
        records = self._fetch(event)
        return build_message_context(
            event,
            tenant=records["tenant"],
            appointment=records["appointment"],
            user=records["user"],
            stylist=records.get("stylist"),
        )

    def _fetch(self, event: NotificationEvent) -> dict[str, Record]:
        calls = {
            "tenant": (self.tenants.get_tenant, (event.tenant_id,)),
            "appointment": (
                self.appointments.get_appointment,
                (event.tenant_id, event.appointment_id),
            ),
            "user": (self.appointments.get_user, (event.tenant_id, event.user_id)),
        }
        if event.stylist_id:
            calls["stylist"] = (
                self.appointments.get_stylist,
                (event.tenant_id, event.stylist_id),
            )

        executor = ThreadPoolExecutor(max_workers=len(calls), thread_name_prefix="enrich")
        try:
            futures = {name: executor.submit(fn, *args) for name, (fn, args) in calls.items()}
            done, _pending = wait(futures.values(), timeout=self.timeout_seconds)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        records: dict[str, Record] = {}
        failures: list[NotificationError] = []
        for name, future in futures.items():
            if future not in done:
                future.cancel()
                failures.append(
                    DirectoryTimeoutError(
                        f"{name} lookup timed out after {self.timeout_seconds:g}s"
                    )
                )
                continue
            try:
                records[name] = future.result()
            except TenantNotFoundError:
                raise
            except NotificationError as exc:
                failures.append(exc)
            except Exception as exc:
                failures.append(DirectoryError(f"{name} lookup failed: {exc}"))

        if failures:
            for failure in failures[1:]:
                logger.warning("Additional enrichment failure", error=str(failure))
            raise failures[0]
        return records


def build_message_context(
    event: NotificationEvent,
    *,
    tenant: Record,
    appointment: Record,
    user: Record,
    stylist: Record | None,
) -> MessageContext:
    reason = event.payload.get("reason") or appointment.get("cancellationReason")
    return MessageContext(
        event=event,
        branding=branding_from_record(tenant),
        recipient=recipient_from_record(event.user_id, user),
        stylist_name=_stylist_name(stylist, appointment),
        services=_service_names(appointment),
        total_price=_total_price(appointment),
        starts_at=_starts_at(appointment),
        reason=str(reason) if reason else None,
    )


def branding_from_record(record: Record) -> TenantBranding:
    contact = record.get("contact")
    settings = record.get("settings")
    if not isinstance(contact, Mapping):
        contact = {}
    if not isinstance(settings, Mapping):
        settings = {}
    default = DEFAULT_BRANDING
    return TenantBranding(
        name=record.get("name") or default.name,
        logo_url=record.get("logoUrl") or default.logo_url,
        primary_color=record.get("primaryColor") or default.primary_color,
        contact_address=contact.get("address") or default.contact_address,
        contact_phone=contact.get("phone") or default.contact_phone,
        contact_email=contact.get("email") or default.contact_email,
        currency_symbol=settings.get("currencySymbol") or default.currency_symbol,
        date_format=settings.get("dateFormat") or default.date_format,
        time_format=settings.get("timeFormat") or default.time_format,
    )


def recipient_from_record(user_id: str, record: Record) -> Recipient:
    tokens = record.get("deviceTokens") or ()
    return Recipient(
        user_id=str(record.get("id") or user_id),
        name=_person_name(record) or "Valued Client",
        email=_optional_str(record.get("email")),
        phone=_optional_str(record.get("phone")),
        device_tokens=tuple(str(token) for token in tokens if str(token).strip()),
    )


def _person_name(record: Record | None) -> str | None:
    if not record:
        return None
    name = _optional_str(record.get("name"))
    if name:
        return name
    parts = [_optional_str(record.get("firstName")), _optional_str(record.get("lastName"))]
    joined = " ".join(part for part in parts if part)
    return joined or None


def _stylist_name(stylist: Record | None, appointment: Record) -> str:
    return (
        _person_name(stylist)
        or _optional_str(appointment.get("stylistName"))
        or "your stylist"
    )


def _service_names(appointment: Record) -> tuple[str, ...]:
    names = []
    for item in appointment.get("services") or ():
        name = item.get("name") if isinstance(item, Mapping) else item
        if name:
            names.append(str(name))
    return tuple(names)


def _total_price(appointment: Record) -> Decimal:
    try:
        if appointment.get("totalPrice") is not None:
            return Decimal(str(appointment["totalPrice"]))
        return sum(
            (
                Decimal(str(item.get("price", 0)))
                for item in appointment.get("services") or ()
                if isinstance(item, Mapping)
            ),
            Decimal("0"),
        )
    except (InvalidOperation, ValueError) as exc:
        raise DirectoryError(
            f"appointment {appointment.get('id')} has an invalid price", retryable=False
        ) from exc


def _starts_at(appointment: Record) -> datetime:
    raw = appointment.get("startsAt")
    if not raw and appointment.get("date"):
        start_time = appointment.get("startTime") or appointment.get("time") or "00:00"
        raw = f"{appointment['date']}T{start_time}"
    if not raw:
        raise DirectoryError(
            f"appointment {appointment.get('id')} has no start time", retryable=False
        )
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError as exc:
        raise DirectoryError(
            f"appointment {appointment.get('id')} has an invalid start time: {raw!r}",
            retryable=False,
        ) from exc


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
