"""Tenant-branded content templates, one class per appointment event kind.

Mental model refresher:
- Rendering is pure: same context in, byte-identical content out.
- Every template produces all four representations (HTML, text, SMS, push)
  or the call fails with `TemplateRenderError`. A template bug is permanent.
- Dates, times and prices use en-US defaults with an explicit currency
  symbol; tenant branding may override the symbol and the date/time formats.
"""

from __future__ import annotations

import html
from datetime import datetime
from decimal import Decimal

from ..errors import TemplateRenderError
from ..types import EventKind, MessageContext, RenderedContent, TenantBranding

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def format_date(value: datetime, branding: TenantBranding) -> str:
    if branding.date_format:
        return value.strftime(branding.date_format)
    return f"{_WEEKDAYS[value.weekday()]}, {_MONTHS[value.month - 1]} {value.day}, {value.year}"


def format_time(value: datetime, branding: TenantBranding) -> str:
    if branding.time_format:
        return value.strftime(branding.time_format)
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def format_price(value: Decimal, branding: TenantBranding) -> str:
    return f"{branding.currency_symbol}{value:,.2f}"


class AppointmentTemplate:
    """Shared layout. Subclasses supply the wording for one event kind."""

    title = "Appointment Notification"
    intro = "Here are the details of your appointment:"
    closing = "We look forward to seeing you!"
    show_services = True
    show_price = True

    def subject(self, ctx: MessageContext) -> str:
        return f"{self.title} - {ctx.branding.name}"

    def sms(self, ctx: MessageContext, when: str) -> str:
        raise NotImplementedError

    def push(self, ctx: MessageContext, when: str) -> str:
        raise NotImplementedError

    def extra_details(self, ctx: MessageContext) -> list[tuple[str, str]]:
        return []

    def details(self, ctx: MessageContext) -> list[tuple[str, str]]:
        rows = [
            ("Stylist", ctx.stylist_name),
            ("Date", format_date(ctx.starts_at, ctx.branding)),
            ("Time", format_time(ctx.starts_at, ctx.branding)),
        ]
        if self.show_services:
            rows.append(("Services", ", ".join(ctx.services) or "-"))
        if self.show_price:
            rows.append(("Total Price", format_price(ctx.total_price, ctx.branding)))
        rows.extend(self.extra_details(ctx))
        return rows

    def render(self, ctx: MessageContext) -> RenderedContent:
        branding = ctx.branding
        when = (
            f"{format_date(ctx.starts_at, branding)} at {format_time(ctx.starts_at, branding)}"
        )
        rows = self.details(ctx)
        return RenderedContent(
            subject=self.subject(ctx),
            html=self._html(ctx, rows),
            text=self._text(ctx, rows),
            sms=f"{branding.name}: {self.sms(ctx, when)}",
            push_title=self.title,
            push=self.push(ctx, when),
        )

    def _html(self, ctx: MessageContext, rows: list[tuple[str, str]]) -> str:
        branding = ctx.branding
        esc = html.escape
        logo = (
            f'<img src="{esc(branding.logo_url)}" alt="{esc(branding.name)}" '
            'style="max-height: 48px;">'
            if branding.logo_url
            else ""
        )
        detail_lines = "".join(
            f"<p><strong>{esc(label)}:</strong> {esc(value)}</p>" for label, value in rows
        )
        return (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            f'<div style="border-bottom: 3px solid {esc(branding.primary_color)}; padding: 12px 0;">'
            f"{logo}<h1 style=\"color: {esc(branding.primary_color)};\">{esc(branding.name)}</h1>"
            "</div>"
            f"<h2>{esc(self.title)}</h2>"
            f"<p>Dear {esc(ctx.client_name)},</p>"
            f"<p>{esc(self.intro)}</p>"
            '<div style="background-color: #f8f9fa; padding: 15px; border-radius: 5px; margin: 20px 0;">'
            f"{detail_lines}"
            "</div>"
            f"<p>{esc(self.closing)}</p>"
            f'<p style="color: #888; font-size: 12px;">{esc(_contact_line(branding))}</p>'
            "</div>"
        )

    def _text(self, ctx: MessageContext, rows: list[tuple[str, str]]) -> str:
        lines = [
            self.title,
            "",
            f"Dear {ctx.client_name},",
            "",
            self.intro,
            "",
            *(f"{label}: {value}" for label, value in rows),
            "",
            self.closing,
            "",
            "--",
            _contact_line(ctx.branding),
        ]
        return "\n".join(lines) + "\n"


class CreatedTemplate(AppointmentTemplate):
    title = "Appointment Confirmation"
    intro = "Your appointment has been booked with the following details:"
    closing = (
        "We look forward to seeing you! Need to make changes? "
        "You can manage your appointment through our app or website."
    )

    def sms(self, ctx: MessageContext, when: str) -> str:
        total = format_price(ctx.total_price, ctx.branding)
        return (
            f"Your appointment with {ctx.stylist_name} is booked for {when}. "
            f"Total: {total}. Manage your booking in our app."
        )

    def push(self, ctx: MessageContext, when: str) -> str:
        return f"Appointment booked with {ctx.stylist_name} for {when}"


class ConfirmedTemplate(AppointmentTemplate):
    title = "Appointment Confirmed"
    intro = "Your appointment has been confirmed:"

    def sms(self, ctx: MessageContext, when: str) -> str:
        return f"Your appointment with {ctx.stylist_name} on {when} is confirmed. See you soon!"

    def push(self, ctx: MessageContext, when: str) -> str:
        return f"Appointment confirmed with {ctx.stylist_name} for {when}"


class UpdatedTemplate(AppointmentTemplate):
    title = "Appointment Update"
    intro = "Your appointment has been updated. Here are the new details:"
    closing = "If these changes don't work for you, please contact us to reschedule."
    show_price = False

    def sms(self, ctx: MessageContext, when: str) -> str:
        services = ", ".join(ctx.services) or "-"
        return (
            f"Your appointment has been updated: {ctx.stylist_name} on {when}. "
            f"Services: {services}. Questions? Please contact us."
        )

    def push(self, ctx: MessageContext, when: str) -> str:
        return f"Appointment updated: {when} with {ctx.stylist_name}"


class CancelledTemplate(AppointmentTemplate):
    title = "Appointment Cancellation"
    intro = "Your appointment has been cancelled:"
    closing = (
        "We apologize for any inconvenience. Please use our app or website "
        "to schedule a new appointment."
    )
    show_services = False
    show_price = False

    def extra_details(self, ctx: MessageContext) -> list[tuple[str, str]]:
        return [("Reason", ctx.reason)] if ctx.reason else []

    def sms(self, ctx: MessageContext, when: str) -> str:
        reason = f" Reason: {ctx.reason}" if ctx.reason else ""
        return (
            f"Your appointment with {ctx.stylist_name} on {when} has been cancelled.{reason} "
            "Please reschedule at your convenience."
        )

    def push(self, ctx: MessageContext, when: str) -> str:
        reason = f" Reason: {ctx.reason}" if ctx.reason else ""
        return f"Appointment cancelled: {when}{reason}"


class CompletedTemplate(AppointmentTemplate):
    title = "Thank You For Visiting"
    intro = "Thank you for visiting us. Here is a summary of your appointment:"
    closing = "We hope you loved your visit and look forward to seeing you again."

    def sms(self, ctx: MessageContext, when: str) -> str:
        return f"Thanks for visiting {ctx.stylist_name} today! We hope to see you again soon."

    def push(self, ctx: MessageContext, when: str) -> str:
        return f"Thanks for visiting {ctx.branding.name}!"


class NoShowTemplate(AppointmentTemplate):
    title = "We Missed You"
    intro = "We missed you at your appointment:"
    closing = "Life happens. Please use our app or website to book a new time."
    show_services = False
    show_price = False

    def sms(self, ctx: MessageContext, when: str) -> str:
        return f"We missed you on {when}. Book a new time in our app."

    def push(self, ctx: MessageContext, when: str) -> str:
        return f"We missed you on {when}"


TEMPLATE_REGISTRY: dict[EventKind, AppointmentTemplate] = {
    EventKind.CREATED: CreatedTemplate(),
    EventKind.CONFIRMED: ConfirmedTemplate(),
    EventKind.UPDATED: UpdatedTemplate(),
    EventKind.CANCELLED: CancelledTemplate(),
    EventKind.COMPLETED: CompletedTemplate(),
    EventKind.NO_SHOW: NoShowTemplate(),
}


def get_template(kind: EventKind) -> AppointmentTemplate:
    template = TEMPLATE_REGISTRY.get(kind)
    if template is None:
        raise TemplateRenderError(f"No template registered for event kind: {kind}")
    return template


def render(kind: EventKind, ctx: MessageContext) -> RenderedContent:
    """Render all four representations for one event kind or fail as a whole."""
    return render_template(get_template(kind), ctx)


def render_template(template: AppointmentTemplate, ctx: MessageContext) -> RenderedContent:
    try:
        content = template.render(ctx)
    except TemplateRenderError:
        raise
    except Exception as exc:
        raise TemplateRenderError(f"{type(template).__name__} failed: {exc}") from exc

    for name in ("subject", "html", "text", "sms", "push"):
        if not getattr(content, name).strip():
            raise TemplateRenderError(f"{type(template).__name__} produced empty {name}")
    return content


def _contact_line(branding: TenantBranding) -> str:
    parts = [branding.name]
    parts.extend(
        item
        for item in (branding.contact_address, branding.contact_phone, branding.contact_email)
        if item
    )
    return " | ".join(parts)
