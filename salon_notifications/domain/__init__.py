"""Domain layer: channel rules and content templates."""

from .email import send_email_notification
from .push import send_push_notification
from .sms import normalize_phone_number, send_sms_notification
from .templates import TEMPLATE_REGISTRY, format_date, format_price, format_time, render

__all__ = [
    "TEMPLATE_REGISTRY",
    "format_date",
    "format_price",
    "format_time",
    "normalize_phone_number",
    "render",
    "send_email_notification",
    "send_push_notification",
    "send_sms_notification",
]
