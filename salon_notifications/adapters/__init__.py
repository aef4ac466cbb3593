"""Adapter layer: broker mapping, payload parsing, directories and transports."""

from .consumer_handler import handle_batch, handle_message
from .delivery_log import InMemoryDeliveryLog, JsonLinesDeliveryLog
from .fake_senders import ConsoleEmailTransport, ConsolePushTransport, ConsoleSMSTransport, NullTransport
from .payload import parse_event_payload
from .real_senders import FcmPushTransport, MailgunEmailTransport, TwilioSMSTransport

__all__ = [
    "ConsoleEmailTransport",
    "ConsolePushTransport",
    "ConsoleSMSTransport",
    "FcmPushTransport",
    "InMemoryDeliveryLog",
    "JsonLinesDeliveryLog",
    "MailgunEmailTransport",
    "NullTransport",
    "TwilioSMSTransport",
    "handle_batch",
    "handle_message",
    "parse_event_payload",
]
