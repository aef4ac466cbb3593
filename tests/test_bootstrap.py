from __future__ import annotations

import os
import tempfile
import unittest
from unittest import mock

from salon_notifications.adapters.bootstrap import (
    build_delivery_log,
    build_dispatcher,
    build_pipeline,
)
from salon_notifications.adapters.delivery_log import InMemoryDeliveryLog, JsonLinesDeliveryLog
from salon_notifications.adapters.directories import (
    CachedTenantDirectory,
    HttpAppointmentDirectory,
    StaticAppointmentDirectory,
    StaticTenantDirectory,
)
from salon_notifications.adapters.fake_senders import ConsoleEmailTransport, NullTransport
from salon_notifications.adapters.real_senders import MailgunEmailTransport
from salon_notifications.config import Settings


class BootstrapTests(unittest.TestCase):
    def test_console_and_null_transports(self) -> None:
        dispatcher = build_dispatcher(Settings(email_transport="console", sms_transport="null"))

        self.assertIsInstance(dispatcher.email, ConsoleEmailTransport)
        self.assertIsInstance(dispatcher.sms, NullTransport)
        self.assertEqual(dispatcher.sms.send(to="+1", message="x"), "null-sms")

    @mock.patch.dict(
        os.environ,
        {
            "MAILGUN_API_KEY": "key-123",
            "MAILGUN_DOMAIN": "mg.example.com",
            "MAILGUN_FROM_EMAIL": "no-reply@mg.example.com",
        },
        clear=True,
    )
    def test_provider_transport_from_env(self) -> None:
        dispatcher = build_dispatcher(Settings(email_transport="mailgun"))
        self.assertIsInstance(dispatcher.email, MailgunEmailTransport)

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_provider_transport_requires_credentials_at_start(self) -> None:
        with self.assertRaises(RuntimeError):
            build_dispatcher(Settings(sms_transport="twilio"))

    def test_delivery_log_selection(self) -> None:
        self.assertIsInstance(build_delivery_log(Settings()), InMemoryDeliveryLog)
        with tempfile.TemporaryDirectory() as tmp:
            log = build_delivery_log(Settings(delivery_log_path=f"{tmp}/deliveries.jsonl"))
            self.assertIsInstance(log, JsonLinesDeliveryLog)

    def test_pipeline_requires_directory_urls(self) -> None:
        with self.assertRaises(RuntimeError):
            build_pipeline(Settings())

    def test_pipeline_with_http_directories(self) -> None:
        pipeline = build_pipeline(
            Settings(
                tenant_directory_url="https://tenants.test",
                appointment_directory_url="https://appointments.test",
            )
        )

        self.assertIsInstance(pipeline.gateway.tenants, CachedTenantDirectory)
        self.assertIsInstance(pipeline.gateway.appointments, HttpAppointmentDirectory)
        self.assertIs(pipeline.router.dispatcher, pipeline.dispatcher)

    def test_pipeline_with_injected_directories(self) -> None:
        tenants = StaticTenantDirectory({})
        appointments = StaticAppointmentDirectory(appointments={}, users={}, stylists={})

        pipeline = build_pipeline(
            Settings(enrichment_timeout_seconds=1.5), tenants=tenants, appointments=appointments
        )

        self.assertIs(pipeline.gateway.tenants, tenants)
        self.assertEqual(pipeline.gateway.timeout_seconds, 1.5)


if __name__ == "__main__":
    unittest.main()
