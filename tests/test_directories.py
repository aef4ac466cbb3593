from __future__ import annotations

import io
import socket
import unittest
import urllib.error
from typing import Any
from unittest import mock

from salon_notifications.adapters.directories import (
    CachedTenantDirectory,
    HttpAppointmentDirectory,
    HttpDirectoryClient,
    HttpTenantDirectory,
    StaticAppointmentDirectory,
    StaticTenantDirectory,
)
from salon_notifications.errors import (
    DirectoryError,
    DirectoryTimeoutError,
    TenantNotFoundError,
    is_retryable,
)

URLOPEN = "salon_notifications.adapters.directories.urllib.request.urlopen"


def respond(urlopen_mock: mock.Mock, body: bytes) -> None:
    urlopen_mock.return_value.__enter__.return_value.read.return_value = body


def http_error(code: int) -> urllib.error.HTTPError:
    return urllib.error.HTTPError(
        url="https://directory.test", code=code, msg="error", hdrs=None, fp=io.BytesIO(b"")
    )


class HttpDirectoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = HttpDirectoryClient(
            "https://directory.test/api/", timeout_seconds=3, api_token="secret"
        )

    @mock.patch(URLOPEN)
    def test_get_tenant(self, urlopen_mock: mock.Mock) -> None:
        respond(urlopen_mock, b'{"id":"t1","name":"Studio Nine"}')

        record = HttpTenantDirectory(self.client).get_tenant("t1")

        self.assertEqual(record["name"], "Studio Nine")
        request_obj = urlopen_mock.call_args.args[0]
        self.assertEqual(request_obj.full_url, "https://directory.test/api/tenants/t1")
        self.assertEqual(request_obj.get_header("Authorization"), "Bearer secret")
        self.assertEqual(urlopen_mock.call_args.kwargs["timeout"], 3)

    @mock.patch(URLOPEN)
    def test_appointment_paths_are_tenant_scoped(self, urlopen_mock: mock.Mock) -> None:
        respond(urlopen_mock, b'{"id":"x"}')
        directory = HttpAppointmentDirectory(self.client)

        directory.get_appointment("t1", "a1")
        directory.get_user("t1", "u1")
        directory.get_stylist("t1", "s 1")

        urls = [call.args[0].full_url for call in urlopen_mock.call_args_list]
        self.assertEqual(
            urls,
            [
                "https://directory.test/api/tenants/t1/appointments/a1",
                "https://directory.test/api/tenants/t1/users/u1",
                "https://directory.test/api/tenants/t1/stylists/s%201",
            ],
        )

    @mock.patch(URLOPEN)
    def test_tenant_404_is_permanent(self, urlopen_mock: mock.Mock) -> None:
        urlopen_mock.side_effect = http_error(404)

        with self.assertRaises(TenantNotFoundError) as captured:
            HttpTenantDirectory(self.client).get_tenant("t-missing")
        self.assertFalse(is_retryable(captured.exception))

    @mock.patch(URLOPEN)
    def test_appointment_404_is_retryable(self, urlopen_mock: mock.Mock) -> None:
        urlopen_mock.side_effect = http_error(404)

        with self.assertRaises(DirectoryError) as captured:
            HttpAppointmentDirectory(self.client).get_appointment("t1", "a-new")
        self.assertTrue(is_retryable(captured.exception))

    @mock.patch(URLOPEN)
    def test_server_error_is_retryable(self, urlopen_mock: mock.Mock) -> None:
        urlopen_mock.side_effect = http_error(502)

        with self.assertRaises(DirectoryError) as captured:
            HttpTenantDirectory(self.client).get_tenant("t1")
        self.assertNotIsInstance(captured.exception, TenantNotFoundError)
        self.assertTrue(is_retryable(captured.exception))

    @mock.patch(URLOPEN)
    def test_timeout(self, urlopen_mock: mock.Mock) -> None:
        urlopen_mock.side_effect = socket.timeout("timed out")

        with self.assertRaises(DirectoryTimeoutError):
            HttpTenantDirectory(self.client).get_tenant("t1")

    @mock.patch(URLOPEN)
    def test_invalid_json(self, urlopen_mock: mock.Mock) -> None:
        respond(urlopen_mock, b"<html>")

        with self.assertRaises(DirectoryError):
            HttpTenantDirectory(self.client).get_tenant("t1")


class CachedTenantDirectoryTests(unittest.TestCase):
    def test_caches_hits_within_ttl(self) -> None:
        inner = mock.Mock()
        inner.get_tenant.return_value = {"id": "t1"}
        cached = CachedTenantDirectory(inner, ttl_seconds=60)

        cached.get_tenant("t1")
        cached.get_tenant("t1")

        inner.get_tenant.assert_called_once_with("t1")

    def test_does_not_cache_failures(self) -> None:
        inner = mock.Mock()
        inner.get_tenant.side_effect = [DirectoryError("down"), {"id": "t1"}]
        cached = CachedTenantDirectory(inner, ttl_seconds=60)

        with self.assertRaises(DirectoryError):
            cached.get_tenant("t1")
        self.assertEqual(cached.get_tenant("t1"), {"id": "t1"})

    def test_expired_entries_are_refetched(self) -> None:
        inner = mock.Mock()
        inner.get_tenant.return_value = {"id": "t1"}
        cached = CachedTenantDirectory(inner, ttl_seconds=0)

        cached.get_tenant("t1")
        cached.get_tenant("t1")

        self.assertEqual(inner.get_tenant.call_count, 2)


class StaticDirectoryTests(unittest.TestCase):
    def test_static_lookups(self) -> None:
        tenants = StaticTenantDirectory({"t1": {"id": "t1"}})
        appointments = StaticAppointmentDirectory(
            appointments={"a1": {"id": "a1"}}, users={}, stylists={}
        )

        self.assertEqual(tenants.get_tenant("t1"), {"id": "t1"})
        self.assertEqual(appointments.get_appointment("t1", "a1"), {"id": "a1"})
        with self.assertRaises(TenantNotFoundError):
            tenants.get_tenant("t2")
        with self.assertRaises(DirectoryError):
            appointments.get_user("t1", "u-missing")

    def test_static_records_are_copies(self) -> None:
        source: dict[str, Any] = {"id": "t1"}
        tenants = StaticTenantDirectory({"t1": source})

        tenants.get_tenant("t1")["id"] = "changed"

        self.assertEqual(tenants.get_tenant("t1")["id"], "t1")


if __name__ == "__main__":
    unittest.main()
