"""Read-only directory adapters used by enrichment.

Mental model refresher:
- This module is an outbound adapter, like the provider senders.
- HTTP directories speak JSON over urllib with a per-call timeout.
- Failures are translated into the pipeline error taxonomy here, so the
  application layer never sees urllib exceptions:
  - tenant 404 => `TenantNotFoundError` (permanent)
  - any other failure => `DirectoryError` (retryable)
  - timeout => `DirectoryTimeoutError` (retryable)
"""

from __future__ import annotations

import json
import socket
import threading
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Mapping

from ..errors import DirectoryError, DirectoryTimeoutError, TenantNotFoundError

Record = dict[str, Any]


class _NotFound(Exception):
    pass


class HttpDirectoryClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 5.0,
        api_token: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.api_token = api_token

    def get_json(self, *segments: str) -> Record:
        path = "/".join(urllib.parse.quote(segment, safe="") for segment in segments)
        endpoint = f"{self.base_url}/{path}"
        request = urllib.request.Request(endpoint, method="GET")
        request.add_header("Accept", "application/json")
        if self.api_token:
            request.add_header("Authorization", f"Bearer {self.api_token}")

        try:
            with urllib.request.urlopen(request, timeout=self.timeout_seconds) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                raise _NotFound(endpoint) from exc
            raise DirectoryError(f"GET {endpoint} failed HTTP {exc.code}") from exc
        except urllib.error.URLError as exc:
            if isinstance(exc.reason, (socket.timeout, TimeoutError)):
                raise DirectoryTimeoutError(f"GET {endpoint} timed out") from exc
            raise DirectoryError(f"GET {endpoint} failed: {exc.reason}") from exc
        except (socket.timeout, TimeoutError) as exc:
            raise DirectoryTimeoutError(f"GET {endpoint} timed out") from exc

        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DirectoryError(f"GET {endpoint} returned invalid JSON") from exc
        if not isinstance(parsed, dict):
            raise DirectoryError(f"GET {endpoint} must return a JSON object")
        return parsed


class HttpTenantDirectory:
    def __init__(self, client: HttpDirectoryClient) -> None:
        self.client = client

    def get_tenant(self, tenant_id: str) -> Record:
        try:
            return self.client.get_json("tenants", tenant_id)
        except _NotFound as exc:
            raise TenantNotFoundError(f"Tenant not found: {tenant_id}") from exc


class HttpAppointmentDirectory:
    def __init__(self, client: HttpDirectoryClient) -> None:
        self.client = client

    def get_appointment(self, tenant_id: str, appointment_id: str) -> Record:
        return self._get(tenant_id, "appointments", appointment_id)

    def get_user(self, tenant_id: str, user_id: str) -> Record:
        return self._get(tenant_id, "users", user_id)

    def get_stylist(self, tenant_id: str, stylist_id: str) -> Record:
        return self._get(tenant_id, "stylists", stylist_id)

    def _get(self, tenant_id: str, kind: str, item_id: str) -> Record:
        try:
            return self.client.get_json("tenants", tenant_id, kind, item_id)
        except _NotFound as exc:
            # Appointment data may lag the event that announced it.
            raise DirectoryError(f"{kind} record not found yet: {item_id}") from exc


class CachedTenantDirectory:
    """TTL cache in front of a tenant directory. Misses and errors are not cached."""

    def __init__(self, inner: Any, *, ttl_seconds: float = 300.0) -> None:
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, Record]] = {}

    def get_tenant(self, tenant_id: str) -> Record:
        now = time.monotonic()
        with self._lock:
            cached = self._entries.get(tenant_id)
            if cached is not None and now - cached[0] < self.ttl_seconds:
                return cached[1]

        record = self.inner.get_tenant(tenant_id)
        with self._lock:
            self._entries[tenant_id] = (now, record)
        return record


class StaticTenantDirectory:
    def __init__(self, tenants: Mapping[str, Record]) -> None:
        self.tenants = dict(tenants)

    def get_tenant(self, tenant_id: str) -> Record:
        record = self.tenants.get(tenant_id)
        if record is None:
            raise TenantNotFoundError(f"Tenant not found: {tenant_id}")
        return dict(record)


class StaticAppointmentDirectory:
    def __init__(
        self,
        *,
        appointments: Mapping[str, Record],
        users: Mapping[str, Record],
        stylists: Mapping[str, Record],
    ) -> None:
        self.appointments = dict(appointments)
        self.users = dict(users)
        self.stylists = dict(stylists)

    def get_appointment(self, tenant_id: str, appointment_id: str) -> Record:
        return self._lookup(self.appointments, "appointment", appointment_id)

    def get_user(self, tenant_id: str, user_id: str) -> Record:
        return self._lookup(self.users, "user", user_id)

    def get_stylist(self, tenant_id: str, stylist_id: str) -> Record:
        return self._lookup(self.stylists, "stylist", stylist_id)

    @staticmethod
    def _lookup(table: Mapping[str, Record], kind: str, item_id: str) -> Record:
        record = table.get(item_id)
        if record is None:
            raise DirectoryError(f"{kind} record not found yet: {item_id}")
        return dict(record)
