"""Liveness and readiness endpoints for the worker process.

Mental model refresher:
- `/health` answers 200 for as long as the process can serve HTTP.
- `/ready` answers 200 only after topology is declared and the consumer is
  subscribed, and 503 again once shutdown begins.
- The Flask app runs on a daemon thread next to the consume loop.
"""

from __future__ import annotations

import threading
from typing import Any

from flask import Flask, jsonify
from werkzeug.serving import make_server

from ..logging import get_logger

logger = get_logger(__name__)


class HealthState:
    def __init__(self) -> None:
        self._ready = threading.Event()
        self.detail: dict[str, Any] = {}

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def mark_ready(self, **detail: Any) -> None:
        self.detail = dict(detail)
        self._ready.set()

    def mark_not_ready(self) -> None:
        self._ready.clear()


def create_health_app(state: HealthState) -> Flask:
    app = Flask("salon_notifications.health")

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    @app.get("/ready")
    def ready():
        if state.ready:
            return jsonify({"status": "ready", **state.detail}), 200
        return jsonify({"status": "not_ready"}), 503

    return app


class HealthServer:
    def __init__(self, state: HealthState, *, host: str = "0.0.0.0", port: int = 8080) -> None:
        self.state = state
        self._server = make_server(host, port, create_health_app(state), threaded=True)
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="health-server", daemon=True
        )

    @property
    def port(self) -> int:
        return int(self._server.server_port)

    def start(self) -> None:
        self._thread.start()
        logger.info("Health server listening", port=self.port)

    def stop(self) -> None:
        self._server.shutdown()
        self._thread.join(timeout=5)
