from __future__ import annotations

"""Prometheus metric families and the scrape endpoint."""

import base64
import logging
import os
import secrets
import threading
from http.server import HTTPServer, BaseHTTPRequestHandler

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Round-trip buckets in milliseconds
LATENCY_BUCKETS_MS = (1, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000)


class ProbeMetrics:
    """Metric families for probe outcomes.

    Owns its own ``CollectorRegistry`` so that every instance is isolated;
    the daemon builds exactly one at startup and hands it to the
    ``InstrumentRegistry`` and the ``MetricsServer``.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        # Process-wide counters
        self.success_total = Counter(
            "ping_success_count", "Successful pings across all hosts", registry=self.registry
        )
        self.failure_total = Counter(
            "ping_failure_count", "Failed pings across all hosts", registry=self.registry
        )

        # Host-scoped families
        self.host_success = Counter(
            "ping_host_success_count", "Successful pings per host", ["host"], registry=self.registry
        )
        self.host_failure = Counter(
            "ping_host_failure_count", "Failed pings per host", ["host"], registry=self.registry
        )
        self.host_latency = Histogram(
            "ping_roundtrip_time_ms",
            "Ping round-trip time in milliseconds",
            ["host"],
            buckets=LATENCY_BUCKETS_MS,
            registry=self.registry,
        )

    def exposition(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


def _get_metrics_auth_credentials() -> tuple[str, str] | None:
    """Get metrics auth credentials from environment variables.

    Returns:
        Tuple of (username, password) if METRICS_AUTH_USER and METRICS_AUTH_PASS are set,
        None otherwise.
    """
    user = os.environ.get("METRICS_AUTH_USER")
    password = os.environ.get("METRICS_AUTH_PASS")
    if user and password:
        return (user, password)
    return None


def _check_basic_auth(auth_header: str | None, credentials: tuple[str, str]) -> bool:
    """Check if request has valid basic auth header."""
    if not auth_header:
        return False

    try:
        scheme, encoded = auth_header.split(" ", 1)
        if scheme.lower() != "basic":
            return False
        decoded = base64.b64decode(encoded).decode("utf-8")
        username, password = decoded.split(":", 1)
    except ValueError:
        return False
    return (
        secrets.compare_digest(username, credentials[0])
        and secrets.compare_digest(password, credentials[1])
    )


class AuthenticatedMetricsHandler(BaseHTTPRequestHandler):
    """Metrics handler with optional basic auth."""

    metrics: ProbeMetrics | None = None

    def do_GET(self) -> None:
        """Handle GET requests for metrics."""
        credentials = _get_metrics_auth_credentials()

        if credentials is not None:
            auth_header = self.headers.get("Authorization")
            if not _check_basic_auth(auth_header, credentials):
                self.send_response(401)
                self.send_header("WWW-Authenticate", 'Basic realm="Metrics"')
                self.end_headers()
                return

        if self.path != "/metrics" or self.metrics is None:
            self.send_error(404)
            return

        try:
            data = self.metrics.exposition()
        except Exception as exc:
            logging.error(f"Metrics error: {exc}")
            self.send_error(500, "Internal Server Error")
            return
        self.send_response(200)
        self.send_header("Content-Type", CONTENT_TYPE_LATEST)
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format: str, *args) -> None:
        """Route request logs to debug level."""
        logging.debug(f"Metrics server: {format % args}")


class MetricsServer:
    """Prometheus scrape endpoint with optional auth."""

    def __init__(self, metrics: ProbeMetrics, addr: str = "127.0.0.1", port: int = 9464) -> None:
        self.metrics = metrics
        self.addr = addr
        self.port = port
        self.server: HTTPServer | None = None
        self.thread: threading.Thread | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def _check_security(self) -> bool:
        """Return False if a non-localhost binding lacks authentication."""
        if self.addr in ("127.0.0.1", "localhost"):
            return True
        if _get_metrics_auth_credentials() is not None:
            return True

        allow_no_auth = os.environ.get("METRICS_ALLOW_NO_AUTH", "").lower() in ("1", "true", "yes")
        if allow_no_auth:
            logging.warning(
                f"METRICS_ADDR={self.addr} without authentication! "
                f"Set METRICS_AUTH_USER and METRICS_AUTH_PASS (Basic Auth)."
            )
            return True
        logging.error(
            f"SECURITY ERROR: METRICS_ADDR={self.addr} requires authentication. "
            f"Set METRICS_AUTH_USER and METRICS_AUTH_PASS, "
            f"or METRICS_ALLOW_NO_AUTH=1 to override (NOT recommended)"
        )
        return False

    def start(self) -> None:
        """Start metrics server in background thread."""
        if self._running:
            return

        if not self._check_security():
            logging.error("Metrics server not started due to security configuration.")
            return

        handler = type(
            "BoundMetricsHandler", (AuthenticatedMetricsHandler,), {"metrics": self.metrics}
        )
        try:
            self.server = HTTPServer((self.addr, self.port), handler)
        except OSError as exc:
            logging.error(f"Failed to start metrics server: {exc}")
            return

        # Resolve the real port when bound to port 0
        self.port = self.server.server_address[1]
        self.thread = threading.Thread(
            target=self.server.serve_forever, name="metrics-server", daemon=True
        )
        self.thread.start()
        self._running = True

        auth_status = "with auth" if _get_metrics_auth_credentials() else "no auth"
        logging.info(f"Metrics server started on http://{self.addr}:{self.port}/metrics ({auth_status})")

    def stop(self) -> None:
        """Stop metrics server."""
        if not self._running or self.server is None:
            return
        self._running = False
        self.server.shutdown()
        self.server.server_close()
        if self.thread is not None:
            self.thread.join(timeout=5.0)


def start_metrics_server(
    metrics: ProbeMetrics, addr: str = "127.0.0.1", port: int = 9464
) -> MetricsServer | None:
    """Start the Prometheus scrape endpoint.

    Security:
        - Default binds to 127.0.0.1 (localhost only)
        - Authentication via METRICS_AUTH_USER + METRICS_AUTH_PASS (Basic Auth)
        - Set METRICS_ALLOW_NO_AUTH=1 to bypass auth requirement (not recommended)

    Returns:
        MetricsServer instance, or None if it could not be started
    """
    server = MetricsServer(metrics, addr=addr, port=port)
    server.start()
    if not server.running:
        return None
    return server
