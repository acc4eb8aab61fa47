"""
HTTP endpoint Prometheus scrapes.

    squid-exporter serve --mock
    curl http://localhost:9301/metrics

Each request on the metrics path runs one full collection against the
registry. Scrapes are served on their own threads.
"""

from __future__ import annotations

import logging
import socket
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Type

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from squid_exporter import __version__

log = logging.getLogger(__name__)

_LANDING_PAGE = """<html>
<head><title>Squid Exporter</title></head>
<body>
<h1>Squid Exporter v{version}</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""


def make_handler(registry: CollectorRegistry, metrics_path: str = "/metrics") -> Type[BaseHTTPRequestHandler]:
    landing = _LANDING_PAGE.format(version=__version__, path=metrics_path).encode()

    class _MetricsHandler(BaseHTTPRequestHandler):
        def do_GET(self):
            path = self.path.split("?", 1)[0]
            if path == metrics_path:
                try:
                    body = generate_latest(registry)
                except Exception:
                    log.exception("Failed to render metrics")
                    self.send_error(500)
                    return
                self._reply(200, CONTENT_TYPE_LATEST, body)
            elif path == "/":
                self._reply(200, "text/html; charset=utf-8", landing)
            else:
                self.send_response(404)
                self.end_headers()

        def _reply(self, status: int, content_type: str, body: bytes):
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            log.debug("%s - %s", self.address_string(), format % args)

    return _MetricsHandler


class _IPv6HTTPServer(ThreadingHTTPServer):
    address_family = socket.AF_INET6


def build_server(
    registry: CollectorRegistry,
    host: str = "0.0.0.0",
    port: int = 9301,
    metrics_path: str = "/metrics",
) -> ThreadingHTTPServer:
    """Bind the endpoint. IPv6 literals get an AF_INET6 socket."""
    server_cls = _IPv6HTTPServer if ":" in host else ThreadingHTTPServer
    server = server_cls((host, port), make_handler(registry, metrics_path))
    server.daemon_threads = True
    return server


def run_server(server: ThreadingHTTPServer, metrics_path: str = "/metrics"):
    host, port = server.server_address[:2]
    log.info("Serving squid metrics at http://%s:%d%s", host, port, metrics_path)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
    log.info("Server stopped")
