"""HTTP endpoint for Prometheus scraping.

Serves the rendered registry on a background thread. A collection failure
answers 500 rather than an empty or partial body.
"""

from __future__ import annotations

import http.server
import logging
import socketserver
import threading
from typing import TYPE_CHECKING, Any

from redmetrics.core import MetricsError
from redmetrics.exposition import CONTENT_TYPE_LATEST, generate_latest

if TYPE_CHECKING:
    from redmetrics.registry import CollectorRegistry

logger = logging.getLogger(__name__)


class MetricsServer:
    """HTTP server for the Prometheus metrics endpoint.

    Example:
        >>> server = MetricsServer(registry, port=9090)
        >>> server.start()
        >>> # ... metrics available at http://localhost:9090/metrics
        >>> server.stop()
    """

    def __init__(
        self,
        registry: "CollectorRegistry",
        *,
        host: str = "0.0.0.0",
        port: int = 9090,
        path: str = "/metrics",
    ) -> None:
        """Initialize metrics server.

        Args:
            registry: Registry to render on each scrape.
            host: Server host.
            port: Server port, 0 picks a free one.
            path: Metrics endpoint path.
        """
        self._registry = registry
        self._host = host
        self._port = port
        self._path = path
        self._server: socketserver.TCPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the metrics server."""
        if self._server:
            return

        registry = self._registry
        path = self._path

        class MetricsHandler(http.server.BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                if self.path.split("?", 1)[0] != path:
                    self.send_error(404)
                    return

                try:
                    content = generate_latest(registry).encode("utf-8")
                except MetricsError as e:
                    logger.exception("Metrics collection failed")
                    self.send_error(500, explain=str(e))
                    return

                self.send_response(200)
                self.send_header("Content-Type", CONTENT_TYPE_LATEST)
                self.send_header("Content-Length", str(len(content)))
                self.end_headers()
                self.wfile.write(content)

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("%s - %s", self.address_string(), format % args)

        class ThreadedTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
            allow_reuse_address = True
            daemon_threads = True

        self._server = ThreadedTCPServer((self._host, self._port), MetricsHandler)
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="metrics-server",
        )
        self._thread.start()
        logger.info("Serving metrics at %s", self.url)

    def stop(self) -> None:
        """Stop the metrics server."""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            self._thread = None
            logger.info("Metrics server stopped")

    def serve_forever(self) -> None:
        """Serve on the calling thread until interrupted."""
        self.start()
        assert self._thread is not None
        try:
            self._thread.join()
        finally:
            self.stop()

    @property
    def port(self) -> int:
        return self._port

    @property
    def url(self) -> str:
        """Get the metrics endpoint URL."""
        host = self._host if self._host != "0.0.0.0" else "localhost"
        return f"http://{host}:{self._port}{self._path}"
