import logging
import socket
import threading

from flask import Flask, Response
from prometheus_client import CONTENT_TYPE_LATEST
from werkzeug.serving import make_server

from .metrics import MetricsRegistry

logger = logging.getLogger(__name__)


def create_exporter_app(registry: MetricsRegistry, path: str = "/metrics") -> Flask:
    """Flask app exposing ``registry`` on a single scrape route."""
    app = Flask(__name__)

    @app.route(path, methods=['GET'])
    def metrics():
        # Expose Prometheus metrics
        try:
            payload = registry.exposition()
        except Exception as e:
            logger.error(f"Failed to serialize metrics for scrape: {e}")
            return Response("metrics serialization failed\n", status=500, mimetype="text/plain")
        return Response(payload, content_type=CONTENT_TYPE_LATEST)

    return app


class MetricsExporter:
    """
    Serves the scrape route from a background thread.

    The listening socket is bound in ``start()`` on the calling thread and
    handed to werkzeug by file descriptor, so a port that is already taken
    raises ``OSError`` to the caller (werkzeug would otherwise exit the
    process from inside ``make_server``).
    """

    def __init__(self, registry: MetricsRegistry, host: str = "0.0.0.0", port: int = 9898,
                 path: str = "/metrics"):
        self.registry = registry
        self.host = host
        self.path = path
        self.app = create_exporter_app(registry, path)
        self._requested_port = port
        self._server = None
        self._thread = None

    @property
    def port(self) -> int:
        if self._server is None:
            return self._requested_port
        return self._server.socket.getsockname()[1]

    @property
    def url(self) -> str:
        host = "127.0.0.1" if self.host in ("0.0.0.0", "") else self.host
        return f"http://{host}:{self.port}{self.path}"

    def start(self):
        if self._server is not None:
            raise RuntimeError("Exporter already started")
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self._requested_port))
            sock.listen(128)
            # werkzeug duplicates the descriptor, so our handle can be closed afterwards
            self._server = make_server(self.host, self._requested_port, self.app, threaded=True,
                                       fd=sock.fileno())
        finally:
            sock.close()
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="metrics-exporter", daemon=True
        )
        self._thread.start()
        logger.info(f"Prometheus metrics available at {self.url}")

    def shutdown(self, timeout: float = 5.0):
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        self._thread.join(timeout)
        self._server = None
        self._thread = None
