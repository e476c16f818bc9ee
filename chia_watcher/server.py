"""Flask app serving the metrics sink at /metrics, run on a werkzeug server thread."""

import logging
import threading

from flask import Flask, Response
from prometheus_client import CONTENT_TYPE_LATEST
from werkzeug.serving import WSGIRequestHandler, make_server

from chia_watcher.metrics import MetricsSink

logger = logging.getLogger(__name__)


def create_metrics_app(sink: MetricsSink) -> Flask:
    app = Flask(__name__)

    @app.route("/metrics")
    def metrics():
        try:
            body = sink.render()
        except Exception:
            logger.exception("Failed to render metrics")
            return Response(b"", status=500, mimetype="text/plain")
        return Response(body, status=200, content_type=CONTENT_TYPE_LATEST)

    return app


def _handler_with_timeout(timeout: float) -> type[WSGIRequestHandler]:
    # socketserver applies the class attribute as the connection socket timeout.
    return type("TimeoutRequestHandler", (WSGIRequestHandler,), {"timeout": timeout})


class MetricsServer:
    """Threaded werkzeug server for the metrics app.

    The socket is bound in the constructor so a busy port fails at startup
    rather than inside the serving thread.
    """

    def __init__(self, app: Flask, host: str, port: int, request_timeout: float = 10.0):
        self._server = make_server(
            host, port, app,
            threaded=True,
            request_handler=_handler_with_timeout(request_timeout),
        )
        self._thread: threading.Thread | None = None

    @property
    def server_address(self) -> tuple:
        return self._server.server_address

    def start(self):
        """Start serving in a daemon thread."""
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        host, port = self.server_address[:2]
        logger.info("Serving metrics on http://%s/metrics",
                    f"[{host}]:{port}" if ":" in host else f"{host}:{port}")

    def stop(self):
        self._server.shutdown()
        self._server.server_close()
        if self._thread:
            self._thread.join(timeout=5)
