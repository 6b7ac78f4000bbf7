"""Flask application factory for the relay status API."""

import logging
import threading
import time
from typing import Optional

from flask import Flask
from werkzeug.serving import make_server

from web.api import api_bp

logger = logging.getLogger(__name__)


def create_app(registry, relay_server=None) -> Flask:
    """Create and configure the Flask application.

    Args:
        registry: SessionRegistry the endpoints read from.
        relay_server: Running RelayServer, for uptime and socket counts.
    """
    app = Flask(__name__)

    app.config["REGISTRY"] = registry
    app.config["RELAY_SERVER"] = relay_server
    app.config["STARTED_AT"] = time.time()

    app.register_blueprint(api_bp)

    return app


class StatusServer:
    """Serves the status app from a background thread."""

    def __init__(self, app: Flask, host: str, port: int):
        self._server = make_server(host, port, app, threaded=True)
        self.host = host
        self.port = self._server.server_port
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info(f"Status server listening on http://{self.host}:{self.port}")

    def stop(self) -> None:
        self._server.shutdown()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
