"""WebSocket relay server for agent and controller connections."""

import asyncio
import logging
import secrets
import ssl
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, Optional

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from config import (
    RELAY_SERVER_HOST,
    RELAY_SERVER_PORT,
    RELAY_SERVER_CERT_FILE,
    RELAY_SERVER_KEY_FILE,
    RELAY_PAIRING_MODE,
    RELAY_PAIRING_SWEEP_INTERVAL,
)
from relay.dispatcher import RelayDispatcher
from relay.policy import make_policy
from relay.protocol import Delivery, RelayProtocol
from relay.registry import SessionRegistry

logger = logging.getLogger(__name__)


class RelayServer:
    """WebSocket transport in front of the relay dispatcher.

    Features:
    - One opaque, never-reused connection id per socket
    - JSON framed named messages
    - Keep-alive pings to detect vanished peers
    - Periodic pairing-code sweep
    - Optional TLS

    Frames larger than ``max_message_size`` close the connection with
    code 1009, which runs the normal disconnect handling.
    """

    def __init__(
        self,
        dispatcher: Optional[RelayDispatcher] = None,
        host: str = RELAY_SERVER_HOST,
        port: int = RELAY_SERVER_PORT,
        cert_file: Optional[str] = RELAY_SERVER_CERT_FILE,
        key_file: Optional[str] = RELAY_SERVER_KEY_FILE,
        sweep_interval: float = RELAY_PAIRING_SWEEP_INTERVAL,
        max_message_size: int = RelayProtocol.MAX_MESSAGE_SIZE,
    ):
        if dispatcher is None:
            dispatcher = RelayDispatcher(SessionRegistry(make_policy(RELAY_PAIRING_MODE)))

        self.dispatcher = dispatcher
        self.registry = dispatcher.registry
        self.host = host
        self.port = port
        self.cert_file = cert_file
        self.key_file = key_file
        self.sweep_interval = sweep_interval
        self.max_message_size = max_message_size

        # Live sockets by connection id
        self._connections: Dict[str, ServerConnection] = {}

        # Server state
        self._server = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._ready = threading.Event()
        self._startup_error: Optional[BaseException] = None
        self.started_at = time.time()

    def _get_ssl_context(self) -> Optional[ssl.SSLContext]:
        """Create SSL context for TLS."""
        if not self.cert_file or not self.key_file:
            return None

        cert_path = Path(self.cert_file).expanduser()
        key_path = Path(self.key_file).expanduser()

        if not cert_path.exists() or not key_path.exists():
            logger.warning(f"TLS certificate or key not found ({cert_path}, {key_path}), serving plain ws")
            return None

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(str(cert_path), str(key_path))
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        return context

    def _new_connection_id(self) -> str:
        while True:
            conn_id = secrets.token_urlsafe(15)
            if conn_id not in self._connections:
                return conn_id

    async def _deliver(self, deliveries: Iterable[Delivery]) -> None:
        """Send deliveries in order, dropping any whose peer is gone."""
        for delivery in deliveries:
            websocket = self._connections.get(delivery.connection_id)
            if websocket is None:
                logger.debug(f"Dropped {delivery.message.type} for stale connection {delivery.connection_id}")
                continue
            try:
                await websocket.send(delivery.message.to_json())
            except ConnectionClosed:
                logger.debug(f"Dropped {delivery.message.type}: {delivery.connection_id} closed mid-send")

    async def _connection_handler(self, websocket: ServerConnection) -> None:
        """Handle a single peer connection."""
        conn_id = self._new_connection_id()
        self._connections[conn_id] = websocket
        address = websocket.remote_address[0] if websocket.remote_address else "unknown"
        logger.info(f"Connected: {conn_id} from {address}")

        try:
            async for message in websocket:
                try:
                    deliveries = self.dispatcher.handle_frame(conn_id, message)
                except Exception:
                    logger.exception(f"Error handling message from {conn_id}")
                    continue
                await self._deliver(deliveries)

        except ConnectionClosed:
            pass
        finally:
            self._connections.pop(conn_id, None)
            deliveries = self.dispatcher.disconnect(conn_id)
            logger.info(f"Disconnected: {conn_id}")
            await self._deliver(deliveries)

    async def _sweep_loop(self) -> None:
        """Expire old pairing codes on a timer."""
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                removed = self.dispatcher.sweep()
            except Exception:
                logger.exception("Pairing sweep failed")
                continue
            if removed:
                logger.info(f"Pairing sweep removed {removed} code(s)")

    async def _run_server(self) -> None:
        """Run the WebSocket server until stopped."""
        ssl_context = self._get_ssl_context()
        self._stop_event = asyncio.Event()

        async with serve(
            self._connection_handler,
            self.host,
            self.port,
            ssl=ssl_context,
            max_size=self.max_message_size,
            ping_interval=RelayProtocol.PING_INTERVAL,
            ping_timeout=RelayProtocol.PING_TIMEOUT,
        ) as server:
            self._server = server
            # Port 0 asks the OS for a free port
            self.port = server.sockets[0].getsockname()[1]
            self.started_at = time.time()
            logger.info(
                f"Relay server listening on {'wss' if ssl_context else 'ws'}://{self.host}:{self.port} "
                f"(mode: {self.registry.mode.value})"
            )
            self._ready.set()

            sweeper = asyncio.create_task(self._sweep_loop())
            try:
                await self._stop_event.wait()
            finally:
                sweeper.cancel()

    def start(self, timeout: float = 5.0) -> None:
        """Start the relay server in a background thread and wait until it listens."""
        if self._thread and self._thread.is_alive():
            return

        self._ready.clear()
        self._startup_error = None

        def run():
            self._loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self._loop)
            try:
                self._loop.run_until_complete(self._run_server())
            except Exception as e:
                self._startup_error = e
                logger.exception("Relay server stopped with an error")
                self._ready.set()
            finally:
                self._loop.close()

        self._thread = threading.Thread(target=run, daemon=True)
        self._thread.start()

        if not self._ready.wait(timeout):
            raise RuntimeError("Relay server did not start in time")
        if self._startup_error is not None:
            raise RuntimeError(f"Relay server failed to start: {self._startup_error}")

    def stop(self) -> None:
        """Stop the relay server."""
        if self._loop and self._stop_event and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._stop_event.set)

        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def uptime(self) -> float:
        return time.time() - self.started_at

    def get_connection_count(self) -> int:
        """Number of open sockets, registered or not."""
        return len(self._connections)
