"""Transport-independent handling of inbound relay events."""

import logging
from typing import Any, List, Optional, Union

from relay.errors import ProtocolError, RegistrationError
from relay.notifier import MembershipNotifier
from relay.protocol import AGENT_ID_FIELD, Delivery, MessageType, RelayMessage
from relay.registry import PeerRole, SessionRegistry
from relay.router import RelayRouter

logger = logging.getLogger(__name__)


class RelayDispatcher:
    """Runs each inbound event to completion and returns what to send.

    Every call mutates the registry (if at all) synchronously and hands
    back the resulting deliveries, so the transport can await sends
    without another event observing a half-applied change.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        router: Optional[RelayRouter] = None,
        notifier: Optional[MembershipNotifier] = None,
    ):
        self.registry = registry
        self.router = router or RelayRouter(registry)
        self.notifier = notifier or MembershipNotifier(registry)

        self._handlers = {
            MessageType.CONTROLLER_REGISTER.value: self._handle_controller_register,
            MessageType.CONTROLLER_REFRESH.value: self._handle_controller_refresh,
            MessageType.CONTROLLER_CONNECT_AGENT.value: self._handle_connect_agent,
            MessageType.AGENT_REGISTER.value: self._handle_agent_register,
        }

    def handle_frame(self, conn_id: str, raw: Union[str, bytes]) -> List[Delivery]:
        """Decode one wire frame and handle it."""
        try:
            msg = RelayMessage.from_json(raw)
        except ProtocolError as e:
            logger.debug(f"Bad frame from {conn_id}: {e}")
            return [Delivery(conn_id, RelayMessage.error(ProtocolError.code, str(e)))]
        return self.handle(conn_id, msg.type, msg.payload, msg.message_id)

    def handle(
        self,
        conn_id: str,
        event: str,
        payload: Any = None,
        message_id: Optional[str] = None,
    ) -> List[Delivery]:
        """Handle one named message from a connection."""
        handler = self._handlers.get(event)
        if handler is not None:
            return handler(conn_id, payload)

        if self.router.is_routable(event):
            return self.router.route(conn_id, event, payload, message_id)

        logger.debug(f"Ignoring unknown event {event!r} from {conn_id}")
        return []

    def disconnect(self, conn_id: str) -> List[Delivery]:
        """Forget a connection and notify whoever depended on it."""
        result = self.registry.remove_connection(conn_id)
        return self.notifier.connection_removed(result)

    def sweep(self, now: Optional[float] = None) -> int:
        """Expire old pairing codes."""
        return self.registry.sweep_expired_codes(now)

    # --- Handlers ---

    def _handle_controller_register(self, conn_id: str, payload: Any) -> List[Delivery]:
        try:
            controller = self.registry.register_controller(conn_id, payload)
        except RegistrationError as e:
            return [self.notifier.registration_failed(conn_id, PeerRole.CONTROLLER, e)]
        return self.notifier.controller_registered(controller)

    def _handle_controller_refresh(self, conn_id: str, payload: Any) -> List[Delivery]:
        if self.registry.role_of(conn_id) != PeerRole.CONTROLLER:
            return [Delivery(conn_id, RelayMessage.error("not_registered", "Controller is not registered"))]
        return [self.notifier.agent_list(conn_id)]

    def _handle_connect_agent(self, conn_id: str, payload: Any) -> List[Delivery]:
        if self.registry.role_of(conn_id) != PeerRole.CONTROLLER:
            return [Delivery(conn_id, RelayMessage.error("not_registered", "Controller is not registered"))]

        agent_id = payload.get(AGENT_ID_FIELD) if isinstance(payload, dict) else payload
        if isinstance(agent_id, str) and self.registry.has_agent(agent_id):
            logger.info(f"Controller {conn_id} connecting to agent {agent_id}")
            return [Delivery(conn_id, RelayMessage.agent_connected(agent_id))]
        return [Delivery(conn_id, RelayMessage.agent_connect_error("Agent not found or offline"))]

    def _handle_agent_register(self, conn_id: str, payload: Any) -> List[Delivery]:
        data = payload if isinstance(payload, dict) else {}
        try:
            agent = self.registry.register_agent(conn_id, data.get("info"), data.get("code"))
        except RegistrationError as e:
            return [self.notifier.registration_failed(conn_id, PeerRole.AGENT, e)]
        return self.notifier.agent_registered(agent)
