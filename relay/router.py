"""Relay router - forwards named messages between agents and controllers.

The router keeps no state of its own. Destinations come from the current
registry snapshot and the registry's association policy:

- control messages (controller -> agent) name their agent in the payload
  (``agentId``, falling back to ``targetAgent``) and are forwarded verbatim;
- agent messages (agent -> controller) go to the agent's audience (every
  controller in auto-discovery, the paired controller otherwise) with the
  sender's id written into ``agentId``.

Anything without a live destination is dropped. With ``nack_unroutable``
the sender gets a ``relay:route-error`` instead.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from config import RELAY_NACK_UNROUTABLE
from relay.protocol import (
    AGENT_ID_FIELD,
    TARGET_AGENT_FIELD,
    Delivery,
    RelayMessage,
    RelayProtocol,
)
from relay.registry import PeerRole, SessionRegistry

logger = logging.getLogger(__name__)


def extract_target(payload: Any) -> Optional[str]:
    """Destination agent id named in a control payload."""
    if not isinstance(payload, dict):
        return None
    target = payload.get(AGENT_ID_FIELD) or payload.get(TARGET_AGENT_FIELD)
    if isinstance(target, str) and target:
        return target
    return None


def inject_origin(payload: Any, agent_id: str) -> dict:
    """Copy of an agent payload stamped with its real origin.

    Any ``agentId`` the agent put there itself is overwritten.
    """
    if payload is None:
        return {AGENT_ID_FIELD: agent_id}
    if isinstance(payload, dict):
        stamped = dict(payload)
        stamped[AGENT_ID_FIELD] = agent_id
        return stamped
    return {"data": payload, AGENT_ID_FIELD: agent_id}


class RelayRouter:
    """Computes destinations and forwarded payloads for routed messages."""

    def __init__(self, registry: SessionRegistry, nack_unroutable: bool = RELAY_NACK_UNROUTABLE):
        self.registry = registry
        self.nack_unroutable = nack_unroutable

        # Statistics
        self.forwarded = 0
        self.dropped = 0

    @staticmethod
    def is_routable(event: str) -> bool:
        return RelayProtocol.is_control_event(event) or RelayProtocol.is_agent_event(event)

    def resolve_destinations(
        self,
        sender_id: str,
        sender_role: Optional[PeerRole],
        event: str,
        payload: Any,
    ) -> Set[str]:
        """Connection ids a message from ``sender_id`` should reach."""
        if RelayProtocol.is_control_event(event):
            if sender_role != PeerRole.CONTROLLER:
                return set()
            target = extract_target(payload)
            if target and self.registry.has_agent(target):
                return {target}
            return set()

        if RelayProtocol.is_agent_event(event):
            if sender_role != PeerRole.AGENT:
                return set()
            return self.registry.controllers_for(sender_id)

        return set()

    def route(
        self,
        sender_id: str,
        event: str,
        payload: Any,
        message_id: Optional[str] = None,
    ) -> List[Delivery]:
        """Build the deliveries for one inbound routed message."""
        sender_role = self.registry.role_of(sender_id)
        destinations = self.resolve_destinations(sender_id, sender_role, event, payload)

        if not destinations:
            self.dropped += 1
            reason = self._drop_reason(sender_role, event)
            logger.debug(f"Dropped {event} from {sender_id}: {reason}")
            if self.nack_unroutable:
                return [Delivery(sender_id, RelayMessage.route_error(event, reason))]
            return []

        if RelayProtocol.is_agent_event(event):
            payload = inject_origin(payload, sender_id)

        self.forwarded += len(destinations)
        return [
            Delivery(dest, RelayMessage(type=event, payload=payload, message_id=message_id))
            for dest in sorted(destinations)
        ]

    @staticmethod
    def _drop_reason(sender_role: Optional[PeerRole], event: str) -> str:
        if RelayProtocol.is_control_event(event):
            if sender_role != PeerRole.CONTROLLER:
                return "Sender is not a registered controller"
            return "Agent not found or offline"
        if RelayProtocol.is_agent_event(event):
            if sender_role != PeerRole.AGENT:
                return "Sender is not a registered agent"
            return "No controller to deliver to"
        return "Unknown event"

    def get_stats(self) -> Dict[str, int]:
        return {
            "forwarded": self.forwarded,
            "dropped": self.dropped,
        }
