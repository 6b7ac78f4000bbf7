"""Relay communication protocol definitions."""

import json
import time
from enum import Enum
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List

from config import (
    RELAY_MAX_MESSAGE_SIZE,
    RELAY_PING_INTERVAL,
    RELAY_PING_TIMEOUT,
)
from relay.errors import ProtocolError


class MessageType(Enum):
    """Named messages understood by the relay."""
    # Controller -> relay
    CONTROLLER_REGISTER = "controller:register"
    CONTROLLER_REFRESH = "controller:refresh"
    CONTROLLER_CONNECT_AGENT = "controller:connect-agent"

    # Agent -> relay
    AGENT_REGISTER = "agent:register"

    # Relay -> controller
    CONTROLLER_REGISTERED = "controller:registered"
    CONTROLLER_AGENT_LIST = "controller:agent-list"
    CONTROLLER_AGENT_JOINED = "controller:agent-joined"
    CONTROLLER_AGENT_LEFT = "controller:agent-left"
    CONTROLLER_AGENT_CONNECTED = "controller:agent-connected"
    CONTROLLER_AGENT_ERROR = "controller:agent-error"

    # Relay -> agent
    AGENT_REGISTERED = "agent:registered"
    AGENT_ERROR = "agent:error"
    AGENT_CONTROLLER_DISCONNECTED = "agent:controller-disconnected"

    # Relay -> any peer
    RELAY_ERROR = "relay:error"
    RELAY_ROUTE_ERROR = "relay:route-error"


# Controller -> agent, addressed by agentId/targetAgent in the payload
CONTROL_EVENTS = frozenset([
    "control:start-stream", "control:stop-stream", "control:set-quality", "control:set-monitor",
    "control:mouse", "control:keyboard", "control:scroll",
    "control:clipboard-set", "control:clipboard-get",
    "control:file-list", "control:file-download", "control:file-upload",
    "control:system-info", "control:processes", "control:kill-process",
    "control:command", "control:shell", "control:message",
    "control:secret-stop", "control:get-agent-status",
    "control:lock", "control:screenshot",
])

# Agent -> controller(s), origin injected by the router
AGENT_EVENTS = frozenset([
    "agent:frame", "agent:clipboard", "agent:file-list", "agent:file-download",
    "agent:file-upload", "agent:system-info", "agent:processes",
    "agent:kill-process", "agent:shell", "agent:heartbeat",
    "agent:command", "agent:screenshot",
])

# Address fields the router may read; only AGENT_ID_FIELD is ever written
AGENT_ID_FIELD = "agentId"
TARGET_AGENT_FIELD = "targetAgent"


@dataclass
class RelayMessage:
    """A single framed message on the wire."""
    type: str
    payload: Any = None
    timestamp: float = field(default_factory=time.time)
    message_id: Optional[str] = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, data: str) -> "RelayMessage":
        """Deserialize from JSON string.

        Only ``type`` is required; unknown keys are ignored.

        Raises:
            ProtocolError: frame is not a JSON object with a string ``type``.
        """
        try:
            obj = json.loads(data)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Invalid JSON: {e}") from e

        if not isinstance(obj, dict) or not isinstance(obj.get("type"), str):
            raise ProtocolError("Message must be an object with a string 'type'")

        return cls(
            type=obj["type"],
            payload=obj.get("payload"),
            timestamp=obj.get("timestamp") or time.time(),
            message_id=obj.get("message_id"),
        )

    # --- Relay -> controller ---

    @classmethod
    def controller_registered(cls, controller_id: str, code: Optional[str]) -> "RelayMessage":
        if code:
            message = "Share this code with agents to connect"
        else:
            message = "Agents will appear automatically"
        return cls(
            type=MessageType.CONTROLLER_REGISTERED.value,
            payload={
                "controllerId": controller_id,
                "code": code,
                "message": message,
            }
        )

    @classmethod
    def agent_list(cls, agents: List[Dict[str, Any]]) -> "RelayMessage":
        return cls(type=MessageType.CONTROLLER_AGENT_LIST.value, payload=agents)

    @classmethod
    def agent_joined(cls, summary: Dict[str, Any]) -> "RelayMessage":
        return cls(type=MessageType.CONTROLLER_AGENT_JOINED.value, payload=summary)

    @classmethod
    def agent_left(cls, agent_id: str) -> "RelayMessage":
        return cls(
            type=MessageType.CONTROLLER_AGENT_LEFT.value,
            payload={AGENT_ID_FIELD: agent_id},
        )

    @classmethod
    def agent_connected(cls, agent_id: str) -> "RelayMessage":
        return cls(
            type=MessageType.CONTROLLER_AGENT_CONNECTED.value,
            payload={AGENT_ID_FIELD: agent_id},
        )

    @classmethod
    def agent_connect_error(cls, message: str) -> "RelayMessage":
        return cls(
            type=MessageType.CONTROLLER_AGENT_ERROR.value,
            payload={"error": message},
        )

    # --- Relay -> agent ---

    @classmethod
    def agent_registered(cls, agent_id: str, controller_id: Optional[str]) -> "RelayMessage":
        return cls(
            type=MessageType.AGENT_REGISTERED.value,
            payload={
                AGENT_ID_FIELD: agent_id,
                "controllerId": controller_id,
            }
        )

    @classmethod
    def agent_error(cls, code: str, message: str) -> "RelayMessage":
        return cls(
            type=MessageType.AGENT_ERROR.value,
            payload={"error": message, "code": code},
        )

    @classmethod
    def controller_disconnected(cls, controller_id: str) -> "RelayMessage":
        return cls(
            type=MessageType.AGENT_CONTROLLER_DISCONNECTED.value,
            payload={"controllerId": controller_id},
        )

    # --- Relay -> any peer ---

    @classmethod
    def error(cls, code: str, message: str) -> "RelayMessage":
        """Create error message."""
        return cls(
            type=MessageType.RELAY_ERROR.value,
            payload={"error": message, "code": code},
        )

    @classmethod
    def route_error(cls, event: str, reason: str) -> "RelayMessage":
        return cls(
            type=MessageType.RELAY_ROUTE_ERROR.value,
            payload={"event": event, "error": reason},
        )


@dataclass
class Delivery:
    """A message bound for one connection."""
    connection_id: str
    message: RelayMessage


class RelayProtocol:
    """Protocol limits and helpers."""

    PING_INTERVAL = RELAY_PING_INTERVAL
    PING_TIMEOUT = RELAY_PING_TIMEOUT
    MAX_MESSAGE_SIZE = RELAY_MAX_MESSAGE_SIZE

    @staticmethod
    def is_control_event(event: str) -> bool:
        return event in CONTROL_EVENTS

    @staticmethod
    def is_agent_event(event: str) -> bool:
        return event in AGENT_EVENTS
