"""Rendezvous relay between agents and controllers.

This package provides:
- SessionRegistry: connection roles and agent<->controller associations
- PairingCodeStore: short-lived 6-digit pairing codes
- RelayRouter: destination resolution for routed messages
- MembershipNotifier: joined/left/disconnected lifecycle events
- RelayDispatcher: transport-independent event handling
- RelayServer: WebSocket transport

Two association policies are supported: code pairing (agents join a
controller with its pairing code) and broadcast auto-discovery (every
agent is visible to every controller).
"""

from .errors import (
    RelayError,
    RegistrationError,
    InvalidPairingCode,
    ControllerGone,
    RoleConflict,
    ProtocolError,
)
from .policy import PairingMode, BroadcastPolicy, PairingPolicy, make_policy
from .pairing import PairingCodeStore, PairingCode
from .protocol import RelayMessage, MessageType, Delivery
from .registry import SessionRegistry, PeerRole, AgentRecord, ControllerRecord, AgentSummary
from .router import RelayRouter
from .notifier import MembershipNotifier
from .dispatcher import RelayDispatcher
from .relay_server import RelayServer

__all__ = [
    "RelayError",
    "RegistrationError",
    "InvalidPairingCode",
    "ControllerGone",
    "RoleConflict",
    "ProtocolError",
    "PairingMode",
    "BroadcastPolicy",
    "PairingPolicy",
    "make_policy",
    "PairingCodeStore",
    "PairingCode",
    "RelayMessage",
    "MessageType",
    "Delivery",
    "SessionRegistry",
    "PeerRole",
    "AgentRecord",
    "ControllerRecord",
    "AgentSummary",
    "RelayRouter",
    "MembershipNotifier",
    "RelayDispatcher",
    "RelayServer",
]
