"""Session registry - who is connected, in which role, paired with whom."""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from config import RELAY_PAIRING_CODE_TTL
from relay.errors import ControllerGone, InvalidPairingCode, RoleConflict
from relay.pairing import PairingCodeStore
from relay.policy import AssociationPolicy, PairingPolicy

logger = logging.getLogger(__name__)


class PeerRole(Enum):
    """Role a connection takes for its whole lifetime."""
    AGENT = "agent"
    CONTROLLER = "controller"


@dataclass(frozen=True)
class AgentMetadata:
    """Host description an agent sends once, at registration."""
    hostname: Optional[str] = None
    username: Optional[str] = None
    platform: Optional[str] = None
    screens: Any = None

    @classmethod
    def from_info(cls, info: Any) -> "AgentMetadata":
        """Build from the agent's free-form ``info`` object."""
        if not isinstance(info, dict):
            return cls()
        return cls(
            hostname=info.get("hostname"),
            username=info.get("username"),
            platform=info.get("platform"),
            screens=info.get("screens"),
        )


@dataclass
class AgentSummary:
    """Agent description sent to controllers."""
    id: str
    hostname: Optional[str] = None
    username: Optional[str] = None
    platform: Optional[str] = None
    screens: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "hostname": self.hostname,
            "username": self.username,
            "platform": self.platform,
            "screens": self.screens,
        }


@dataclass
class AgentRecord:
    """A registered agent."""
    agent_id: str
    metadata: AgentMetadata
    controller_id: Optional[str] = None

    def summary(self) -> AgentSummary:
        return AgentSummary(
            id=self.agent_id,
            hostname=self.metadata.hostname,
            username=self.metadata.username,
            platform=self.metadata.platform,
            screens=self.metadata.screens,
        )


@dataclass
class ControllerRecord:
    """A registered controller."""
    controller_id: str
    info: Any = None
    pairing_code: Optional[str] = None
    agent_ids: Set[str] = field(default_factory=set)


@dataclass
class RemovalResult:
    """What changed when a connection left.

    For an agent, ``controller_ids`` are the controllers that must hear
    about it. For a controller, ``orphaned_agent_ids`` are the agents whose
    association was voided.
    """
    connection_id: str
    role: Optional[PeerRole] = None
    agent: Optional[AgentRecord] = None
    controller: Optional[ControllerRecord] = None
    controller_ids: Set[str] = field(default_factory=set)
    orphaned_agent_ids: List[str] = field(default_factory=list)
    revoked_codes: List[str] = field(default_factory=list)

    @property
    def removed(self) -> bool:
        return self.role is not None


def _copy_agent(agent: AgentRecord) -> AgentRecord:
    return replace(agent)


def _copy_controller(controller: ControllerRecord) -> ControllerRecord:
    return replace(controller, agent_ids=set(controller.agent_ids))


class SessionRegistry:
    """Authoritative map of live connections to roles and associations.

    Every read and mutation happens under one re-entrant lock, which is
    also handed to the pairing code store, so the agent<->controller and
    code<->controller maps are never observed half-updated. Records
    returned to callers are copies.
    """

    def __init__(
        self,
        policy: Optional[AssociationPolicy] = None,
        code_ttl: float = RELAY_PAIRING_CODE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.policy = policy or PairingPolicy()
        self._lock = threading.RLock()

        self._agents: Dict[str, AgentRecord] = {}
        self._controllers: Dict[str, ControllerRecord] = {}

        self.codes: Optional[PairingCodeStore] = None
        if self.policy.requires_code:
            self.codes = PairingCodeStore(ttl=code_ttl, clock=clock, lock=self._lock)

    @property
    def mode(self):
        return self.policy.mode

    # --- Registration ---

    def register_agent(
        self,
        conn_id: str,
        info: Any = None,
        code: Optional[str] = None,
    ) -> AgentRecord:
        """Register an agent connection.

        An agent whose controller went away may register again with a new
        code; it keeps the metadata it first registered with.

        Raises:
            RoleConflict: the connection is already registered.
            InvalidPairingCode: code-pairing mode and the code is unknown or expired.
            ControllerGone: the code points at a controller that is no longer live.
        """
        with self._lock:
            if conn_id in self._controllers:
                raise RoleConflict("Connection is registered as a controller")

            existing = self._agents.get(conn_id)
            if existing is not None and (self.codes is None or existing.controller_id):
                raise RoleConflict("Agent is already registered")

            controller = None
            if self.codes is not None:
                controller_id = self._resolve_code(str(code)) if code is not None else None
                if controller_id is None:
                    raise InvalidPairingCode()
                controller = self._controllers.get(controller_id)
                if controller is None:
                    raise ControllerGone()

            if existing is not None:
                agent = existing
                agent.controller_id = controller.controller_id
            else:
                agent = AgentRecord(
                    agent_id=conn_id,
                    metadata=AgentMetadata.from_info(info),
                    controller_id=controller.controller_id if controller else None,
                )
                self._agents[conn_id] = agent
            if controller is not None:
                controller.agent_ids.add(conn_id)

            logger.info(
                f"Agent registered: {conn_id} ({agent.metadata.hostname}) "
                f"-> {agent.controller_id or 'all controllers'}"
            )
            return _copy_agent(agent)

    def register_controller(self, conn_id: str, info: Any = None) -> ControllerRecord:
        """Register a controller connection.

        Registering again on the same connection returns the existing
        controller, with a fresh code if the old one has expired.

        Raises:
            RoleConflict: the connection is registered as an agent.
        """
        with self._lock:
            if conn_id in self._agents:
                raise RoleConflict("Connection is registered as an agent")

            controller = self._controllers.get(conn_id)
            if controller is None:
                controller = ControllerRecord(
                    controller_id=conn_id,
                    info=info,
                )
                self._controllers[conn_id] = controller

            if self.codes is not None:
                current = controller.pairing_code
                if current is None or self._resolve_code(current) != conn_id:
                    controller.pairing_code = self.codes.issue(conn_id)

            logger.info(f"Controller registered: {conn_id}, code: {controller.pairing_code}")
            return _copy_controller(controller)

    # --- Removal ---

    def remove_connection(self, conn_id: str) -> RemovalResult:
        """Forget a connection. Unknown ids yield an empty result."""
        result = RemovalResult(connection_id=conn_id)

        with self._lock:
            agent = self._agents.pop(conn_id, None)
            if agent is not None:
                result.role = PeerRole.AGENT
                result.agent = agent
                result.controller_ids = self.policy.audience(agent, self._controllers)
                controller = self._controllers.get(agent.controller_id) if agent.controller_id else None
                if controller is not None:
                    controller.agent_ids.discard(conn_id)
                logger.info(f"Agent disconnected: {conn_id}")
                return result

            controller = self._controllers.pop(conn_id, None)
            if controller is not None:
                result.role = PeerRole.CONTROLLER
                result.controller = controller
                for agent_id in sorted(controller.agent_ids):
                    orphan = self._agents.get(agent_id)
                    if orphan is not None and orphan.controller_id == conn_id:
                        orphan.controller_id = None
                        result.orphaned_agent_ids.append(agent_id)
                controller.agent_ids.clear()
                if self.codes is not None:
                    result.revoked_codes = self.codes.revoke(conn_id)
                logger.info(
                    f"Controller disconnected: {conn_id}, "
                    f"{len(result.orphaned_agent_ids)} agent(s) orphaned"
                )

        return result

    def _resolve_code(self, code: str) -> Optional[str]:
        """Resolve a code, clearing it from its controller if it expired."""
        controller_id = self.codes.resolve(code)
        if controller_id is None:
            for controller in self._controllers.values():
                if controller.pairing_code == code:
                    controller.pairing_code = None
        return controller_id

    # --- Lookups ---

    def role_of(self, conn_id: str) -> Optional[PeerRole]:
        with self._lock:
            if conn_id in self._agents:
                return PeerRole.AGENT
            if conn_id in self._controllers:
                return PeerRole.CONTROLLER
            return None

    def get_agent(self, agent_id: str) -> Optional[AgentRecord]:
        with self._lock:
            agent = self._agents.get(agent_id)
            return _copy_agent(agent) if agent else None

    def get_controller(self, controller_id: str) -> Optional[ControllerRecord]:
        with self._lock:
            controller = self._controllers.get(controller_id)
            return _copy_controller(controller) if controller else None

    def has_agent(self, agent_id: str) -> bool:
        with self._lock:
            return agent_id in self._agents

    def controllers_for(self, agent_id: str) -> Set[str]:
        """Controllers that receive traffic from an agent."""
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                return set()
            return self.policy.audience(agent, self._controllers)

    def list_agents(self, controller_id: str) -> List[AgentSummary]:
        """Agents visible to a controller; empty for unknown controllers."""
        with self._lock:
            controller = self._controllers.get(controller_id)
            if controller is None:
                return []
            return [a.summary() for a in self.policy.visible_agents(controller, self._agents)]

    def agents(self) -> List[AgentRecord]:
        with self._lock:
            return [_copy_agent(a) for a in self._agents.values()]

    def controllers(self) -> List[ControllerRecord]:
        with self._lock:
            return [_copy_controller(c) for c in self._controllers.values()]

    def lookup_code(self, code: str) -> Optional[str]:
        """Controller id behind a live pairing code."""
        if self.codes is None:
            return None
        with self._lock:
            controller_id = self._resolve_code(code)
            if controller_id in self._controllers:
                return controller_id
            return None

    # --- Maintenance ---

    def sweep_expired_codes(self, now: Optional[float] = None) -> int:
        """Drop expired pairing codes and clear them from their controllers."""
        if self.codes is None:
            return 0
        with self._lock:
            expired = self.codes.sweep_expired(now)
            for entry in expired:
                controller = self._controllers.get(entry.controller_id)
                if controller is not None and controller.pairing_code == entry.code:
                    controller.pairing_code = None
            return len(expired)

    @property
    def agent_count(self) -> int:
        with self._lock:
            return len(self._agents)

    @property
    def controller_count(self) -> int:
        with self._lock:
            return len(self._controllers)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            codes = self.codes.get_stats() if self.codes is not None else {}
            return {
                "mode": self.mode.value,
                "agents": len(self._agents),
                "controllers": len(self._controllers),
                "pairing_codes": codes.get("size", 0),
                "code_collisions": codes.get("collisions", 0),
            }
