"""Membership notifications for registry changes."""

import logging
from typing import List

from relay.errors import RegistrationError
from relay.protocol import Delivery, RelayMessage
from relay.registry import (
    AgentRecord,
    ControllerRecord,
    PeerRole,
    RemovalResult,
    SessionRegistry,
)

logger = logging.getLogger(__name__)


class MembershipNotifier:
    """Turns registry outcomes into lifecycle events for the affected peers.

    The notifier only composes deliveries. Whether they arrive is up to
    the transport, which drops anything addressed to a connection that has
    gone away in the meantime.
    """

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    def agent_list(self, controller_id: str) -> Delivery:
        """Snapshot of the agents visible to a controller."""
        agents = [s.to_dict() for s in self.registry.list_agents(controller_id)]
        return Delivery(controller_id, RelayMessage.agent_list(agents))

    def controller_registered(self, controller: ControllerRecord) -> List[Delivery]:
        cid = controller.controller_id
        return [
            Delivery(cid, RelayMessage.controller_registered(cid, controller.pairing_code)),
            self.agent_list(cid),
        ]

    def agent_registered(self, agent: AgentRecord) -> List[Delivery]:
        deliveries = [
            Delivery(agent.agent_id, RelayMessage.agent_registered(agent.agent_id, agent.controller_id)),
        ]
        summary = agent.summary().to_dict()
        for controller_id in sorted(self.registry.controllers_for(agent.agent_id)):
            deliveries.append(Delivery(controller_id, RelayMessage.agent_joined(summary)))
        return deliveries

    def registration_failed(
        self,
        conn_id: str,
        role: PeerRole,
        error: RegistrationError,
    ) -> Delivery:
        logger.info(f"Registration failed for {conn_id} ({role.value}): {error.message}")
        if role == PeerRole.AGENT:
            return Delivery(conn_id, RelayMessage.agent_error(error.code, error.message))
        return Delivery(conn_id, RelayMessage.error(error.code, error.message))

    def connection_removed(self, result: RemovalResult) -> List[Delivery]:
        """Cascade of events after a disconnect."""
        if result.role == PeerRole.AGENT:
            return [
                Delivery(cid, RelayMessage.agent_left(result.connection_id))
                for cid in sorted(result.controller_ids)
            ]

        if result.role == PeerRole.CONTROLLER and self.registry.policy.notifies_agents_on_controller_exit:
            return [
                Delivery(agent_id, RelayMessage.controller_disconnected(result.connection_id))
                for agent_id in result.orphaned_agent_ids
            ]

        return []
