"""Association policies: how agents and controllers find each other.

The policy is chosen once, when the registry is built, and both the
registry and the router consult it:

- ``BroadcastPolicy`` (auto-discovery): no codes, every agent is visible
  to every controller and agent traffic fans out to all controllers.
- ``PairingPolicy`` (code pairing): an agent presents a controller's
  pairing code and from then on talks to that controller only.
"""

from enum import Enum
from typing import List, Mapping, Set, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from relay.registry import AgentRecord, ControllerRecord


class PairingMode(Enum):
    """Supported association variants."""
    CODE = "code"
    BROADCAST = "broadcast"


class AssociationPolicy:
    """Base class for association strategies."""

    mode: PairingMode
    requires_code: bool = False
    notifies_agents_on_controller_exit: bool = False

    def audience(
        self,
        agent: "AgentRecord",
        controllers: Mapping[str, "ControllerRecord"],
    ) -> Set[str]:
        """Controller ids that receive an agent's traffic and lifecycle events."""
        raise NotImplementedError

    def visible_agents(
        self,
        controller: "ControllerRecord",
        agents: Mapping[str, "AgentRecord"],
    ) -> List["AgentRecord"]:
        """Agents a controller may see in its agent list."""
        raise NotImplementedError


class BroadcastPolicy(AssociationPolicy):
    mode = PairingMode.BROADCAST

    def audience(self, agent, controllers):
        return set(controllers)

    def visible_agents(self, controller, agents):
        return list(agents.values())


class PairingPolicy(AssociationPolicy):
    mode = PairingMode.CODE
    requires_code = True
    notifies_agents_on_controller_exit = True

    def audience(self, agent, controllers):
        if agent.controller_id and agent.controller_id in controllers:
            return {agent.controller_id}
        return set()

    def visible_agents(self, controller, agents):
        return [agents[a] for a in controller.agent_ids if a in agents]


def make_policy(mode: Union[str, PairingMode]) -> AssociationPolicy:
    """Build the policy for a mode name ("code" or "broadcast")."""
    mode = PairingMode(mode)
    if mode == PairingMode.BROADCAST:
        return BroadcastPolicy()
    return PairingPolicy()
