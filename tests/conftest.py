"""Shared fixtures for relay tests."""

import sys
import pytest
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


class FakeClock:
    """Controllable time source."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Clock / Pairing Fixtures
# ============================================================================

@pytest.fixture
def clock():
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def pairing_store(clock):
    """Create a PairingCodeStore with a one-hour TTL."""
    from relay.pairing import PairingCodeStore
    return PairingCodeStore(ttl=3600, clock=clock)


# ============================================================================
# Registry Fixtures
# ============================================================================

@pytest.fixture
def code_registry(clock):
    """Create a SessionRegistry in code-pairing mode."""
    from relay.policy import PairingPolicy
    from relay.registry import SessionRegistry
    return SessionRegistry(PairingPolicy(), code_ttl=3600, clock=clock)


@pytest.fixture
def broadcast_registry(clock):
    """Create a SessionRegistry in auto-discovery mode."""
    from relay.policy import BroadcastPolicy
    from relay.registry import SessionRegistry
    return SessionRegistry(BroadcastPolicy(), clock=clock)


@pytest.fixture
def check_invariants():
    """Return a function asserting the agent/controller association invariants."""
    def check(registry):
        agents = {a.agent_id: a for a in registry.agents()}
        controllers = {c.controller_id: c for c in registry.controllers()}

        assert not set(agents) & set(controllers)

        for controller in controllers.values():
            for agent_id in controller.agent_ids:
                assert agent_id in agents
                assert agents[agent_id].controller_id == controller.controller_id

        for agent in agents.values():
            if agent.controller_id is not None:
                assert agent.controller_id in controllers
                assert agent.agent_id in controllers[agent.controller_id].agent_ids

    return check


# ============================================================================
# Dispatcher Fixtures
# ============================================================================

@pytest.fixture
def dispatcher(code_registry):
    """Create a RelayDispatcher over a code-pairing registry."""
    from relay.dispatcher import RelayDispatcher
    return RelayDispatcher(code_registry)


@pytest.fixture
def broadcast_dispatcher(broadcast_registry):
    """Create a RelayDispatcher over an auto-discovery registry."""
    from relay.dispatcher import RelayDispatcher
    return RelayDispatcher(broadcast_registry)


@pytest.fixture
def agent_info():
    """Typical agent registration info."""
    return {
        "hostname": "lab-ubuntu",
        "username": "operator",
        "platform": "linux",
        "screens": [{"width": 1920, "height": 1080}],
    }


# ============================================================================
# Web Fixtures
# ============================================================================

@pytest.fixture
def status_client(code_registry):
    """Create a Flask test client over a code-pairing registry."""
    from web.app import create_app
    app = create_app(code_registry)
    app.config["TESTING"] = True
    return app.test_client()
