"""Tests for relay/relay_server.py against a live WebSocket server."""

import json
import time
import pytest

from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect

from relay.dispatcher import RelayDispatcher
from relay.policy import PairingPolicy
from relay.registry import SessionRegistry
from relay.relay_server import RelayServer
from web.app import create_app

TIMEOUT = 5


@pytest.fixture
def relay_server():
    """Start a code-pairing relay on a free local port."""
    registry = SessionRegistry(PairingPolicy())
    server = RelayServer(RelayDispatcher(registry), host="127.0.0.1", port=0)
    server.start()
    yield server
    server.stop()


def _send(ws, event, payload=None):
    ws.send(json.dumps({"type": event, "payload": payload}))


def _recv(ws):
    return json.loads(ws.recv(timeout=TIMEOUT))


class TestRelayServer:
    """End-to-end tests over real sockets."""

    def test_pairing_round_trip(self, relay_server):
        """Test pairing, join notice, telemetry, control and leave over WebSockets."""
        url = f"ws://127.0.0.1:{relay_server.port}"

        with connect(url) as controller, connect(url) as agent:
            _send(controller, "controller:register", {"name": "ops"})
            registered = _recv(controller)
            assert registered["type"] == "controller:registered"
            code = registered["payload"]["code"]
            controller_id = registered["payload"]["controllerId"]

            snapshot = _recv(controller)
            assert snapshot["type"] == "controller:agent-list"
            assert snapshot["payload"] == []

            _send(agent, "agent:register", {"code": code, "info": {"hostname": "lab-ubuntu"}})
            ack = _recv(agent)
            assert ack["type"] == "agent:registered"
            assert ack["payload"]["controllerId"] == controller_id
            agent_id = ack["payload"]["agentId"]

            joined = _recv(controller)
            assert joined["type"] == "controller:agent-joined"
            assert joined["payload"]["id"] == agent_id
            assert joined["payload"]["hostname"] == "lab-ubuntu"

            _send(agent, "agent:heartbeat", {"agentId": "spoofed", "uptime": 5})
            heartbeat = _recv(controller)
            assert heartbeat["type"] == "agent:heartbeat"
            assert heartbeat["payload"] == {"agentId": agent_id, "uptime": 5}

            _send(controller, "control:mouse", {"agentId": agent_id, "x": 1, "y": 2})
            mouse = _recv(agent)
            assert mouse["type"] == "control:mouse"
            assert mouse["payload"] == {"agentId": agent_id, "x": 1, "y": 2}

            assert relay_server.registry.agent_count == 1
            assert relay_server.get_connection_count() == 2
            status = create_app(relay_server.registry, relay_server).test_client().get("/").get_json()
            assert status["connections"] == 2
            assert status["messages"] == {"forwarded": 2, "dropped": 0}
            agent.close()

            left = _recv(controller)
            assert left["type"] == "controller:agent-left"
            assert left["payload"] == {"agentId": agent_id}

    def test_bad_code_over_socket(self, relay_server):
        """Test a bad pairing code is answered with agent:error."""
        url = f"ws://127.0.0.1:{relay_server.port}"

        with connect(url) as agent:
            _send(agent, "agent:register", {"code": "123456", "info": {}})
            error = _recv(agent)

        assert error["type"] == "agent:error"
        assert error["payload"]["code"] == "invalid_code"
        assert relay_server.registry.agent_count == 0

    def test_bad_frame_keeps_connection(self, relay_server):
        """Test a malformed frame is reported and the socket stays usable."""
        url = f"ws://127.0.0.1:{relay_server.port}"

        with connect(url) as peer:
            peer.send("{not json")
            assert _recv(peer)["type"] == "relay:error"

            _send(peer, "controller:register", {})
            assert _recv(peer)["type"] == "controller:registered"

    def test_controller_disconnect_notifies_agent(self, relay_server):
        """Test agents hear when their controller goes away."""
        url = f"ws://127.0.0.1:{relay_server.port}"

        with connect(url) as agent:
            with connect(url) as controller:
                _send(controller, "controller:register", {})
                code = _recv(controller)["payload"]["code"]
                _recv(controller)

                _send(agent, "agent:register", {"code": code, "info": {}})
                _recv(agent)

            notice = _recv(agent)
            assert notice["type"] == "agent:controller-disconnected"
            assert relay_server.registry.lookup_code(code) is None

    def test_oversized_frame_closes_connection(self):
        """Test a frame over the size limit closes the socket and runs disconnect handling."""
        registry = SessionRegistry(PairingPolicy())
        server = RelayServer(
            RelayDispatcher(registry), host="127.0.0.1", port=0, max_message_size=1024,
        )
        server.start()
        try:
            url = f"ws://127.0.0.1:{server.port}"
            with connect(url) as controller:
                _send(controller, "controller:register", {})
                code = _recv(controller)["payload"]["code"]
                _recv(controller)

                with connect(url) as agent:
                    _send(agent, "agent:register", {"code": code, "info": {}})
                    agent_id = _recv(agent)["payload"]["agentId"]
                    assert _recv(controller)["type"] == "controller:agent-joined"

                    _send(agent, "agent:frame", {"image": "x" * 4096})
                    with pytest.raises(ConnectionClosed) as exc_info:
                        agent.recv(timeout=TIMEOUT)
                    assert exc_info.value.rcvd.code == 1009

                left = _recv(controller)
                assert left["type"] == "controller:agent-left"
                assert left["payload"] == {"agentId": agent_id}
                assert registry.agent_count == 0
        finally:
            server.stop()

    def test_periodic_sweep(self):
        """Test the sweep timer expires codes and survives a failed pass."""
        registry = SessionRegistry(PairingPolicy(), code_ttl=0.01)
        dispatcher = RelayDispatcher(registry)
        calls = []
        sweep = dispatcher.sweep

        def flaky_sweep(now=None):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("sweep failed")
            return sweep(now)

        dispatcher.sweep = flaky_sweep
        server = RelayServer(dispatcher, host="127.0.0.1", port=0, sweep_interval=0.05)
        server.start()
        try:
            with connect(f"ws://127.0.0.1:{server.port}") as controller:
                _send(controller, "controller:register", {})
                controller_id = _recv(controller)["payload"]["controllerId"]
                _recv(controller)

                deadline = time.monotonic() + TIMEOUT
                while registry.codes.size and time.monotonic() < deadline:
                    time.sleep(0.05)

                assert registry.codes.size == 0
                assert len(calls) >= 2
                assert registry.get_controller(controller_id).pairing_code is None
        finally:
            server.stop()
