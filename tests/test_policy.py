"""Tests for relay/policy.py module."""

import pytest

from relay.policy import BroadcastPolicy, PairingMode, PairingPolicy, make_policy


class TestMakePolicy:
    """Tests for make_policy function."""

    def test_code(self):
        policy = make_policy("code")
        assert isinstance(policy, PairingPolicy)
        assert policy.requires_code is True
        assert policy.notifies_agents_on_controller_exit is True

    def test_broadcast(self):
        policy = make_policy(PairingMode.BROADCAST)
        assert isinstance(policy, BroadcastPolicy)
        assert policy.requires_code is False
        assert policy.notifies_agents_on_controller_exit is False

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            make_policy("mesh")
