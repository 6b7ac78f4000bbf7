"""Tests for relay/pairing.py module."""

import pytest
from unittest.mock import patch

from relay.pairing import PairingCodeStore, PairingCode


class TestPairingCode:
    """Tests for PairingCode dataclass."""

    def test_not_expired_inside_window(self):
        """Test a code younger than the TTL is live."""
        entry = PairingCode(code="123456", controller_id="c1", created_at=1000.0)
        assert entry.is_expired(ttl=3600, now=4000.0) is False

    def test_boundary_is_not_expired(self):
        """Test a code exactly TTL seconds old is still live."""
        entry = PairingCode(code="123456", controller_id="c1", created_at=1000.0)
        assert entry.is_expired(ttl=3600, now=4600.0) is False

    def test_expired_past_window(self):
        """Test a code older than the TTL is expired."""
        entry = PairingCode(code="123456", controller_id="c1", created_at=1000.0)
        assert entry.is_expired(ttl=3600, now=4600.5) is True


class TestPairingCodeStore:
    """Tests for PairingCodeStore class."""

    def test_issue_returns_six_digits(self, pairing_store):
        """Test issued codes are 6-digit numeric strings."""
        for i in range(50):
            code = pairing_store.issue(f"controller-{i}")
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999

    def test_resolve(self, pairing_store):
        """Test resolve returns the owning controller."""
        code = pairing_store.issue("c1")
        assert pairing_store.resolve(code) == "c1"

    def test_resolve_unknown(self, pairing_store):
        """Test resolve returns None for an unknown code."""
        assert pairing_store.resolve("000000") is None

    def test_resolve_does_not_consume(self, pairing_store):
        """Test a code can be resolved any number of times."""
        code = pairing_store.issue("c1")
        for _ in range(5):
            assert pairing_store.resolve(code) == "c1"
        assert pairing_store.size == 1

    def test_resolve_expired(self, pairing_store, clock):
        """Test resolve drops codes past the TTL even before a sweep."""
        code = pairing_store.issue("c1")
        clock.advance(3601)

        assert pairing_store.resolve(code) is None
        assert pairing_store.size == 0
        assert pairing_store.code_for("c1") is None

    def test_one_code_per_controller(self, pairing_store):
        """Test issuing again replaces the controller's previous code."""
        first = pairing_store.issue("c1")
        second = pairing_store.issue("c1")

        assert pairing_store.size == 1
        assert pairing_store.code_for("c1") == second
        if first != second:
            assert pairing_store.resolve(first) is None

    def test_revoke(self, pairing_store):
        """Test revoke removes the controller's code."""
        code = pairing_store.issue("c1")
        other = pairing_store.issue("c2")

        revoked = pairing_store.revoke("c1")

        assert revoked == [code]
        assert pairing_store.resolve(code) is None
        assert pairing_store.resolve(other) == "c2"

    def test_revoke_unknown(self, pairing_store):
        """Test revoking a controller without a code is a no-op."""
        assert pairing_store.revoke("nobody") == []

    def test_collision_regenerates(self, pairing_store):
        """Test a colliding code is regenerated instead of overwriting."""
        with patch("relay.pairing.secrets.randbelow", side_effect=[0, 0, 5]):
            first = pairing_store.issue("c1")
            second = pairing_store.issue("c2")

        assert first == "100000"
        assert second == "100005"
        assert pairing_store.collisions == 1
        assert pairing_store.resolve(first) == "c1"
        assert pairing_store.resolve(second) == "c2"

    def test_sweep_removes_only_old_codes(self, pairing_store, clock):
        """Test sweep keeps codes created within the window."""
        start = clock.now
        old = pairing_store.issue("old")
        clock.advance(1800)
        fresh = pairing_store.issue("fresh")

        removed = pairing_store.sweep_expired(now=start + 3600.5)

        assert [e.code for e in removed] == [old]
        assert pairing_store.resolve(old, now=start + 3600.5) is None
        assert pairing_store.resolve(fresh, now=start + 3600.5) == "fresh"

    def test_sweep_keeps_code_at_window_edge(self, pairing_store, clock):
        """Test a code created exactly at now - ttl survives the sweep."""
        pairing_store.issue("c1")
        removed = pairing_store.sweep_expired(now=clock.now + 3600)
        assert removed == []
        assert pairing_store.size == 1

    def test_sweep_empty(self, pairing_store):
        """Test sweeping an empty store."""
        assert pairing_store.sweep_expired() == []

    def test_stats(self, pairing_store):
        """Test stats reflect the store."""
        pairing_store.issue("c1")
        stats = pairing_store.get_stats()
        assert stats["size"] == 1
        assert stats["ttl"] == 3600
        assert stats["collisions"] == 0
