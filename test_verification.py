"""
Tests for the verification and presence state machine.
"""

import pytest

from peerbook import LookupFailure, NotFound, Peer

from conftest import FIXED_NOW


def register(directory, fp, user="u1", online=False, verified=False):
    peer = Peer.new(fp, name=f"{fp}-name", user=user, kind="webexec")
    peer.online = online
    peer.verified = verified
    directory.add_peer(peer)
    return peer


class TestVerifyPeer:
    """Test granting and revoking verification."""

    def test_verify_then_is_verified(self, directory, verification):
        """Test that verify_peer(True) is visible through is_verified."""
        register(directory, "fp1")
        verification.verify_peer("fp1", True)
        assert verification.is_verified("fp1")

    def test_revoke_then_is_verified(self, directory, verification):
        """Test that verify_peer(False) is visible through is_verified."""
        register(directory, "fp1", verified=True)
        verification.verify_peer("fp1", False)
        assert not verification.is_verified("fp1")

    def test_verify_stamps_time(self, directory, verification):
        """Test that verification records when it happened."""
        register(directory, "fp1")
        verification.verify_peer("fp1", True)
        assert directory.get_peer("fp1").verified_on == FIXED_NOW

    def test_offline_peer_gets_no_message(self, directory, verification, notifier):
        """Test that an offline peer is not messaged but presence is broadcast."""
        register(directory, "fp1")

        verification.verify_peer("fp1", True)

        assert notifier.sent == []
        assert notifier.broadcasts == [("u1", "fp1", True, False)]

    def test_online_peer_gets_status_and_peer_list(self, directory, verification, notifier):
        """Test that a verified online peer learns its status and siblings."""
        register(directory, "fp1", online=True)
        register(directory, "fp2")

        verification.verify_peer("fp1", True)

        assert len(notifier.sent) == 2
        fp, status = notifier.sent[0]
        assert fp == "fp1"
        assert status == {"code": 200, "text": "peer is verified"}

        fp, peer_list = notifier.sent[1]
        assert fp == "fp1"
        assert [p["fp"] for p in peer_list["peers"]] == ["fp1", "fp2"]
        assert peer_list["peers"][0]["verified"] is True

        assert notifier.broadcasts == [("u1", "fp1", True, True)]

    def test_online_peer_revoked(self, directory, verification, notifier):
        """Test that a revoked online peer gets a 401."""
        register(directory, "fp1", online=True, verified=True)

        verification.verify_peer("fp1", False)

        assert notifier.sent == [("fp1", {"code": 401, "text": "peer's verification was revoked"})]
        assert notifier.broadcasts == [("u1", "fp1", False, True)]

    def test_unknown_peer(self, verification, notifier, store):
        """Test that verifying an unregistered peer writes nothing."""
        with pytest.raises(NotFound):
            verification.verify_peer("nope", True)
        assert not store.exists("peer:nope")
        assert notifier.broadcasts == []

    def test_missing_owner_aborts_broadcast(self, directory, verification, notifier):
        """Test that a peer without an owner raises LookupFailure and is not broadcast."""
        register(directory, "fp1", user="")

        with pytest.raises(LookupFailure) as exc:
            verification.verify_peer("fp1", True)

        assert exc.value.field == "user"
        assert notifier.broadcasts == []

    def test_missing_owner_still_gets_revocation(self, directory, verification, notifier):
        """Test that an online peer without an owner is told of its revocation."""
        register(directory, "fp1", user="", online=True, verified=True)

        with pytest.raises(LookupFailure):
            verification.verify_peer("fp1", False)

        assert not verification.is_verified("fp1")
        assert notifier.sent == [("fp1", {"code": 401, "text": "peer's verification was revoked"})]
        assert notifier.broadcasts == []

    def test_missing_owner_gets_status_but_no_peer_list(self, directory, verification, notifier):
        """Test that an online peer without an owner gets its 200 and nothing after it."""
        register(directory, "fp1", user="", online=True)

        with pytest.raises(LookupFailure):
            verification.verify_peer("fp1", True)

        assert verification.is_verified("fp1")
        assert notifier.sent == [("fp1", {"code": 200, "text": "peer is verified"})]
        assert notifier.broadcasts == []

    def test_unreadable_online_counts_as_offline(self, directory, verification, notifier, store, logged_warnings):
        """Test that a missing online flag degrades to offline with a warning."""
        register(directory, "fp1")
        with store.acquire() as conn:
            conn.hdel("peer:fp1", "online")

        verification.verify_peer("fp1", True)

        assert notifier.sent == []
        assert notifier.broadcasts == [("u1", "fp1", True, False)]
        assert any("online" in m for m in logged_warnings)


class TestIsVerified:
    """Test the degraded-read behaviour of is_verified."""

    def test_unknown_peer(self, verification, logged_warnings):
        """Test that an unknown peer reads as unverified and logs."""
        assert not verification.is_verified("nope")
        assert logged_warnings

    def test_store_down(self, directory, verification, fake_server, logged_warnings):
        """Test that an unreachable store reads as unverified and logs."""
        register(directory, "fp1", verified=True)
        fake_server.connected = False
        assert not verification.is_verified("fp1")
        assert logged_warnings


class TestSetOnline:
    """Test the connection lifecycle hook."""

    def test_online_records_connect_time(self, directory, verification, notifier):
        """Test that coming online stamps last_connect and broadcasts."""
        register(directory, "fp1", verified=True)

        verification.set_online("fp1", True)

        peer = directory.get_peer("fp1")
        assert peer.online
        assert peer.last_connect == FIXED_NOW
        assert notifier.broadcasts == [("u1", "fp1", True, True)]

    def test_offline(self, directory, verification, notifier):
        """Test that going offline keeps last_connect and broadcasts."""
        register(directory, "fp1", online=True)

        verification.set_online("fp1", False)

        peer = directory.get_peer("fp1")
        assert not peer.online
        assert peer.last_connect == 0
        assert notifier.broadcasts == [("u1", "fp1", False, False)]

    def test_unknown_peer(self, verification):
        """Test that an unregistered peer cannot come online."""
        with pytest.raises(NotFound):
            verification.set_online("nope", True)


class TestScenario:
    """End-to-end verification flow."""

    def test_verify_offline_then_revoke_online(self, directory, verification, notifier):
        """Test verify while offline, come online, then revoke."""
        register(directory, "fp1", user="u1")

        verification.verify_peer("fp1", True)
        assert notifier.sent == []
        assert notifier.broadcasts[-1] == ("u1", "fp1", True, False)

        verification.set_online("fp1", True)
        assert notifier.broadcasts[-1] == ("u1", "fp1", True, True)

        verification.verify_peer("fp1", False)
        assert notifier.sent == [("fp1", {"code": 401, "text": "peer's verification was revoked"})]
        assert notifier.broadcasts[-1] == ("u1", "fp1", False, True)
        assert not verification.is_verified("fp1")
