"""
Tests for the in-process session hub.
"""

from peerbook import SessionHub


class TestSessionHub:
    """Test session registration and delivery."""

    def test_notify_registered_session(self):
        """Test delivery to a connected peer."""
        hub = SessionHub()
        received = []
        hub.register("fp1", "u1", received.append)

        hub.notify_session("fp1", {"code": 200, "text": "peer is verified"})

        assert received == [{"code": 200, "text": "peer is verified"}]
        assert hub.is_connected("fp1")

    def test_notify_offline_is_noop(self):
        """Test that messaging a peer without a session does nothing."""
        hub = SessionHub()
        hub.notify_session("ghost", {"code": 200, "text": "x"})
        assert not hub.is_connected("ghost")

    def test_broadcast_reaches_only_same_user(self):
        """Test that presence updates stay within one user's sessions."""
        hub = SessionHub()
        mine, theirs = [], []
        hub.register("fp1", "u1", mine.append)
        hub.register("fp2", "u1", mine.append)
        hub.register("fp3", "u2", theirs.append)

        hub.broadcast_presence("u1", "fp1", True, False)

        expected = {"peer_update": {"fp": "fp1", "verified": True, "online": False}}
        assert mine == [expected, expected]
        assert theirs == []
        assert sorted(hub.sessions_of("u1")) == ["fp1", "fp2"]

    def test_unregister(self):
        """Test that an unregistered session receives nothing."""
        hub = SessionHub()
        received = []
        hub.register("fp1", "u1", received.append)
        hub.unregister("fp1")

        hub.notify_session("fp1", {"code": 200, "text": "x"})

        assert received == []
        assert not hub.is_connected("fp1")

    def test_failing_send_is_contained(self, logged_warnings):
        """Test that a broken session does not break delivery to others."""
        hub = SessionHub()
        received = []

        def broken(message):
            raise ConnectionError("socket closed")

        hub.register("fp1", "u1", broken)
        hub.register("fp2", "u1", received.append)

        hub.broadcast_presence("u1", "fp2", True, True)

        assert len(received) == 1
        assert any("fp1" in m for m in logged_warnings)

    def test_drives_verification(self, directory, store):
        """Test the hub as the notifier of a verification service."""
        from peerbook import Peer, VerificationService

        hub = SessionHub()
        received = []
        hub.register("fp1", "u1", received.append)

        peer = Peer.new("fp1", user="u1")
        peer.online = True
        directory.add_peer(peer)

        VerificationService(directory, hub).verify_peer("fp1", True)

        assert received[0] == {"code": 200, "text": "peer is verified"}
        assert [p["fp"] for p in received[1]["peers"]] == ["fp1"]
        assert received[2] == {"peer_update": {"fp": "fp1", "verified": True, "online": True}}
