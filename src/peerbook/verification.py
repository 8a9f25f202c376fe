"""
Peer verification and presence state machine.

Every change to a peer's verified or online flag goes through
VerificationService so the stored state and the notifications sent about it
never drift apart within one call.
"""

import time
from typing import Callable

from loguru import logger

from .directory import PeerDirectory
from .errors import LookupFailure, NotFound, StoreError
from .messages import REVOKED, VERIFIED, PeerListMessage
from .models import format_bool, parse_bool, peer_key
from .notifier import PresenceNotifier


class VerificationService:
    """
    Moves peers between {unverified, verified} x {offline, online}.

    There is no terminal state: peers cycle as they connect, disconnect and
    are verified or revoked.
    """

    def __init__(
        self,
        directory: PeerDirectory,
        notifier: PresenceNotifier,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize service.

        Args:
            directory: Peer directory backed by the store
            notifier: Delivers messages to live sessions
            clock: Returns the current unix time
        """
        self.directory = directory
        self.store = directory.store
        self.notifier = notifier
        self.clock = clock

    def verify_peer(self, fp: str, verified: bool) -> None:
        """
        Grant or revoke a peer's verification and tell everyone concerned.

        An online peer that becomes verified gets a 200 status followed by its
        user's full peer list; an online peer that is revoked gets a 401. In
        both directions the change is then broadcast to the user's sessions.

        Args:
            fp: Peer fingerprint
            verified: New verification state

        Raises:
            NotFound: If fp was never registered
            LookupFailure: If the peer record has no owning user, after the
                status message went out but before the peer list and broadcast
        """
        key = peer_key(fp)
        if not self.store.exists(key):
            raise NotFound(key)
        online = self._read_flag(key, "online")

        fields = {"verified": format_bool(verified)}
        if verified:
            fields["verified_on"] = str(int(self.clock()))
        self.store.hash_set(key, fields)

        if online and verified:
            self.notifier.notify_session(fp, VERIFIED.payload())
            logger.success(f"Sent a 200 to {fp} - a newly verified peer")
        elif online:
            self.notifier.notify_session(fp, REVOKED.payload())
            logger.info(f"Sent a 401 to {fp} - verification revoked")

        user = self._owning_user(key)
        if online and verified:
            peers = self.directory.get_user_peers(user)
            self.notifier.notify_session(
                fp, PeerListMessage(peers=[p.to_dict() for p in peers]).payload()
            )

        self.notifier.broadcast_presence(user, fp, verified, online)

    def is_verified(self, fp: str) -> bool:
        """Read the verified flag; unreadable counts as unverified."""
        return self._read_flag(peer_key(fp), "verified")

    def set_online(self, fp: str, online: bool) -> None:
        """
        Record a session connecting or disconnecting and broadcast it.

        Args:
            fp: Peer fingerprint
            online: True when a session was established

        Raises:
            NotFound: If fp was never registered
            LookupFailure: If the peer record has no owning user
        """
        key = peer_key(fp)
        if not self.store.exists(key):
            raise NotFound(key)
        fields = {"online": format_bool(online)}
        if online:
            fields["last_connect"] = str(int(self.clock()))
        self.store.hash_set(key, fields)

        verified = self._read_flag(key, "verified")
        user = self._owning_user(key)
        self.notifier.broadcast_presence(user, fp, verified, online)
        logger.info(f"Peer {fp} is {'online' if online else 'offline'}")

    def _read_flag(self, key: str, field: str) -> bool:
        try:
            return parse_bool(self.store.hash_get_field(key, field))
        except (NotFound, StoreError) as e:
            logger.warning(f"Failed to get {field!r} field for {key}: {e}")
            return False

    def _owning_user(self, key: str) -> str:
        try:
            user = self.store.hash_get_field(key, "user")
        except (NotFound, StoreError) as e:
            raise LookupFailure(key, "user", e) from e
        if not user:
            raise LookupFailure(key, "user")
        return user
