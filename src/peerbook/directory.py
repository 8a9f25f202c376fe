"""
Peer and user directory.

Peers are redis hashes keyed by fingerprint; each user owns a bounded set of
fingerprints. The set is the source of truth for which peers a user has.
"""

import secrets
from typing import List, Optional, Set

from loguru import logger

from .config import MAX_PEERS_PER_USER, USER_ID_LENGTH
from .errors import InvalidInput, NotFound, OwnershipConflict, QuotaExceeded, UserExists
from .models import Peer, User, format_bool, parse_bool, peer_key, peerset_key
from .store import KVStore


def user_id_key(email: str) -> str:
    return f"user:{email}"


def user_key(user_id: str) -> str:
    return f"u:{user_id}"


def temp_id_key(temp_id: str) -> str:
    return f"tempid:{temp_id}"


class PeerDirectory:
    """
    CRUD over peers, users and user peer sets.

    Holds no state of its own; every call goes to the store.
    """

    def __init__(self, store: KVStore, max_peers_per_user: int = MAX_PEERS_PER_USER):
        """
        Initialize directory.

        Args:
            store: Connected store adapter
            max_peers_per_user: Cap on the size of a user's peer set
        """
        self.store = store
        self.max_peers_per_user = max_peers_per_user

    # ========================================================================
    # Peer Operations
    # ========================================================================

    def add_peer(self, peer: Peer) -> None:
        """
        Register or overwrite a peer.

        If the peer has an owner, its fingerprint joins the owner's peer set
        and the hash is written in full, in one transaction. A full set
        rejects the peer and nothing is written. Registering an existing
        fingerprint again overwrites every field, but an owned peer can not be
        handed to another user this way: it has to be deleted first.

        Args:
            peer: Peer to store

        Raises:
            InvalidInput: If the fingerprint is empty
            OwnershipConflict: If another user already owns the fingerprint
            QuotaExceeded: If the owner already has the maximum number of peers
        """
        if not peer.fp:
            raise InvalidInput("Cannot add a peer without a fingerprint")

        key = peer.key
        watches = [key]
        if peer.user:
            watches.append(peerset_key(peer.user))

        def attempt(pipe):
            owner = pipe.hget(key, "user")
            if owner and owner != peer.user:
                logger.warning(f"Rejected peer {peer.fp}: owned by user {owner}, not {peer.user or '-'}")
                raise OwnershipConflict(peer.fp, owner, peer.user)
            if peer.user:
                members = peerset_key(peer.user)
                if not pipe.sismember(members, peer.fp) and pipe.scard(members) >= self.max_peers_per_user:
                    logger.warning(f"Rejected peer {peer.fp}: user {peer.user} is at the peer limit")
                    raise QuotaExceeded(peer.user, self.max_peers_per_user)
            pipe.multi()
            if peer.user:
                pipe.sadd(peerset_key(peer.user), peer.fp)
            pipe.hset(key, mapping=peer.to_hash())

        self.store.transaction(key, attempt, *watches)
        logger.info(f"Peer added: {peer.fp} ({peer.kind or 'unknown kind'}) for user {peer.user or '-'}")

    def get_peer(self, fp: str) -> Peer:
        """
        Read a peer.

        Raises:
            NotFound: If no record exists for fp
        """
        key = peer_key(fp)
        fields = self.store.hash_get_all(key)
        if not fields:
            raise NotFound(key)
        return Peer.from_hash(fields)

    def peer_exists(self, fp: str) -> bool:
        """True if a record exists, whether or not the peer is verified."""
        return self.store.exists(peer_key(fp))

    def rename_peer(self, fp: str, name: str) -> None:
        key = peer_key(fp)
        if not self.store.exists(key):
            raise NotFound(key)
        self.store.hash_set(key, {"name": name})
        logger.info(f"Peer {fp} renamed to {name!r}")

    def delete_peer(self, fp: str) -> bool:
        """
        Delete a peer and drop it from its owner's peer set.

        Both removals commit in one transaction.

        Returns:
            True if the peer existed
        """
        key = peer_key(fp)

        def attempt(pipe):
            existed = pipe.exists(key)
            user = pipe.hget(key, "user")
            pipe.multi()
            if user:
                pipe.srem(peerset_key(user), fp)
            pipe.delete(key)
            return bool(existed)

        existed = self.store.transaction(key, attempt, key)
        if existed:
            logger.info(f"Peer deleted: {fp}")
        return existed

    def reset_all_online(self, scan_count: Optional[int] = None) -> int:
        """
        Mark every peer offline.

        Run at startup to clear online flags left behind by an unclean
        shutdown. Covers every peer record however many scan pages they span.

        Args:
            scan_count: SCAN page size hint

        Returns:
            Number of peer records reset
        """
        keys = self.store.scan_keys_matching("peer:*", count=scan_count)
        for key in keys:
            self.store.hash_set(key, {"online": format_bool(False)})
        logger.info(f"Reset online flag of {len(keys)} peers")
        return len(keys)

    # ========================================================================
    # Membership Operations
    # ========================================================================

    def get_user_fingerprints(self, user: str) -> Set[str]:
        return self.store.set_members(peerset_key(user))

    def get_user_peers(self, user: str) -> List[Peer]:
        """
        Read every peer in a user's peer set.

        Members whose record is gone are skipped with a warning.

        Args:
            user: User id

        Returns:
            Peers sorted by fingerprint
        """
        peers = []
        for fp in sorted(self.get_user_fingerprints(user)):
            try:
                peers.append(self.get_peer(fp))
            except NotFound:
                logger.warning(f"User {user} lists peer {fp} but it has no record")
        return peers

    # ========================================================================
    # User Operations
    # ========================================================================

    def add_user(self, email: str) -> str:
        """
        Create an account for email.

        Args:
            email: Signup email

        Returns:
            The new permanent user id

        Raises:
            InvalidInput: If email is empty
            UserExists: If the email already has an account; carries its id
        """
        if not email:
            raise InvalidInput("Cannot add a user without an email")

        user_id = secrets.token_urlsafe(USER_ID_LENGTH)
        if not self.store.set_if_absent(user_id_key(email), user_id):
            raise UserExists(email, self.store.get_string(user_id_key(email)))

        self.store.hash_set(user_key(user_id), {"email": email, "active": format_bool(True)})
        logger.info(f"User created: {email} ({user_id})")
        return user_id

    def get_user_id(self, email: str) -> str:
        return self.store.get_string(user_id_key(email))

    def get_user(self, user_id: str) -> User:
        key = user_key(user_id)
        fields = self.store.hash_get_all(key)
        if not fields:
            raise NotFound(key)
        return User(
            user_id=user_id,
            email=fields.get("email", ""),
            active=parse_bool(fields.get("active")),
        )

    def set_user_active(self, user_id: str, active: bool) -> None:
        self.store.hash_set(user_key(user_id), {"active": format_bool(active)})
        logger.info(f"User {user_id} {'activated' if active else 'deactivated'}")

    # ========================================================================
    # Provisional Ids
    # ========================================================================

    def add_temp_id(self, temp_id: str) -> None:
        self.store.set_value(temp_id_key(temp_id), "1")

    def temp_id_exists(self, temp_id: str) -> bool:
        return self.store.exists(temp_id_key(temp_id))

    def remove_temp_id(self, temp_id: str) -> None:
        self.store.delete(temp_id_key(temp_id))
