"""
Presence notification.

PresenceNotifier is the interface the core calls to reach live sessions.
SessionHub is an in-process implementation for transports that keep their
sessions in the same process.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from loguru import logger

from .messages import PeerUpdate, PeerUpdateMessage


Message = Dict[str, Any]
SendFunc = Callable[[Message], None]


class PresenceNotifier(Protocol):
    """Delivery side of the transport layer."""

    def notify_session(self, fp: str, message: Message) -> None:
        """Deliver message to the session of fp. No-op when fp is offline."""
        ...

    def broadcast_presence(self, user: str, fp: str, verified: bool, online: bool) -> None:
        """Tell every session of user that fp changed state."""
        ...


@dataclass
class SessionEntry:
    fp: str
    user: str
    send: SendFunc


class SessionHub:
    """
    Registry of live sessions keyed by fingerprint.

    Thread-safe. Send callables are invoked outside the lock, and a failing
    send is logged and dropped so a broken socket never fails the caller.
    """

    def __init__(self):
        self._sessions: Dict[str, SessionEntry] = {}
        self._lock = threading.RLock()

    def register(self, fp: str, user: str, send: SendFunc) -> None:
        """
        Attach a live session.

        Args:
            fp: Fingerprint of the connected peer
            user: The peer's owning user
            send: Delivers one JSON-serializable message to the session
        """
        with self._lock:
            replaced = fp in self._sessions
            self._sessions[fp] = SessionEntry(fp=fp, user=user, send=send)
        if replaced:
            logger.info(f"Replaced session of peer {fp}")
        else:
            logger.debug(f"Registered session of peer {fp} (user {user})")

    def unregister(self, fp: str) -> None:
        with self._lock:
            self._sessions.pop(fp, None)
        logger.debug(f"Unregistered session of peer {fp}")

    def is_connected(self, fp: str) -> bool:
        with self._lock:
            return fp in self._sessions

    def sessions_of(self, user: str) -> List[str]:
        """Fingerprints of every connected peer owned by user."""
        with self._lock:
            return [e.fp for e in self._sessions.values() if e.user == user]

    def notify_session(self, fp: str, message: Message) -> None:
        with self._lock:
            entry: Optional[SessionEntry] = self._sessions.get(fp)
        if entry is None:
            logger.debug(f"No live session for {fp}, dropping message")
            return
        self._deliver(entry, message)

    def broadcast_presence(self, user: str, fp: str, verified: bool, online: bool) -> None:
        message = PeerUpdateMessage(
            peer_update=PeerUpdate(fp=fp, verified=verified, online=online)
        ).payload()
        with self._lock:
            targets = [e for e in self._sessions.values() if e.user == user]
        for entry in targets:
            self._deliver(entry, message)
        logger.debug(f"Broadcast presence of {fp} to {len(targets)} sessions of {user}")

    def _deliver(self, entry: SessionEntry, message: Message) -> None:
        try:
            entry.send(message)
        except Exception as e:
            logger.error(f"Failed to send message to {entry.fp}: {e}")
