"""
peerbook: presence and trust broker for WebRTC peers.

Tracks which peers belong to which user, whether each is verified and
online, and issues time-boxed TURN credentials.
"""

from .models import Peer, User, ICEServer, RelayCredential
from .store import KVStore
from .directory import PeerDirectory
from .tokens import TokenService
from .verification import VerificationService
from .notifier import PresenceNotifier, SessionHub
from .turn import (
    CredentialIssuer,
    list_active_ice_servers,
    put_ice_server,
    resolve_ice_servers,
)
from .config import Settings, MAX_PEERS_PER_USER
from .errors import (
    PeerbookError,
    InvalidInput,
    NotFound,
    QuotaExceeded,
    OwnershipConflict,
    LookupFailure,
    UserExists,
    StoreError,
    StoreUnavailable,
)

__all__ = [
    # Models
    "Peer",
    "User",
    "ICEServer",
    "RelayCredential",
    # Persistence
    "KVStore",
    "PeerDirectory",
    # Services
    "TokenService",
    "VerificationService",
    "PresenceNotifier",
    "SessionHub",
    # TURN
    "CredentialIssuer",
    "list_active_ice_servers",
    "put_ice_server",
    "resolve_ice_servers",
    # Configuration
    "Settings",
    "MAX_PEERS_PER_USER",
    # Errors
    "PeerbookError",
    "InvalidInput",
    "NotFound",
    "QuotaExceeded",
    "OwnershipConflict",
    "LookupFailure",
    "UserExists",
    "StoreError",
    "StoreUnavailable",
]
