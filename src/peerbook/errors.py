"""
Exception taxonomy for peerbook.

Callers (the HTTP and WebSocket layers) map these to status codes, so every
rejection a user can correct has its own class.
"""

from typing import Optional


class PeerbookError(Exception):
    """Base class for all peerbook errors."""


class InvalidInput(PeerbookError, ValueError):
    """Raised when a caller supplied an empty or malformed value."""


class NotFound(PeerbookError):
    """
    Raised when a key or record is absent.

    Attributes:
        key: The store key that was looked up
    """

    def __init__(self, key: str, message: Optional[str] = None):
        self.key = key
        super().__init__(message or f"{key} not found")


class QuotaExceeded(PeerbookError):
    """
    Raised when a user's peer set is already at its cap.

    Attributes:
        user: The user whose peer set is full
        limit: The cap that was hit
    """

    def __init__(self, user: str, limit: int):
        self.user = user
        self.limit = limit
        super().__init__(f"User {user} has too many peers (limit: {limit})")


class LookupFailure(PeerbookError):
    """
    Raised when a field that must be present on a record is missing.

    Attributes:
        key: The record key
        field: The missing field
    """

    def __init__(self, key: str, field: str, cause: Optional[Exception] = None):
        self.key = key
        self.field = field
        self.cause = cause
        message = f"Failed to read {field!r} from {key}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class UserExists(PeerbookError):
    """
    Raised when signing up an email that already has an account.

    Attributes:
        email: The email that was registered
        user_id: The existing account id
    """

    def __init__(self, email: str, user_id: str):
        self.email = email
        self.user_id = user_id
        super().__init__(f"User {email} already exists")


class StoreError(PeerbookError):
    """
    Raised when the backing store rejects an operation.

    Attributes:
        key: The key the failing operation touched
        cause: The underlying redis exception
    """

    def __init__(self, key: str, cause: Optional[Exception] = None):
        self.key = key
        self.cause = cause
        message = f"Store operation on {key!r} failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class StoreUnavailable(StoreError):
    """Raised when the store cannot be reached (connection or timeout)."""


class OwnershipConflict(PeerbookError):
    """
    Raised when registering a peer that another user already owns.

    Ownership only changes by deleting the peer and registering it again.

    Attributes:
        fp: The peer fingerprint
        owner: The user currently owning the peer
        requested: The user named in the rejected registration
    """

    def __init__(self, fp: str, owner: str, requested: str):
        self.fp = fp
        self.owner = owner
        self.requested = requested
        super().__init__(f"Peer {fp} belongs to user {owner}, not {requested or 'nobody'}")
