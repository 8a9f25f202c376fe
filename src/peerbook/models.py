"""
Peerbook data models.

Data classes for peers, users, ICE servers and relay credentials, with the
conversions to and from redis hash fields.
"""

import time
from dataclasses import asdict, dataclass
from typing import Dict, Mapping, Optional


TRUE_VALUES = ("1", "true", "True")


def parse_bool(value: Optional[str]) -> bool:
    return value in TRUE_VALUES


def format_bool(value: bool) -> str:
    return "1" if value else "0"


def peer_key(fp: str) -> str:
    return f"peer:{fp}"


def peerset_key(user: str) -> str:
    return f"user-peerset:{user}"


@dataclass
class Peer:
    """
    A device or app instance that joins WebRTC sessions.

    Attributes:
        fp: Fingerprint, the peer's identity
        name: Display name
        user: Owning user id, empty while unclaimed
        kind: Client category, e.g. "webexec" or "terminal7"
        verified: Whether the peer may take part in connections
        created_on: Registration time (unix seconds)
        verified_on: Last verification time, 0 if never
        last_connect: Last time the peer came online, 0 if never
        online: Whether the peer holds a live session
    """
    fp: str
    name: str = ""
    user: str = ""
    kind: str = ""
    verified: bool = False
    created_on: int = 0
    verified_on: int = 0
    last_connect: int = 0
    online: bool = False

    @classmethod
    def new(cls, fp: str, name: str = "", user: str = "", kind: str = "") -> "Peer":
        """Create an unverified, offline peer stamped with the current time."""
        return cls(fp=fp, name=name, user=user, kind=kind, created_on=int(time.time()))

    @property
    def key(self) -> str:
        return peer_key(self.fp)

    def to_hash(self) -> Dict[str, str]:
        """Flatten to redis hash fields."""
        return {
            "fp": self.fp,
            "name": self.name,
            "user": self.user,
            "kind": self.kind,
            "verified": format_bool(self.verified),
            "created_on": str(self.created_on),
            "verified_on": str(self.verified_on),
            "last_connect": str(self.last_connect),
            "online": format_bool(self.online),
        }

    @classmethod
    def from_hash(cls, fields: Mapping[str, str]) -> "Peer":
        return cls(
            fp=fields.get("fp", ""),
            name=fields.get("name", ""),
            user=fields.get("user", ""),
            kind=fields.get("kind", ""),
            verified=parse_bool(fields.get("verified")),
            created_on=int(fields.get("created_on") or 0),
            verified_on=int(fields.get("verified_on") or 0),
            last_connect=int(fields.get("last_connect") or 0),
            online=parse_bool(fields.get("online")),
        )

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class User:
    """
    User account.

    Attributes:
        user_id: Random short id, the durable key of the account
        email: Email used at signup
        active: Whether the account is active
    """
    user_id: str
    email: str
    active: bool = True


@dataclass
class ICEServer:
    """
    A STUN or TURN server entry as configured by an admin.

    Attributes:
        urls: Server URL, e.g. "turn:turn.example.com:3478"
        username: Static username, replaced per request for relays
        credential: Static credential, replaced per request for relays
        active: Whether the entry is served to clients
    """
    urls: str
    username: str = ""
    credential: str = ""
    active: bool = True

    @property
    def is_relay(self) -> bool:
        """TURN entries need per-request credentials, STUN entries do not."""
        return self.urls.startswith(("turn:", "turns:"))

    def to_hash(self) -> Dict[str, str]:
        return {
            "urls": self.urls,
            "username": self.username,
            "credential": self.credential,
            "active": format_bool(self.active),
        }

    @classmethod
    def from_hash(cls, fields: Mapping[str, str]) -> "ICEServer":
        return cls(
            urls=fields.get("urls", ""),
            username=fields.get("username", ""),
            credential=fields.get("credential", ""),
            active=parse_bool(fields.get("active")),
        )


@dataclass(frozen=True)
class RelayCredential:
    """A time-boxed TURN username/password pair."""
    username: str
    credential: str

    @property
    def expires_at(self) -> int:
        """Unix time embedded after the last colon of the username."""
        return int(self.username.rsplit(":", 1)[1])
