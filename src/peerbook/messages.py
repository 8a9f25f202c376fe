"""
Messages pushed to connected peer sessions.

Each model renders to the JSON object a client receives; the transport layer
serializes the dict returned by payload().
"""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


STATUS_VERIFIED = 200
STATUS_REVOKED = 401


class StatusMessage(BaseModel):
    """Tells a peer its own state changed, e.g. 200 once it is verified."""
    code: int
    text: str

    def payload(self) -> Dict[str, Any]:
        return self.model_dump()


class PeerListMessage(BaseModel):
    """The full list of peers owned by the receiving peer's user."""
    peers: List[Dict[str, Any]] = Field(default_factory=list)

    def payload(self) -> Dict[str, Any]:
        return self.model_dump()


class PeerUpdate(BaseModel):
    fp: str
    verified: bool
    online: bool


class PeerUpdateMessage(BaseModel):
    """Presence change of one peer, fanned out to its user's sessions."""
    peer_update: PeerUpdate

    def payload(self) -> Dict[str, Any]:
        return self.model_dump()


VERIFIED = StatusMessage(code=STATUS_VERIFIED, text="peer is verified")
REVOKED = StatusMessage(code=STATUS_REVOKED, text="peer's verification was revoked")
