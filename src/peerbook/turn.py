"""
TURN credentials and ICE server configuration.

Relay credentials follow the TURN REST convention: the username embeds its
own expiry and the password is an HMAC of the username under a secret shared
with the relay, which recomputes it to validate.
"""

import base64
import hashlib
import hmac
import time
from typing import Any, Callable, Dict, List

from loguru import logger

from .config import CREDENTIAL_TTL, DEFAULT_TURN_SECRET
from .errors import InvalidInput, NotFound
from .models import ICEServer, RelayCredential
from .store import KVStore


def ice_server_key(name: str) -> str:
    return f"iceserver:{name}"


class CredentialIssuer:
    """
    Derives time-boxed TURN credentials.

    Output depends only on the identity, the clock and the secret: two calls
    in the same second return the same pair.
    """

    def __init__(
        self,
        secret: str = DEFAULT_TURN_SECRET,
        ttl: int = CREDENTIAL_TTL,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize issuer.

        Args:
            secret: Key shared with the TURN servers
            ttl: Credential lifetime in seconds
            clock: Returns the current unix time
        """
        if not secret:
            raise InvalidInput("TURN secret must not be empty")
        self.secret = secret
        self.ttl = ttl
        self.clock = clock

    def issue_credential(self, identity: str) -> RelayCredential:
        """
        Create a credential for identity.

        Args:
            identity: Caller identity, usually an email address

        Returns:
            RelayCredential with username "<identity>:<expiry>" and the
            base64 HMAC-SHA1 of that username

        Raises:
            InvalidInput: If identity is empty
        """
        if not identity:
            raise InvalidInput("No username provided")

        expiry = int(self.clock()) + self.ttl
        username = f"{identity}:{expiry}"
        digest = hmac.new(self.secret.encode("utf-8"), username.encode("utf-8"), hashlib.sha1).digest()
        return RelayCredential(
            username=username,
            credential=base64.b64encode(digest).decode("ascii"),
        )


def put_ice_server(store: KVStore, name: str, server: ICEServer) -> None:
    """Admin helper: store or replace an ICE server entry."""
    store.hash_set(ice_server_key(name), server.to_hash())
    logger.info(f"ICE server {name} set to {server.urls} (active: {server.active})")


def list_active_ice_servers(store: KVStore) -> List[ICEServer]:
    """
    Read the configured ICE servers.

    Returns:
        Active entries ordered by name. Relay entries are templates until
        resolve_ice_servers() fills in their credentials.
    """
    servers = []
    for key in sorted(store.scan_keys_matching(ice_server_key("*"))):
        server = ICEServer.from_hash(store.hash_get_all(key))
        if server.active and server.urls:
            servers.append(server)
    return servers


def resolve_ice_servers(store: KVStore, issuer: CredentialIssuer, identity: str) -> List[Dict[str, Any]]:
    """
    Build the ICE server list handed to a client.

    Args:
        store: Store holding the iceserver:* entries
        issuer: Credential issuer for relay entries
        identity: Caller identity embedded in relay usernames

    Returns:
        List of {"urls"} dicts for STUN entries and
        {"urls", "username", "credential"} dicts for TURN entries

    Raises:
        NotFound: If no active server is configured
        InvalidInput: If a TURN entry needs an identity and none was given
    """
    servers = list_active_ice_servers(store)
    if not servers:
        raise NotFound(ice_server_key("*"), "No ICE servers found")

    resolved = []
    for server in servers:
        if server.is_relay:
            cred = issuer.issue_credential(identity)
            resolved.append({
                "urls": server.urls,
                "username": cred.username,
                "credential": cred.credential,
            })
        else:
            resolved.append({"urls": server.urls})
    return resolved
