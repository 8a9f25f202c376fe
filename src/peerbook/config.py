"""
Configuration for peerbook.

Protocol constants live at module level; deployment settings are read from
the environment by Settings.from_env().
"""

import os
from dataclasses import dataclass


TOKEN_LEN = 30                 # random bytes, URL-safe encoded
TOKEN_TTL = 300                # seconds
EMAIL_INTERVAL = 60            # seconds between verification emails
MAX_PEERS_PER_USER = 10
USER_ID_LENGTH = 10            # random bytes in a user id
CREDENTIAL_TTL = 24 * 60 * 60  # TURN credentials expire after a day

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_MAX_CONNECTIONS = 16
DEFAULT_TURN_SECRET = "thisisatest"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 17777


@dataclass
class Settings:
    """
    Deployment settings.

    Attributes:
        redis_url: URL of the backing redis instance
        redis_max_connections: Size bound of the connection pool
        turn_secret: Secret shared with the TURN servers
        host: HTTP bind address
        port: HTTP port
        log_level: loguru level name
    """
    redis_url: str = DEFAULT_REDIS_URL
    redis_max_connections: int = DEFAULT_MAX_CONNECTIONS
    turn_secret: str = DEFAULT_TURN_SECRET
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from PEERBOOK_* and TURN_SECRET_KEY variables."""
        return cls(
            redis_url=os.getenv("PEERBOOK_REDIS_URL", DEFAULT_REDIS_URL),
            redis_max_connections=int(
                os.getenv("PEERBOOK_REDIS_MAX_CONNECTIONS", str(DEFAULT_MAX_CONNECTIONS))
            ),
            turn_secret=os.getenv("TURN_SECRET_KEY") or DEFAULT_TURN_SECRET,
            host=os.getenv("PEERBOOK_HOST", DEFAULT_HOST),
            port=int(os.getenv("PEERBOOK_PORT", str(DEFAULT_PORT))),
            log_level=os.getenv("PEERBOOK_LOG_LEVEL", "INFO").upper(),
        )
