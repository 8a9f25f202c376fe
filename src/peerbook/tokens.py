"""
Possession tokens for email verification.

Short-lived random tokens prove a user can read an inbox. A permanent QR flag
is the alternate proof, and a per-email marker limits how often mail is sent.
"""

import secrets

from loguru import logger

from .config import EMAIL_INTERVAL, TOKEN_LEN, TOKEN_TTL
from .errors import InvalidInput, StoreError
from .store import KVStore


def token_key(token: str) -> str:
    return f"token:{token}"


def dont_send_key(email: str) -> str:
    return f"dontsend:{email}"


def qr_verified_key(email: str) -> str:
    return f"QRVerified:{email}"


class TokenService:
    """Issues and redeems email tokens and tracks the QR verification flag."""

    def __init__(self, store: KVStore, ttl: int = TOKEN_TTL, email_interval: int = EMAIL_INTERVAL):
        self.store = store
        self.ttl = ttl
        self.email_interval = email_interval

    def create_token(self, email: str) -> str:
        """
        Create a token to be mailed to email.

        Args:
            email: The address the token unlocks

        Returns:
            URL-safe token string

        Raises:
            InvalidInput: If email is empty
        """
        if not email:
            raise InvalidInput("Failed to create a token for an empty email")

        token = secrets.token_urlsafe(TOKEN_LEN)
        self.store.set_with_expiry(token_key(token), email, self.ttl)
        logger.debug(f"Token created for {email}, valid for {self.ttl}s")
        return token

    def redeem_token(self, token: str) -> str:
        """
        Read the email a token unlocks.

        Tokens stay valid until their TTL lapses; call revoke_token() after a
        successful redemption for single use.

        Raises:
            NotFound: If the token is unknown or expired
        """
        return self.store.get_string(token_key(token))

    def revoke_token(self, token: str) -> None:
        self.store.delete(token_key(token))

    def can_send_email(self, email: str) -> bool:
        """
        Rate-limit verification mail to one message per interval.

        Returns:
            True if a mail may be sent now; the interval starts counting
        """
        key = dont_send_key(email)
        try:
            if self.store.exists(key):
                return False
        except StoreError as e:
            logger.warning(f"Failed to check if key {key!r} exists: {e}")
            return False

        self.store.set_with_expiry(key, "1", self.email_interval)
        return True

    def set_qr_verified(self, email: str) -> None:
        self.store.set_value(qr_verified_key(email), "1")
        logger.info(f"Email {email} verified by QR code")

    def is_qr_verified(self, email: str) -> bool:
        key = qr_verified_key(email)
        try:
            return self.store.exists(key)
        except StoreError as e:
            logger.warning(f"Failed to check if key {key!r} exists: {e}")
            return False
