"""JWT access tokens and opaque refresh/verification tokens."""

import hashlib
import secrets
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import jwt
import structlog

from src.config import Settings, get_settings
from src.models.user import UserRole

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"


def hash_token(raw_token: str) -> str:
    """SHA-256 digest used as the storage lookup key for opaque tokens."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class TokenCodec:
    """Signs and verifies access tokens and mints opaque tokens."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def create_access_token(self, user_id: UUID, role: UserRole) -> str:
        """Create a signed JWT access token.

        Args:
            user_id: User UUID (placed in 'sub' claim)
            role: User role, carried for authorization checks

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "role": role.value,
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": now + self.settings.access_token_expires_in,
        }
        token = jwt.encode(
            payload, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm
        )
        logger.debug(
            "access_token_created",
            user_id=str(user_id),
            expires_seconds=self.settings.access_token_expires_seconds,
        )
        return token

    def decode_access_token(self, token: str) -> dict:
        """Decode and validate a JWT access token.

        Args:
            token: Encoded JWT string

        Returns:
            Decoded payload dict with sub, role, type, iat, exp

        Raises:
            ValueError: If the token is invalid, expired, or not an access token
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret,
                algorithms=[self.settings.jwt_algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise ValueError("Access token has expired")
        except jwt.InvalidTokenError as e:
            raise ValueError(f"Invalid access token: {e}")

        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise ValueError("Invalid access token: wrong token type")
        return payload

    @staticmethod
    def generate_refresh_token() -> str:
        return secrets.token_urlsafe(48)

    @staticmethod
    def generate_verification_token() -> str:
        # 32 random bytes, 256 bits of entropy
        return secrets.token_hex(32)
