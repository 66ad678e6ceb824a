"""User and token record models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class UserRole(str, Enum):
    """Roles used for access control."""

    USER = "user"
    ADMIN = "admin"


class TokenType(str, Enum):
    """Kinds of single-use verification tokens."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class User(BaseModel):
    """A registered user. The password hash is never part of this model."""

    id: UUID
    name: str
    email: str
    role: UserRole = UserRole.USER
    email_verified: bool = False
    created_at: datetime
    updated_at: datetime


class RefreshToken(BaseModel):
    """A stored refresh token for JWT rotation."""

    id: UUID
    user_id: UUID
    token_hash: str
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    created_at: datetime

    @property
    def revoked(self) -> bool:
        return self.revoked_at is not None


class VerificationToken(BaseModel):
    """A single-use email verification or password reset token."""

    id: UUID
    user_id: UUID
    token_hash: str
    type: TokenType
    expires_at: datetime
    used: bool = False
    created_at: datetime


class OAuthAccount(BaseModel):
    """Link between an external identity provider account and a user."""

    id: UUID
    provider: str
    provider_id: str
    user_id: UUID
    created_at: datetime
