"""Models package exports."""

from src.models.auth import (
    AuthResponse,
    MessageResponse,
    RegisterResponse,
    TokenPair,
    UserSummary,
)
from src.models.email import EmailJob, EmailTemplate
from src.models.user import (
    OAuthAccount,
    RefreshToken,
    TokenType,
    User,
    UserRole,
    VerificationToken,
)

__all__ = [
    "AuthResponse",
    "EmailJob",
    "EmailTemplate",
    "MessageResponse",
    "OAuthAccount",
    "RefreshToken",
    "RegisterResponse",
    "TokenPair",
    "TokenType",
    "User",
    "UserRole",
    "UserSummary",
    "VerificationToken",
]
