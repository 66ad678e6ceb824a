"""Auth request and response models with validation."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from src.models.user import User, UserRole

# bcrypt only accepts up to 72 bytes of input
PASSWORD_MAX_BYTES = 72


def check_password(v: str) -> str:
    """Reject blank passwords and ones too long for bcrypt once UTF-8 encoded."""
    if not v.strip():
        raise ValueError("Password cannot be empty or whitespace only")
    if len(v.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password cannot be longer than {PASSWORD_MAX_BYTES} bytes")
    return v


class RegisterRequest(BaseModel):
    """Self-service registration.

    Attributes:
        name: Display name (1-256 chars)
        email: Email address, used as the login identifier
        password: Password (at least 6 chars, at most 72 bytes as UTF-8)
    """

    name: str = Field(..., min_length=1, max_length=256)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)

    @field_validator("password")
    @classmethod
    def password_is_usable(cls, v: str) -> str:
        return check_password(v)


class LoginRequest(BaseModel):
    """Login credentials."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        if len(v.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise ValueError(f"Password cannot be longer than {PASSWORD_MAX_BYTES} bytes")
        return v


class SetupRequest(BaseModel):
    """Initial admin account setup request."""

    name: str = Field(..., min_length=1, max_length=256)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)

    @field_validator("password")
    @classmethod
    def password_is_usable(cls, v: str) -> str:
        return check_password(v)


class RefreshRequest(BaseModel):
    """Request carrying a refresh token (refresh and logout)."""

    refresh_token: str = Field(..., min_length=1)


class EmailRequest(BaseModel):
    """Request naming an account by email (resend verification, forgot password)."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """New password for a password reset link."""

    new_password: str = Field(..., min_length=6, max_length=72)

    @field_validator("new_password")
    @classmethod
    def password_is_usable(cls, v: str) -> str:
        return check_password(v)


class CreateUserRequest(BaseModel):
    """Admin request to create a new user."""

    name: str = Field(..., min_length=1, max_length=256)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    role: UserRole = UserRole.USER
    email_verified: bool = False

    @field_validator("password")
    @classmethod
    def password_is_usable(cls, v: str) -> str:
        return check_password(v)


class UpdateProfileRequest(BaseModel):
    """Request to update the caller's own account.

    All fields are optional; only provided fields are updated.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=256)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=6, max_length=72)

    @field_validator("password")
    @classmethod
    def password_is_usable(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else check_password(v)


class UpdateUserRequest(UpdateProfileRequest):
    """Admin request to update any user, including role and verification state."""

    role: Optional[UserRole] = None
    email_verified: Optional[bool] = None


class UserSummary(BaseModel):
    """Public projection of a user. Never includes the password hash."""

    id: UUID
    name: str
    email: str
    role: UserRole
    email_verified: bool

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            email_verified=user.email_verified,
        )


class TokenPair(BaseModel):
    """Freshly issued access/refresh pair.

    Attributes:
        access_token: Short-lived JWT for API access
        refresh_token: Opaque single-use token for obtaining a new pair
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")


class AuthResponse(TokenPair):
    """Token pair plus the authenticated user."""

    user: UserSummary


class RegisterResponse(BaseModel):
    """Registration acknowledgment. Tokens are only issued after verification."""

    message: str
    requires_verification: bool = True


class MessageResponse(BaseModel):
    """Neutral acknowledgment."""

    message: str
