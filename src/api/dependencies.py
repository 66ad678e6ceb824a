"""FastAPI dependencies for authentication, authorization and rate limiting."""

from typing import Callable
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config import get_settings
from src.models.user import User, UserRole
from src.services.auth_service import AuthService, build_auth_service
from src.services.email_queue import EmailQueue
from src.services.password_hasher import PasswordHasher
from src.services.redis_service import RedisService
from src.services.token_codec import TokenCodec
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_user_service() -> UserService:
    return UserService()


def get_password_hasher() -> PasswordHasher:
    return PasswordHasher()


def get_token_codec() -> TokenCodec:
    return TokenCodec(get_settings())


def get_email_queue(request: Request) -> EmailQueue:
    """Return the email queue started by the application lifespan."""
    return request.app.state.email_queue


def get_auth_service(
    email_queue: EmailQueue = Depends(get_email_queue),
) -> AuthService:
    return build_auth_service(email_queue, get_settings())


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    token_codec: TokenCodec = Depends(get_token_codec),
    user_service: UserService = Depends(get_user_service),
) -> User:
    """Extract and validate the current user from a JWT Bearer token.

    Args:
        credentials: Bearer token from Authorization header

    Returns:
        Authenticated User model

    Raises:
        HTTPException 401: If the token is missing, invalid, expired, or
            the user no longer exists
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    try:
        payload = token_codec.decode_access_token(credentials.credentials)
        user_id = UUID(payload["sub"])
    except (KeyError, ValueError):
        raise _unauthorized("Invalid or expired access token")

    user = await user_service.get_by_id(user_id)

    if user is None:
        raise _unauthorized("User not found")

    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


def require_role(*roles: UserRole) -> Callable:
    """Build a dependency that admits only users holding one of the roles."""

    async def _check_role(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.warning(
                "access_denied",
                user_id=str(current_user.id),
                role=current_user.role.value,
                required=[r.value for r in roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _check_role


require_admin = require_role(UserRole.ADMIN)


def rate_limit(action: str) -> Callable:
    """Build a dependency limiting an action per client IP.

    Args:
        action: Bucket name, e.g. "login"
    """

    async def _check_rate_limit(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        allowed, _ = await RedisService().check_rate_limit(f"{action}:{client_ip}")
        if not allowed:
            logger.warning("rate_limit_exceeded", action=action, client_ip=client_ip)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later.",
            )

    return _check_rate_limit
