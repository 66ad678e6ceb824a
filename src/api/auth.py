"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from src.api.dependencies import (
    get_auth_service,
    get_current_user,
    get_password_hasher,
    get_user_service,
    rate_limit,
)
from src.models.auth import (
    AuthResponse,
    EmailRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    SetupRequest,
    UserSummary,
)
from src.models.user import User, UserRole
from src.services.auth_service import AuthService
from src.services.password_hasher import PasswordHasher
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/status")
async def auth_status(
    user_service: UserService = Depends(get_user_service),
) -> dict:
    """Check if first-run setup is needed.

    Returns whether any users exist. Used by the frontend to decide
    whether to show the setup page or the login page.
    """
    count = await user_service.count_users()
    return {"setup_required": count == 0}


@router.post("/setup", status_code=status.HTTP_201_CREATED)
async def setup(
    request: SetupRequest,
    user_service: UserService = Depends(get_user_service),
    password_hasher: PasswordHasher = Depends(get_password_hasher),
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """First-run admin account setup.

    Creates the initial admin account, already verified. Only works when
    no users exist.

    Raises:
        HTTPException 409: If users already exist
    """
    count = await user_service.count_users()

    if count > 0:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Setup already completed. Users already exist.",
        )

    user = await user_service.create_user(
        name=request.name,
        email=request.email,
        password_hash=password_hasher.hash_password(request.password),
        role=UserRole.ADMIN,
        email_verified=True,
    )

    logger.info("admin_setup_completed", user_id=str(user.id))
    pair = await auth_service.issue_tokens(user)
    return AuthResponse(**pair.model_dump(), user=UserSummary.from_user(user))


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    """Register a new account. The email must be verified before login."""
    return await auth_service.register(request.name, request.email, request.password)


@router.post("/login", dependencies=[Depends(rate_limit("login"))])
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Login with email and password.

    Raises:
        InvalidCredentials: Unknown email or wrong password (401)
        EmailNotVerified: Email address not yet verified (401)
    """
    return await auth_service.login(request.email, request.password)


@router.post("/refresh")
async def refresh(
    request: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Exchange a refresh token for a new token pair.

    Performs rotation: the presented refresh token is revoked and can
    never be used again.
    """
    return await auth_service.refresh(request.refresh_token)


@router.post("/logout")
async def logout(
    request: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke a refresh token. Always succeeds."""
    return await auth_service.logout(request.refresh_token)


@router.get("/verify-email/{token}")
async def verify_email(
    token: str,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Confirm an email address from the link sent at registration."""
    return await auth_service.verify_email(token)


@router.post(
    "/resend-verification",
    dependencies=[Depends(rate_limit("resend_verification"))],
)
async def resend_verification(
    request: EmailRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Send a fresh verification link, invalidating earlier ones."""
    return await auth_service.resend_verification_email(request.email)


@router.post(
    "/forgot-password",
    dependencies=[Depends(rate_limit("forgot_password"))],
)
async def forgot_password(
    request: EmailRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Request a password reset link.

    The response is the same whether or not the email belongs to an account.
    """
    return await auth_service.forgot_password(request.email)


@router.post("/reset-password/{token}")
async def reset_password(
    token: str,
    request: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a new password from a reset link. Signs out every session."""
    return await auth_service.reset_password(token, request.new_password)


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)) -> UserSummary:
    """Get current authenticated user info."""
    return UserSummary.from_user(current_user)
