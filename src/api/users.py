"""User management API endpoints with role-based access control."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from src.api.dependencies import (
    get_auth_service,
    get_current_user,
    get_password_hasher,
    get_user_service,
    require_admin,
)
from src.models.auth import (
    CreateUserRequest,
    UpdateProfileRequest,
    UpdateUserRequest,
    UserSummary,
)
from src.models.user import User
from src.services.auth_errors import EmailAlreadyExists, UserNotFound
from src.services.auth_service import AuthService
from src.services.password_hasher import PasswordHasher
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
    password_hasher: PasswordHasher = Depends(get_password_hasher),
) -> UserSummary:
    """Create a new user (admin only).

    Raises:
        EmailAlreadyExists: If the email is taken (400)
    """
    if await user_service.get_by_email(request.email) is not None:
        raise EmailAlreadyExists()

    user = await user_service.create_user(
        name=request.name,
        email=request.email,
        password_hash=password_hasher.hash_password(request.password),
        role=request.role,
        email_verified=request.email_verified,
    )

    logger.info(
        "admin_created_user",
        admin_id=str(admin.id),
        new_user_id=str(user.id),
        role=user.role.value,
    )

    return UserSummary.from_user(user)


@router.get("")
async def list_users(
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
) -> list[UserSummary]:
    """List all users ordered by creation date (admin only)."""
    users = await user_service.list_users()
    return [UserSummary.from_user(u) for u in users]


# /me routes must be registered before /{user_id}


@router.get("/me")
async def get_my_profile(
    current_user: User = Depends(get_current_user),
) -> UserSummary:
    """Get the caller's own profile."""
    return UserSummary.from_user(current_user)


@router.put("/me")
async def update_my_profile(
    request: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserSummary:
    """Update the caller's own name, email or password.

    Role and verification state cannot be changed here. A new email must be
    verified again; a new password signs out all sessions.
    """
    updated = await auth_service.update_profile(
        current_user,
        name=request.name,
        email=request.email,
        password=request.password,
    )
    return UserSummary.from_user(updated)


@router.get("/{user_id}")
async def get_user(
    user_id: UUID,
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
) -> UserSummary:
    """Get any user by id (admin only)."""
    user = await user_service.get_by_id(user_id)

    if user is None:
        raise UserNotFound()

    return UserSummary.from_user(user)


@router.put("/{user_id}")
async def update_user(
    user_id: UUID,
    request: UpdateUserRequest,
    admin: User = Depends(require_admin),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserSummary:
    """Update any user, including role and verification state (admin only).

    Raises:
        UserNotFound: If the user does not exist (404)
    """
    updated = await auth_service.admin_update_user(
        user_id,
        name=request.name,
        email=request.email,
        password=request.password,
        role=request.role,
        email_verified=request.email_verified,
    )

    logger.info(
        "admin_updated_user",
        admin_id=str(admin.id),
        target_user_id=str(user_id),
    )

    return UserSummary.from_user(updated)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
) -> None:
    """Delete a user (admin only).

    Admins cannot delete themselves to prevent lockout.

    Raises:
        HTTPException 403: If admin tries to delete themselves
        UserNotFound: If the user does not exist (404)
    """
    if admin.id == user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot delete your own admin account",
        )

    deleted = await user_service.delete_user(user_id)

    if not deleted:
        raise UserNotFound()

    logger.info(
        "admin_deleted_user",
        admin_id=str(admin.id),
        deleted_user_id=str(user_id),
    )
