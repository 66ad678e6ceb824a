"""User directory: CRUD on user records."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import asyncpg
import structlog

from src.database import get_pool
from src.models.user import User, UserRole
from src.services.auth_errors import EmailAlreadyExists

logger = structlog.get_logger(__name__)

_USER_COLUMNS = "id, name, email, role, email_verified, created_at, updated_at"


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        role=row["role"],
        email_verified=row["email_verified"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserService:
    """Service for user CRUD operations.

    Passwords arrive here already hashed; this layer never sees plaintext.
    """

    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: str,
        role: UserRole = UserRole.USER,
        email_verified: bool = False,
    ) -> User:
        """Create a new user.

        Args:
            name: Display name
            email: Unique email address (stored as given)
            password_hash: Bcrypt hash, or "" for provider-only accounts
            role: Access control role
            email_verified: Whether the email address is already proven

        Returns:
            Created User model

        Raises:
            EmailAlreadyExists: If the email is already taken
        """
        user_id = uuid4()
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO users (id, name, email, password_hash, role, email_verified, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    """,
                    user_id,
                    name,
                    email,
                    password_hash,
                    role.value,
                    email_verified,
                    now,
                    now,
                )
        except asyncpg.UniqueViolationError:
            raise EmailAlreadyExists()

        logger.info(
            "user_created",
            user_id=str(user_id),
            role=role.value,
            email_verified=email_verified,
        )

        return User(
            id=user_id,
            name=name,
            email=email,
            role=role,
            email_verified=email_verified,
            created_at=now,
            updated_at=now,
        )

    async def get_by_email(self, email: str) -> Optional[tuple[User, str]]:
        """Get a user by exact email.

        Args:
            email: Email address to look up

        Returns:
            Tuple of (User, password_hash) or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_USER_COLUMNS}, password_hash
                FROM users
                WHERE email = $1
                """,
                email,
            )

        if row is None:
            return None

        return _row_to_user(row), row["password_hash"]

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Get a user by UUID.

        Returns:
            User model or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        if row is None:
            return None

        return _row_to_user(row)

    async def list_users(self) -> list[User]:
        """Return all users ordered by creation date."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_USER_COLUMNS} FROM users ORDER BY created_at ASC"
            )

        return [_row_to_user(row) for row in rows]

    async def update_password(self, user_id: UUID, password_hash: str) -> Optional[User]:
        """Replace a user's password hash.

        Returns:
            Updated User model, or None if user not found
        """
        return await self.update_user(user_id, password_hash=password_hash)

    async def mark_email_verified(self, user_id: UUID) -> Optional[User]:
        """Flag a user's email address as verified.

        Returns:
            Updated User model, or None if user not found
        """
        return await self.update_user(user_id, email_verified=True)

    async def update_user(
        self,
        user_id: UUID,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        role: Optional[UserRole] = None,
        email_verified: Optional[bool] = None,
    ) -> Optional[User]:
        """Update user fields that are not None.

        Args:
            user_id: UUID of the user to update
            name: New display name (if provided)
            email: New email address (if provided)
            password_hash: New bcrypt hash (if provided)
            role: New role (if provided)
            email_verified: New verification state (if provided)

        Returns:
            Updated User model, or None if user not found
        """
        # Build SET clause dynamically for non-None fields
        set_clauses = []
        params = []
        param_idx = 1

        for column, value in (
            ("name", name),
            ("email", email),
            ("password_hash", password_hash),
            ("role", role.value if role is not None else None),
            ("email_verified", email_verified),
        ):
            if value is None:
                continue
            set_clauses.append(f"{column} = ${param_idx}")
            params.append(value)
            param_idx += 1

        if not set_clauses:
            return await self.get_by_id(user_id)

        now = datetime.now(timezone.utc)
        set_clauses.append(f"updated_at = ${param_idx}")
        params.append(now)
        param_idx += 1

        params.append(user_id)

        query = f"""
            UPDATE users
            SET {', '.join(set_clauses)}
            WHERE id = ${param_idx}
            RETURNING {_USER_COLUMNS}
        """

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(query, *params)
        except asyncpg.UniqueViolationError:
            raise EmailAlreadyExists()

        if row is None:
            return None

        logger.info(
            "user_updated",
            user_id=str(user_id),
            fields_updated=[c.split(" = ")[0] for c in set_clauses if "updated_at" not in c],
        )

        return _row_to_user(row)

    async def delete_user(self, user_id: UUID) -> bool:
        """Hard-delete a user. Tokens and provider links cascade.

        Returns:
            True if the user was deleted, False if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM users WHERE id = $1",
                user_id,
            )

        deleted = result == "DELETE 1"

        if deleted:
            logger.info("user_deleted", user_id=str(user_id))
        else:
            logger.warning("user_delete_not_found", user_id=str(user_id))

        return deleted

    async def count_users(self) -> int:
        """Count total number of users."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            count = await conn.fetchval("SELECT COUNT(*) FROM users")

        return count
