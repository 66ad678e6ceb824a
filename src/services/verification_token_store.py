"""PostgreSQL-backed store for email verification and password reset tokens."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.database import affected_rows, get_pool
from src.models.user import TokenType, VerificationToken
from src.services.token_codec import hash_token

logger = structlog.get_logger(__name__)


class VerificationTokenStore:
    """Persists single-use, typed, expiring tokens tied to a user."""

    async def create(
        self,
        user_id: UUID,
        token: str,
        token_type: TokenType,
        expires_at: datetime,
    ) -> VerificationToken:
        """Store a new verification token.

        Args:
            user_id: Owner of the token
            token: Raw token as placed in the emailed link
            token_type: Action the token authorizes
            expires_at: Absolute expiry time

        Returns:
            The stored VerificationToken record
        """
        token_id = uuid4()
        now = datetime.now(timezone.utc)
        token_hash = hash_token(token)

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO verification_tokens (id, user_id, token_hash, type, expires_at, used, created_at)
                VALUES ($1, $2, $3, $4, $5, FALSE, $6)
                """,
                token_id,
                user_id,
                token_hash,
                token_type.value,
                expires_at,
                now,
            )

        logger.info(
            "verification_token_created",
            user_id=str(user_id),
            token_id=str(token_id),
            type=token_type.value,
        )

        return VerificationToken(
            id=token_id,
            user_id=user_id,
            token_hash=token_hash,
            type=token_type,
            expires_at=expires_at,
            used=False,
            created_at=now,
        )

    async def find_by_token(self, token: str) -> Optional[VerificationToken]:
        """Exact-match lookup by raw token value."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, user_id, token_hash, type, expires_at, used, created_at
                FROM verification_tokens
                WHERE token_hash = $1
                """,
                hash_token(token),
            )

        if row is None:
            return None

        return VerificationToken(
            id=row["id"],
            user_id=row["user_id"],
            token_hash=row["token_hash"],
            type=row["type"],
            expires_at=row["expires_at"],
            used=row["used"],
            created_at=row["created_at"],
        )

    async def mark_used(self, token_id: UUID) -> bool:
        """Mark a token as used. Irreversible.

        Returns:
            True if this call consumed the token, False if it was already used
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE verification_tokens
                SET used = TRUE
                WHERE id = $1 AND used = FALSE
                """,
                token_id,
            )

        return affected_rows(result) == 1

    async def delete_by_user_and_type(self, user_id: UUID, token_type: TokenType) -> int:
        """Delete all of a user's tokens of one type, invalidating old links."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                DELETE FROM verification_tokens
                WHERE user_id = $1 AND type = $2
                """,
                user_id,
                token_type.value,
            )

        count = affected_rows(result)
        if count:
            logger.info(
                "verification_tokens_deleted",
                user_id=str(user_id),
                type=token_type.value,
                count=count,
            )
        return count

    async def delete_expired(self) -> int:
        """Delete rows past their expiry. Storage hygiene only."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM verification_tokens WHERE expires_at <= $1",
                datetime.now(timezone.utc),
            )

        return affected_rows(result)
