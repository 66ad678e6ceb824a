"""PostgreSQL-backed refresh token store."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.database import affected_rows, get_pool
from src.models.user import RefreshToken
from src.services.token_codec import hash_token

logger = structlog.get_logger(__name__)


def _row_to_token(row) -> RefreshToken:
    return RefreshToken(
        id=row["id"],
        user_id=row["user_id"],
        token_hash=row["token_hash"],
        expires_at=row["expires_at"],
        revoked_at=row["revoked_at"],
        created_at=row["created_at"],
    )


class RefreshTokenStore:
    """Persists rotatable, revocable refresh tokens.

    Raw tokens never reach the database; rows are keyed by the SHA-256
    digest of the token.
    """

    async def create(
        self, user_id: UUID, token: str, expires_at: datetime
    ) -> RefreshToken:
        """Store a newly issued refresh token.

        Args:
            user_id: Owner of the token
            token: Raw refresh token as handed to the client
            expires_at: Absolute expiry time

        Returns:
            The stored RefreshToken record
        """
        token_id = uuid4()
        now = datetime.now(timezone.utc)
        token_hash = hash_token(token)

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO refresh_tokens (id, user_id, token_hash, expires_at, created_at)
                VALUES ($1, $2, $3, $4, $5)
                """,
                token_id,
                user_id,
                token_hash,
                expires_at,
                now,
            )

        logger.info(
            "refresh_token_created",
            user_id=str(user_id),
            token_id=str(token_id),
            expires_at=expires_at.isoformat(),
        )

        return RefreshToken(
            id=token_id,
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            created_at=now,
        )

    async def find(self, token: str) -> Optional[RefreshToken]:
        """Look up a refresh token by its raw value.

        Returns:
            The stored record (revoked or not), or None if unknown
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, user_id, token_hash, expires_at, revoked_at, created_at
                FROM refresh_tokens
                WHERE token_hash = $1
                """,
                hash_token(token),
            )

        if row is None:
            return None
        return _row_to_token(row)

    async def revoke(self, token_id: UUID) -> bool:
        """Revoke a token if it is not already revoked.

        The conditional update serializes concurrent rotations of the same
        token: only one caller sees True.

        Args:
            token_id: Id of the refresh token record

        Returns:
            True if this call revoked the token, False if it was already revoked
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE refresh_tokens
                SET revoked_at = $1
                WHERE id = $2 AND revoked_at IS NULL
                """,
                datetime.now(timezone.utc),
                token_id,
            )

        revoked = affected_rows(result) == 1
        if revoked:
            logger.info("refresh_token_revoked", token_id=str(token_id))
        return revoked

    async def revoke_all_for_user(self, user_id: UUID) -> int:
        """Revoke every outstanding refresh token of a user.

        Returns:
            Number of tokens revoked
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE refresh_tokens
                SET revoked_at = $1
                WHERE user_id = $2 AND revoked_at IS NULL
                """,
                datetime.now(timezone.utc),
                user_id,
            )

        count = affected_rows(result)
        logger.info("all_refresh_tokens_revoked", user_id=str(user_id), count=count)
        return count

    async def delete_expired(self) -> int:
        """Delete rows past their expiry. Storage hygiene only."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM refresh_tokens WHERE expires_at <= $1",
                datetime.now(timezone.utc),
            )

        return affected_rows(result)
