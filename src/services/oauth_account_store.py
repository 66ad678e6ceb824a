"""PostgreSQL-backed links between identity provider accounts and users."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.database import get_pool
from src.models.user import OAuthAccount

logger = structlog.get_logger(__name__)


class OAuthAccountStore:
    """Finds and records provider account links."""

    async def find_by_provider(
        self, provider: str, provider_id: str
    ) -> Optional[OAuthAccount]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, provider, provider_id, user_id, created_at
                FROM oauth_accounts
                WHERE provider = $1 AND provider_id = $2
                """,
                provider,
                provider_id,
            )

        if row is None:
            return None

        return OAuthAccount(
            id=row["id"],
            provider=row["provider"],
            provider_id=row["provider_id"],
            user_id=row["user_id"],
            created_at=row["created_at"],
        )

    async def create(self, provider: str, provider_id: str, user_id: UUID) -> OAuthAccount:
        account_id = uuid4()
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO oauth_accounts (id, provider, provider_id, user_id, created_at)
                VALUES ($1, $2, $3, $4, $5)
                """,
                account_id,
                provider,
                provider_id,
                user_id,
                now,
            )

        logger.info(
            "oauth_account_linked",
            provider=provider,
            user_id=str(user_id),
        )

        return OAuthAccount(
            id=account_id,
            provider=provider,
            provider_id=provider_id,
            user_id=user_id,
            created_at=now,
        )
