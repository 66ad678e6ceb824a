"""Periodic storage hygiene for expired tokens.

Expiry is always checked at use time, so this sweep only reclaims space.
"""

import asyncio

import structlog

from src.services.refresh_token_store import RefreshTokenStore
from src.services.verification_token_store import VerificationTokenStore

logger = structlog.get_logger(__name__)


async def purge_expired_tokens(
    refresh_tokens: RefreshTokenStore,
    verification_tokens: VerificationTokenStore,
) -> tuple[int, int]:
    """Delete expired refresh and verification tokens.

    Returns:
        Tuple of (refresh_tokens_deleted, verification_tokens_deleted)
    """
    refresh_deleted = await refresh_tokens.delete_expired()
    verification_deleted = await verification_tokens.delete_expired()

    if refresh_deleted or verification_deleted:
        logger.info(
            "expired_tokens_purged",
            refresh_tokens=refresh_deleted,
            verification_tokens=verification_deleted,
        )

    return refresh_deleted, verification_deleted


async def token_cleanup_loop(
    interval_seconds: int,
    refresh_tokens: RefreshTokenStore,
    verification_tokens: VerificationTokenStore,
) -> None:
    """Run purge_expired_tokens every interval until cancelled."""
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            await purge_expired_tokens(refresh_tokens, verification_tokens)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning("token_cleanup_cycle_error", error=str(e))
