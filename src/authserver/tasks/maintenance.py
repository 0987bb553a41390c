"""Maintenance background tasks that garbage collect expired rows."""

import logging
from typing import Any

from authserver.database import get_session_context
from authserver.services.rate_limit import RateLimiter
from authserver.services.token_vault import TokenVault

logger = logging.getLogger(__name__)


async def sweep_expired_tokens(_ctx: dict[str, Any] | None = None) -> dict[str, Any]:
    """Delete verification tokens past their expiry, used or not.

    Args:
        _ctx: SAQ context

    Returns:
        Dict with cleanup results
    """
    async with get_session_context() as session:
        try:
            deleted = await TokenVault(session).sweep_expired()
            await session.commit()
        except Exception as e:
            await session.rollback()
            error = f"Expired token sweep failed: {e}"
            logger.exception(error)
            return {"success": False, "error": error}

    logger.info(f"Deleted {deleted} expired verification tokens")
    return {"success": True, "deleted": deleted}


async def sweep_rate_windows(_ctx: dict[str, Any] | None = None) -> dict[str, Any]:
    """Delete rate-limit windows older than the retention period.

    Args:
        _ctx: SAQ context

    Returns:
        Dict with cleanup results
    """
    async with get_session_context() as session:
        try:
            deleted = await RateLimiter(session).sweep()
            await session.commit()
        except Exception as e:
            await session.rollback()
            error = f"Rate window sweep failed: {e}"
            logger.exception(error)
            return {"success": False, "error": error}

    logger.info(f"Deleted {deleted} stale rate limit windows")
    return {"success": True, "deleted": deleted}
