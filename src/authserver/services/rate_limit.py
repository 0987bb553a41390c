"""Rate limiting service using store-resident fixed windows.

Each (identifier, action) pair owns exactly one window row, unique in the
store. A check either restarts an elapsed window, increments the live one,
or rejects. Counting happens in the database so limits hold across
workers and processes.
"""

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from sqlalchemy import case, delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import settings
from authserver.models import RateWindow, ensure_utc, generate_nanoid
from authserver.services.outcomes import Rejected, RejectReason

logger = logging.getLogger(__name__)

# Windows older than this are garbage collected by the hourly sweep
RATE_WINDOW_RETENTION = timedelta(hours=24)

# Dialect-specific INSERT constructs that support ON CONFLICT DO UPDATE
UPSERT_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


class ActionType(str, Enum):
    """Rate-limited action categories."""

    LOGIN = "LOGIN"
    SMS_OTP = "SMS_OTP"
    API_REQUEST = "API_REQUEST"


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for a rate-limited action."""

    max_attempts: int
    window_minutes: int


# Actions without explicit configuration
DEFAULT_RATE_LIMIT = RateLimitConfig(max_attempts=100, window_minutes=1)


def default_rate_limit_config() -> dict[str, RateLimitConfig]:
    """Build the per-action configuration from settings."""
    return {
        ActionType.LOGIN.value: RateLimitConfig(
            max_attempts=settings.rate_limit_login_attempts,
            window_minutes=settings.rate_limit_login_window_minutes,
        ),
        ActionType.SMS_OTP.value: RateLimitConfig(
            max_attempts=settings.rate_limit_sms_attempts,
            window_minutes=settings.rate_limit_sms_window_minutes,
        ),
        ActionType.API_REQUEST.value: RateLimitConfig(
            max_attempts=settings.rate_limit_api_requests,
            window_minutes=settings.rate_limit_api_window_minutes,
        ),
    }


def action_key(action: str) -> str:
    """Plain string key for an action (``ActionType`` members included)."""
    return action.value if isinstance(action, ActionType) else action


@dataclass(frozen=True)
class Allowed:
    """Result of a check that let the attempt through."""

    attempts: int
    remaining: int


class RateLimiter:
    """Fixed-window attempt counter keyed by (identifier, action).

    Does not commit; the caller's transaction decides.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: dict[str, RateLimitConfig] | None = None,
    ) -> None:
        self.session = session
        self.config = config if config is not None else default_rate_limit_config()

    def config_for(self, action: str) -> RateLimitConfig:
        return self.config.get(action_key(action), DEFAULT_RATE_LIMIT)

    def _reject(self, identifier: str, action: str, window_start: datetime, now: datetime) -> Rejected:
        config = self.config_for(action)
        window_end = ensure_utc(window_start) + timedelta(minutes=config.window_minutes)
        retry_after = max(1, math.ceil((window_end - now).total_seconds() / 60))
        logger.warning(f"Rate limit exceeded for identifier: {identifier}, action: {action}")
        return Rejected(
            RejectReason.RATE_LIMITED,
            message=f"Too many attempts. Please try again after {retry_after} minutes.",
            retry_after_minutes=retry_after,
        )

    async def check(self, identifier: str, action: str) -> Allowed | Rejected:
        """Count an attempt, or reject it if the live window is full.

        One upsert on the (identifier, action) row does the whole decision,
        so concurrent first attempts share a single window: an elapsed
        window restarts at 1, a live one is incremented. A full window
        saturates at ``max_attempts + 1``.

        Args:
            identifier: IP address or account identifier
            action: Action type (see ``ActionType``)

        Returns:
            Allowed with the new count, or Rejected with a retry-after hint
        """
        action = action_key(action)
        config = self.config_for(action)
        now = datetime.now(UTC)
        since = now - timedelta(minutes=config.window_minutes)

        insert = UPSERT_INSERTS[self.session.get_bind().dialect.name]
        stmt = insert(RateWindow).values(
            id=generate_nanoid(),
            identifier=identifier,
            action_type=action,
            attempt_count=1,
            window_start=now,
        )
        elapsed = RateWindow.window_start <= since
        stmt = stmt.on_conflict_do_update(
            index_elements=["identifier", "action_type"],
            set_={
                "attempt_count": case(
                    (elapsed, stmt.excluded.attempt_count),
                    (RateWindow.attempt_count <= config.max_attempts, RateWindow.attempt_count + 1),
                    else_=RateWindow.attempt_count,
                ),
                "window_start": case(
                    (elapsed, stmt.excluded.window_start),
                    else_=RateWindow.window_start,
                ),
            },
        ).returning(RateWindow.attempt_count, RateWindow.window_start)

        result = await self.session.execute(stmt)
        count, window_start = result.one()
        if count > config.max_attempts:
            return self._reject(identifier, action, window_start, now)

        return Allowed(attempts=count, remaining=config.max_attempts - count)

    async def reset(self, identifier: str, action: str) -> None:
        """Delete the live window so earlier failures stop counting."""
        since = datetime.now(UTC) - RATE_WINDOW_RETENTION
        await self.session.execute(
            delete(RateWindow)
            .where(RateWindow.identifier == identifier)
            .where(RateWindow.action_type == action_key(action))
            .where(RateWindow.window_start > since)
            .execution_options(synchronize_session=False)
        )

    async def sweep(self, now: datetime | None = None) -> int:
        """Delete windows older than the retention period.

        Returns:
            Number of windows removed
        """
        cutoff = (now or datetime.now(UTC)) - RATE_WINDOW_RETENTION
        result = await self.session.execute(
            delete(RateWindow)
            .where(RateWindow.window_start < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
