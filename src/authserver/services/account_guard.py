"""Failed-attempt bookkeeping and account lockout."""

import logging
from datetime import UTC, datetime

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import settings
from authserver.models import Account

logger = logging.getLogger(__name__)


class AccountGuard:
    """Tracks failed password attempts and locks accounts.

    Both operations are single conditional UPDATEs, so concurrent failures
    on one account are all counted. Does not commit.
    """

    def __init__(self, session: AsyncSession, threshold: int | None = None) -> None:
        self.session = session
        self.threshold = threshold or settings.lockout_threshold

    async def record_failure(self, account: Account) -> int:
        """Count a failed password attempt, locking at the threshold.

        The counter stops at the threshold. The lock is never cleared here;
        only a password reset (or an administrator) unlocks.

        Returns:
            The failure count after this attempt
        """
        stmt = (
            update(Account)
            .where(Account.id == account.id)
            .values(
                failed_attempts=case(
                    (Account.failed_attempts < self.threshold, Account.failed_attempts + 1),
                    else_=Account.failed_attempts,
                ),
                locked=case(
                    (Account.failed_attempts + 1 >= self.threshold, True),
                    else_=Account.locked,
                ),
            )
            .returning(Account.failed_attempts, Account.locked)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        failed_attempts, locked = result.one()

        if locked and not account.locked:
            logger.warning(
                f"Account locked due to too many failed login attempts: {account.identifier}"
            )
        await self.session.refresh(account)
        return failed_attempts

    async def record_success(self, account: Account) -> None:
        """Reset the failure counter and stamp the login time.

        Leaves ``locked`` untouched: a correct password never unlocks.
        """
        await self.session.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(failed_attempts=0, last_login_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(account)
