"""TOTP second factor: provisioning, activation and code checks."""

import logging
import re
from dataclasses import dataclass

import pyotp
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import settings
from authserver.models import Account
from authserver.services.outcomes import Rejected, RejectReason

logger = logging.getLogger(__name__)

TOTP_DIGITS = 6
TOTP_INTERVAL = 30
# Accept one step either side of the current one
TOTP_VALID_WINDOW = 1

CODE_PATTERN = re.compile(rf"[0-9]{{{TOTP_DIGITS}}}")


def verify_code(secret: str | None, code: str | None) -> bool:
    """Check a TOTP code against a shared secret.

    Pure function. Malformed input (missing, non-numeric, wrong length)
    returns False instead of raising.
    """
    if not secret or not code:
        return False
    code = code.strip()
    if not CODE_PATTERN.fullmatch(code):
        return False
    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
    return totp.verify(code, valid_window=TOTP_VALID_WINDOW)


@dataclass(frozen=True)
class TwoFactorSetup:
    """Data an authenticator app needs to enroll a secret."""

    secret: str
    provisioning_uri: str
    manual_entry_key: str


class SecondFactor:
    """Enrolls, activates and removes an account's TOTP secret.

    Each method is a complete operation and commits its own transaction.
    """

    def __init__(self, session: AsyncSession, issuer: str | None = None) -> None:
        self.session = session
        self.issuer = issuer or settings.totp_issuer

    def provisioning_uri(self, account: Account, secret: str) -> str:
        totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
        return totp.provisioning_uri(name=account.identifier, issuer_name=self.issuer)

    async def begin_setup(self, account: Account) -> TwoFactorSetup | Rejected:
        """Store a fresh, not yet active secret.

        Calling this again before activation replaces the pending secret.
        """
        if account.two_factor_enabled:
            return Rejected(RejectReason.ALREADY_ENABLED)

        secret = pyotp.random_base32()
        result = await self.session.execute(
            update(Account)
            .where(Account.id == account.id)
            .where(Account.two_factor_enabled.is_(False))  # type: ignore[attr-defined]
            .values(two_factor_secret=secret)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            return Rejected(RejectReason.ALREADY_ENABLED)

        await self.session.commit()
        await self.session.refresh(account)
        logger.info(f"Two-factor setup started for account {account.id}")

        return TwoFactorSetup(
            secret=secret,
            provisioning_uri=self.provisioning_uri(account, secret),
            manual_entry_key=secret,
        )

    async def activate(self, account: Account, code: str) -> Account | Rejected:
        """Enable the pending secret once the user proves they hold it."""
        secret = account.two_factor_secret
        if not secret:
            return Rejected(RejectReason.NOT_SET_UP)
        if not verify_code(secret, code):
            return Rejected(RejectReason.INVALID_CODE)

        # The secret must still be the one the code was checked against
        result = await self.session.execute(
            update(Account)
            .where(Account.id == account.id)
            .where(Account.two_factor_secret == secret)
            .values(two_factor_enabled=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            return Rejected(RejectReason.NOT_SET_UP)

        await self.session.commit()
        await self.session.refresh(account)
        logger.info(f"Two-factor authentication enabled for account {account.id}")
        return account

    async def deactivate(self, account: Account, code: str) -> Account | Rejected:
        """Disable the second factor and discard the secret."""
        if not account.two_factor_enabled:
            return Rejected(RejectReason.NOT_ENABLED)
        secret = account.two_factor_secret
        if not verify_code(secret, code):
            return Rejected(RejectReason.INVALID_CODE)

        result = await self.session.execute(
            update(Account)
            .where(Account.id == account.id)
            .where(Account.two_factor_enabled.is_(True))  # type: ignore[attr-defined]
            .where(Account.two_factor_secret == secret)
            .values(two_factor_enabled=False, two_factor_secret=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            return Rejected(RejectReason.NOT_ENABLED)

        await self.session.commit()
        await self.session.refresh(account)
        logger.info(f"Two-factor authentication disabled for account {account.id}")
        return account
