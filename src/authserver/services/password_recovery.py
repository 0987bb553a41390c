"""Forgot-password and reset-password."""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import settings
from authserver.models import Account, TokenKind
from authserver.services.accounts import email_lookup_key, get_account_by_email, set_password
from authserver.services.email import EmailService, email_service
from authserver.services.notifications import deliver
from authserver.services.outcomes import Rejected, RejectReason, Sent
from authserver.services.passwords import Hasher, hasher
from authserver.services.registration import check_password
from authserver.services.token_vault import TokenVault

logger = logging.getLogger(__name__)


class PasswordRecoveryFlow:
    """Emails reset links and applies password resets.

    A successful reset also clears the lockout, which is the only
    self-service way out of a locked account.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        hasher: Hasher = hasher,
        email: EmailService = email_service,
    ) -> None:
        self.session = session
        self.hasher = hasher
        self.email = email
        self.vault = TokenVault(session)

    async def forgot_password(self, email: str) -> Sent | Rejected:
        account = await get_account_by_email(self.session, email_lookup_key(email))
        if account is None:
            return Rejected(RejectReason.ACCOUNT_NOT_FOUND)

        ttl = timedelta(hours=settings.password_reset_expiration_hours)
        token = await self.vault.issue(account, TokenKind.PASSWORD_RESET, ttl)
        await self.session.commit()
        logger.info(f"Password reset requested for: {account.email}")

        warning = await deliver(
            self.email.send_password_reset_email(account.email, token),
            channel="email",
            destination=account.email,
        )
        return Sent(delivery_warning=warning)

    async def reset_password(self, token: str, new_password: str) -> Account | Rejected:
        if rejected := check_password(new_password):
            return rejected

        account = await self.vault.consume(token, TokenKind.PASSWORD_RESET)
        if isinstance(account, Rejected):
            await self.session.rollback()
            return account

        await set_password(self.session, account, self.hasher.hash(new_password))
        await self.session.commit()
        logger.info(f"Password reset successful for user: {account.identifier}")
        return account
