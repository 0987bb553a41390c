"""Phone verification by SMS one-time code."""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import settings
from authserver.models import Account, TokenKind
from authserver.services.accounts import (
    InvalidIdentifierError,
    get_account_by_phone,
    mark_phone_verified,
    normalize_phone,
)
from authserver.services.notifications import deliver
from authserver.services.outcomes import Rejected, RejectReason, Sent
from authserver.services.rate_limit import ActionType, RateLimitConfig, RateLimiter
from authserver.services.sms import SmsService, sms_service
from authserver.services.token_vault import TokenVault

logger = logging.getLogger(__name__)


class OtpFlow:
    """Sends and checks phone one-time codes."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        sms: SmsService = sms_service,
        rate_limit_config: dict[str, RateLimitConfig] | None = None,
    ) -> None:
        self.session = session
        self.sms = sms
        self.vault = TokenVault(session)
        self.limiter = RateLimiter(session, rate_limit_config)

    async def _account_for(self, phone: str) -> Account | Rejected:
        try:
            phone = normalize_phone(phone)
        except InvalidIdentifierError as e:
            return Rejected(RejectReason.INVALID_INPUT, message=str(e))
        account = await get_account_by_phone(self.session, phone)
        if account is None:
            return Rejected(RejectReason.ACCOUNT_NOT_FOUND)
        return account

    async def send_otp(self, phone: str, *, client_ip: str) -> Sent | Rejected:
        """Issue a code to an unverified phone, rate limited per client."""
        allowed = await self.limiter.check(client_ip, ActionType.SMS_OTP)
        if isinstance(allowed, Rejected):
            await self.session.commit()
            return allowed

        account = await self._account_for(phone)
        if isinstance(account, Rejected):
            # Keep the counted attempt
            await self.session.commit()
            return account
        if account.phone_verified:
            await self.session.commit()
            return Rejected(RejectReason.ALREADY_VERIFIED, message="Phone number already verified")

        ttl = timedelta(minutes=settings.phone_otp_expiration_minutes)
        code = await self.vault.issue(account, TokenKind.PHONE_OTP, ttl)
        await self.session.commit()
        logger.info(f"OTP sent to: {account.phone}")

        warning = await deliver(
            self.sms.send_otp(account.phone, code),
            channel="SMS",
            destination=account.phone,
        )
        return Sent(delivery_warning=warning)

    async def verify_otp(self, phone: str, code: str) -> Account | Rejected:
        """Consume a code and mark the phone verified.

        The code must belong to the account that owns ``phone``; a code
        issued to someone else is refused and stays unused.
        """
        account = await self._account_for(phone)
        if isinstance(account, Rejected):
            return account

        owner = await self.vault.consume(code.strip(), TokenKind.PHONE_OTP, account_id=account.id)
        if isinstance(owner, Rejected):
            await self.session.rollback()
            if owner.reason == RejectReason.INVALID_CODE:
                return Rejected(RejectReason.INVALID_CODE, message="Invalid OTP")
            return owner

        await mark_phone_verified(self.session, account)
        await self.session.commit()
        logger.info(f"Phone verified for user: {account.phone}")
        return account
