"""Registration and email verification."""

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.config import settings
from authserver.models import Account, TokenKind
from authserver.services.accounts import (
    InvalidIdentifierError,
    create_account,
    email_lookup_key,
    get_account_by_email,
    get_account_by_phone,
    mark_email_verified,
    normalize_email,
    normalize_phone,
)
from authserver.services.email import EmailService, email_service
from authserver.services.notifications import deliver
from authserver.services.outcomes import Rejected, RejectReason, Sent
from authserver.services.passwords import Hasher, hasher
from authserver.services.token_vault import TokenVault

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registered:
    """A newly created account."""

    account: Account
    delivery_warning: str | None = None


def check_password(password: str) -> Rejected | None:
    """Reject passwords below the configured minimum length."""
    if len(password) < settings.password_min_length:
        return Rejected(
            RejectReason.INVALID_INPUT,
            message=f"Password must be at least {settings.password_min_length} characters",
        )
    return None


class RegistrationFlow:
    """Creates accounts and verifies their email addresses."""

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

    @property
    def verification_ttl(self) -> timedelta:
        return timedelta(hours=settings.email_verification_expiration_hours)

    async def _create(self, password: str, **identity: str) -> Account | Rejected:
        try:
            account = await create_account(
                self.session, password_hash=self.hasher.hash(password), **identity
            )
        except IntegrityError:
            # Lost a race against a concurrent registration of the same identity
            await self.session.rollback()
            return Rejected(RejectReason.ALREADY_REGISTERED)
        return account

    async def register_email(self, email: str, password: str) -> Registered | Rejected:
        """Create an email account and send it a verification link."""
        try:
            email = normalize_email(email)
        except InvalidIdentifierError as e:
            return Rejected(RejectReason.INVALID_INPUT, message=str(e))
        if rejected := check_password(password):
            return rejected

        if await get_account_by_email(self.session, email):
            return Rejected(RejectReason.ALREADY_REGISTERED, message="Email already registered")

        account = await self._create(password, email=email)
        if isinstance(account, Rejected):
            return Rejected(RejectReason.ALREADY_REGISTERED, message="Email already registered")

        token = await self.vault.issue(account, TokenKind.EMAIL_VERIFICATION, self.verification_ttl)
        await self.session.commit()
        logger.info(f"User registered with email: {email}")

        warning = await deliver(
            self.email.send_verification_email(email, token),
            channel="email",
            destination=email,
        )
        return Registered(account=account, delivery_warning=warning)

    async def register_phone(self, phone: str, password: str) -> Registered | Rejected:
        """Create a phone account; the code is requested separately via send-otp."""
        try:
            phone = normalize_phone(phone)
        except InvalidIdentifierError as e:
            return Rejected(RejectReason.INVALID_INPUT, message=str(e))
        if rejected := check_password(password):
            return rejected

        if await get_account_by_phone(self.session, phone):
            return Rejected(
                RejectReason.ALREADY_REGISTERED, message="Phone number already registered"
            )

        account = await self._create(password, phone=phone)
        if isinstance(account, Rejected):
            return Rejected(
                RejectReason.ALREADY_REGISTERED, message="Phone number already registered"
            )

        await self.session.commit()
        logger.info(f"User registered with phone: {phone}")
        return Registered(account=account)

    async def verify_email(self, token: str) -> Account | Rejected:
        """Consume a verification token and mark its owner's email verified."""
        account = await self.vault.consume(token, TokenKind.EMAIL_VERIFICATION)
        if isinstance(account, Rejected):
            await self.session.rollback()
            return account

        await mark_email_verified(self.session, account)
        await self.session.commit()
        logger.info(f"Email verified for user: {account.email}")
        return account

    async def resend_verification(self, email: str) -> Sent | Rejected:
        """Issue a fresh verification link, invalidating the previous one."""
        account = await get_account_by_email(self.session, email_lookup_key(email))
        if account is None:
            return Rejected(RejectReason.ACCOUNT_NOT_FOUND)
        if account.email_verified:
            return Rejected(RejectReason.ALREADY_VERIFIED, message="Email already verified")

        token = await self.vault.issue(account, TokenKind.EMAIL_VERIFICATION, self.verification_ttl)
        await self.session.commit()
        logger.info(f"Verification email re-issued for: {account.email}")

        warning = await deliver(
            self.email.send_verification_email(account.email, token),
            channel="email",
            destination=account.email,
        )
        return Sent(delivery_warning=warning)
