"""Password login state machine and refresh-token exchange."""

import logging
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from authserver.models import Account
from authserver.services.account_guard import AccountGuard
from authserver.services.accounts import get_account, resolve_account
from authserver.services.auth import REFRESH, AuthError, TokenIssuer, TokenPair, token_issuer
from authserver.services.outcomes import Rejected, RejectReason
from authserver.services.passwords import Hasher, hasher
from authserver.services.rate_limit import ActionType, RateLimitConfig, RateLimiter
from authserver.services.second_factor import verify_code

logger = logging.getLogger(__name__)


class LoginState(str, Enum):
    START = "start"
    RATE_CHECKED = "rate_checked"
    IDENTITY_RESOLVED = "identity_resolved"
    LOCK_CHECKED = "lock_checked"
    PASSWORD_CHECKED = "password_checked"
    VERIFICATION_CHECKED = "verification_checked"
    SECOND_FACTOR_CHECKED = "second_factor_checked"
    ISSUED = "issued"
    REJECTED = "rejected"


class LoginOrchestrator:
    """Runs one login attempt through its checks in a fixed order.

    The first failing check ends the attempt with a ``Rejected`` outcome.
    Everything past the rate check commits, so the attempt counter and the
    failed-password bookkeeping persist even when the login is refused.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        hasher: Hasher = hasher,
        issuer: TokenIssuer = token_issuer,
        rate_limit_config: dict[str, RateLimitConfig] | None = None,
        lock_threshold: int | None = None,
    ) -> None:
        self.session = session
        self.hasher = hasher
        self.issuer = issuer
        self.limiter = RateLimiter(session, rate_limit_config)
        self.guard = AccountGuard(session, lock_threshold)
        self.state = LoginState.START

    def _advance(self, state: LoginState) -> None:
        self.state = state

    async def _reject(self, reason: RejectReason, identifier: str) -> Rejected:
        logger.info(f"Login rejected ({reason.value}) at {self.state.value} for: {identifier}")
        self.state = LoginState.REJECTED
        await self.session.commit()
        return Rejected(reason)

    async def login(
        self,
        identifier: str,
        password: str,
        *,
        client_ip: str,
        two_factor_code: str | None = None,
    ) -> TokenPair | Rejected:
        """Authenticate by email or phone and password.

        Args:
            identifier: Email address or phone number
            password: Plaintext password
            client_ip: Caller address, the rate-limit key
            two_factor_code: Current TOTP code when 2FA is enabled

        Returns:
            A token pair, or the reason the attempt was refused
        """
        self.state = LoginState.START

        allowed = await self.limiter.check(client_ip, ActionType.LOGIN)
        if isinstance(allowed, Rejected):
            self.state = LoginState.REJECTED
            await self.session.commit()
            return allowed
        self._advance(LoginState.RATE_CHECKED)

        account = await resolve_account(self.session, identifier)
        if account is None:
            return await self._reject(RejectReason.INVALID_CREDENTIALS, identifier)
        self._advance(LoginState.IDENTITY_RESOLVED)

        if account.locked:
            return await self._reject(RejectReason.ACCOUNT_LOCKED, identifier)
        self._advance(LoginState.LOCK_CHECKED)

        if not self.hasher.verify(password, account.password_hash):
            await self.guard.record_failure(account)
            return await self._reject(RejectReason.INVALID_CREDENTIALS, identifier)
        self._advance(LoginState.PASSWORD_CHECKED)

        if not account.channel_verified:
            return await self._reject(RejectReason.CHANNEL_UNVERIFIED, identifier)
        self._advance(LoginState.VERIFICATION_CHECKED)

        if account.two_factor_enabled:
            if not two_factor_code:
                return await self._reject(RejectReason.TWO_FACTOR_REQUIRED, identifier)
            if not verify_code(account.two_factor_secret, two_factor_code):
                return await self._reject(RejectReason.INVALID_TWO_FACTOR_CODE, identifier)
        self._advance(LoginState.SECOND_FACTOR_CHECKED)

        await self.guard.record_success(account)
        await self.limiter.reset(client_ip, ActionType.LOGIN)
        await self.session.commit()

        pair = self.issuer.issue_pair(account.identifier, account.id)
        self._advance(LoginState.ISSUED)
        logger.info(f"User logged in successfully: {account.identifier}")
        return pair

    async def refresh(self, refresh_token: str) -> TokenPair | Rejected:
        """Exchange a valid refresh token for a new pair."""
        try:
            claims = self.issuer.parse(refresh_token)
        except AuthError:
            return Rejected(RejectReason.INVALID_TOKEN)

        if claims.kind != REFRESH or claims.expired:
            return Rejected(RejectReason.INVALID_TOKEN)

        account: Account | None = await get_account(self.session, claims.account_id)
        if account is None:
            return Rejected(RejectReason.INVALID_TOKEN)
        if account.locked:
            return Rejected(RejectReason.ACCOUNT_LOCKED)

        return self.issuer.issue_pair(account.identifier, account.id)
