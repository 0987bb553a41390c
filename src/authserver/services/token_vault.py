"""Single-use verification tokens: issue, consume, sweep."""

import logging
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from authserver.models import Account, TokenKind, VerificationToken, ensure_utc
from authserver.services.accounts import get_account
from authserver.services.outcomes import Rejected, RejectReason

logger = logging.getLogger(__name__)

OTP_LENGTH = 6

# Attempts at drawing an unused OTP before giving up
MAX_OTP_DRAWS = 5


def generate_otp() -> str:
    """Generate a numeric one-time code."""
    return "".join(secrets.choice("0123456789") for _ in range(OTP_LENGTH))


class TokenVault:
    """Creates and consumes verification tokens.

    At most one live token exists per (account, kind). Does not commit; the
    caller commits the consumption together with its own state change.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _token_exists(self, raw: str) -> bool:
        stmt = select(VerificationToken.id).where(VerificationToken.token == raw)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def _generate(self, kind: TokenKind) -> str:
        if kind != TokenKind.PHONE_OTP:
            return secrets.token_urlsafe(32)

        # Six digits collide across accounts; draw until the value is free
        for _ in range(MAX_OTP_DRAWS):
            code = generate_otp()
            if not await self._token_exists(code):
                return code
        raise RuntimeError("Could not draw an unused one-time code")

    async def issue(self, account: Account, kind: TokenKind, ttl: timedelta) -> str:
        """Issue a new token, deleting any earlier token of the same kind.

        Args:
            account: Owning account
            kind: Token kind
            ttl: Lifetime from now

        Returns:
            The raw token value to hand to the user
        """
        await self.session.execute(
            delete(VerificationToken)
            .where(VerificationToken.account_id == account.id)
            .where(VerificationToken.kind == kind.value)
            .execution_options(synchronize_session=False)
        )

        raw = await self._generate(kind)
        self.session.add(
            VerificationToken(
                token=raw,
                account_id=account.id,
                kind=kind.value,
                expires_at=datetime.now(UTC) + ttl,
            )
        )
        await self.session.flush()
        logger.debug(f"Issued {kind.value} token for account {account.id}")
        return raw

    async def consume(
        self, raw: str, expected_kind: TokenKind, *, account_id: str | None = None
    ) -> Account | Rejected:
        """Mark a token used and return its owner.

        Checks run in a fixed order: existence, used, expiry, kind. With
        ``account_id``, a token owned by anyone else is refused as
        ``InvalidCode`` before its state is looked at. The
        ``used`` flip is a conditional update, so of several racing
        consumers exactly one succeeds.
        """
        stmt = (
            select(VerificationToken)
            .where(VerificationToken.token == raw)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        token = result.scalar_one_or_none()

        if token is None:
            return Rejected(RejectReason.NOT_FOUND)
        if account_id is not None and token.account_id != account_id:
            return Rejected(RejectReason.INVALID_CODE)
        if token.used:
            return Rejected(RejectReason.ALREADY_USED)
        if datetime.now(UTC) > ensure_utc(token.expires_at):
            return Rejected(RejectReason.EXPIRED)
        if token.kind != expected_kind.value:
            return Rejected(RejectReason.WRONG_KIND)

        flipped = await self.session.execute(
            update(VerificationToken)
            .where(VerificationToken.id == token.id)
            .where(VerificationToken.used.is_(False))  # type: ignore[attr-defined]
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            return Rejected(RejectReason.ALREADY_USED)

        account = await get_account(self.session, token.account_id)
        if account is None:
            return Rejected(RejectReason.NOT_FOUND)

        logger.info(f"Consumed {token.kind} token for account {account.id}")
        return account

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete every token past its expiry, used or not.

        Returns:
            Number of tokens removed
        """
        cutoff = now or datetime.now(UTC)
        result = await self.session.execute(
            delete(VerificationToken)
            .where(VerificationToken.expires_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
