"""SQLModel database models."""

from authserver.models.account import Account, AccountRead
from authserver.models.base import TimestampMixin, ensure_utc, generate_nanoid, utcnow
from authserver.models.rate_window import RateWindow
from authserver.models.verification_token import TokenKind, VerificationToken

__all__ = [
    "Account",
    "AccountRead",
    "RateWindow",
    "TimestampMixin",
    "TokenKind",
    "VerificationToken",
    "ensure_utc",
    "generate_nanoid",
    "utcnow",
]
