"""Typed operation outcomes.

Every exposed operation returns either its success payload or a ``Rejected``
value. Rejections carry a closed ``RejectReason``; each reason belongs to
exactly one ``ErrorKind``, which the HTTP layer maps to a status code.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Error taxonomy exposed to the boundary layer."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    CONFLICT = "conflict"


class RejectReason(str, Enum):
    """Why an operation was refused."""

    # Input
    INVALID_INPUT = "invalid_input"

    # Login
    RATE_LIMITED = "rate_limited"
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    CHANNEL_UNVERIFIED = "channel_unverified"
    TWO_FACTOR_REQUIRED = "two_factor_required"
    INVALID_TWO_FACTOR_CODE = "invalid_two_factor_code"
    INVALID_TOKEN = "invalid_token"

    # Verification tokens
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"
    WRONG_KIND = "wrong_kind"

    # Second factor
    NOT_SET_UP = "not_set_up"
    ALREADY_ENABLED = "already_enabled"
    NOT_ENABLED = "not_enabled"
    INVALID_CODE = "invalid_code"

    # Accounts
    ACCOUNT_NOT_FOUND = "account_not_found"
    ALREADY_REGISTERED = "already_registered"
    ALREADY_VERIFIED = "already_verified"


REASON_KINDS: dict[RejectReason, ErrorKind] = {
    RejectReason.INVALID_INPUT: ErrorKind.VALIDATION,
    RejectReason.RATE_LIMITED: ErrorKind.RATE_LIMITED,
    RejectReason.INVALID_CREDENTIALS: ErrorKind.UNAUTHORIZED,
    RejectReason.ACCOUNT_LOCKED: ErrorKind.UNAUTHORIZED,
    RejectReason.CHANNEL_UNVERIFIED: ErrorKind.UNAUTHORIZED,
    RejectReason.TWO_FACTOR_REQUIRED: ErrorKind.UNAUTHORIZED,
    RejectReason.INVALID_TWO_FACTOR_CODE: ErrorKind.UNAUTHORIZED,
    RejectReason.INVALID_TOKEN: ErrorKind.UNAUTHORIZED,
    RejectReason.NOT_FOUND: ErrorKind.NOT_FOUND,
    RejectReason.ALREADY_USED: ErrorKind.UNAUTHORIZED,
    RejectReason.EXPIRED: ErrorKind.UNAUTHORIZED,
    RejectReason.WRONG_KIND: ErrorKind.UNAUTHORIZED,
    RejectReason.NOT_SET_UP: ErrorKind.VALIDATION,
    RejectReason.ALREADY_ENABLED: ErrorKind.CONFLICT,
    RejectReason.NOT_ENABLED: ErrorKind.VALIDATION,
    RejectReason.INVALID_CODE: ErrorKind.UNAUTHORIZED,
    RejectReason.ACCOUNT_NOT_FOUND: ErrorKind.NOT_FOUND,
    RejectReason.ALREADY_REGISTERED: ErrorKind.CONFLICT,
    RejectReason.ALREADY_VERIFIED: ErrorKind.CONFLICT,
}

DEFAULT_MESSAGES: dict[RejectReason, str] = {
    RejectReason.INVALID_INPUT: "Invalid input",
    RejectReason.RATE_LIMITED: "Too many attempts",
    RejectReason.INVALID_CREDENTIALS: "Invalid credentials",
    RejectReason.ACCOUNT_LOCKED: "Account is locked. Reset your password to unlock it.",
    RejectReason.CHANNEL_UNVERIFIED: "Please verify your email or phone number before logging in",
    RejectReason.TWO_FACTOR_REQUIRED: "Two-factor authentication code required",
    RejectReason.INVALID_TWO_FACTOR_CODE: "Invalid two-factor authentication code",
    RejectReason.INVALID_TOKEN: "Invalid or expired token",
    RejectReason.NOT_FOUND: "Invalid or expired token",
    RejectReason.ALREADY_USED: "Token already used",
    RejectReason.EXPIRED: "Token expired",
    RejectReason.WRONG_KIND: "Invalid token type",
    RejectReason.NOT_SET_UP: "Two-factor authentication not set up",
    RejectReason.ALREADY_ENABLED: "Two-factor authentication is already enabled",
    RejectReason.NOT_ENABLED: "Two-factor authentication is not enabled",
    RejectReason.INVALID_CODE: "Invalid verification code",
    RejectReason.ACCOUNT_NOT_FOUND: "Account not found",
    RejectReason.ALREADY_REGISTERED: "Already registered",
    RejectReason.ALREADY_VERIFIED: "Already verified",
}


@dataclass(frozen=True)
class Rejected:
    """A refused operation."""

    reason: RejectReason
    message: str | None = None
    retry_after_minutes: int | None = None

    @property
    def kind(self) -> ErrorKind:
        return REASON_KINDS[self.reason]

    @property
    def detail(self) -> str:
        return self.message or DEFAULT_MESSAGES[self.reason]


@dataclass(frozen=True)
class Sent:
    """A token was issued and handed to a notifier.

    ``delivery_warning`` is set when the notifier failed; the issued token
    is still committed.
    """

    delivery_warning: str | None = None
