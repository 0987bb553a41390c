"""Verification token model for email links, SMS codes and password resets."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel

from authserver.models.base import generate_nanoid, utcnow


class TokenKind(str, Enum):
    """What a verification token may be used for."""

    EMAIL_VERIFICATION = "email_verification"
    PHONE_OTP = "phone_otp"
    PASSWORD_RESET = "password_reset"


class VerificationToken(SQLModel, table=True):
    """Single-use token owned by an account."""

    __tablename__ = "verification_tokens"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    token: str = Field(unique=True, index=True, max_length=255, description="Raw token value")
    account_id: str = Field(
        foreign_key="accounts.id", index=True, max_length=21, ondelete="CASCADE"
    )
    kind: str = Field(sa_column=Column(String(32), nullable=False))
    expires_at: datetime = Field(
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        index=True,
        description="Token expiration time",
    )
    used: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )
