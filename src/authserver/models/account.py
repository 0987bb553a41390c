"""Account model."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime
from sqlmodel import Field, SQLModel

from authserver.models.base import TimestampMixin, generate_nanoid


class Account(TimestampMixin, SQLModel, table=True):
    """A credential holder identified by email, phone, or both."""

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint(
            "email IS NOT NULL OR phone IS NOT NULL",
            name="accounts_identity_check",
        ),
    )

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    email: str | None = Field(default=None, unique=True, index=True, max_length=255)
    phone: str | None = Field(default=None, unique=True, index=True, max_length=20)
    password_hash: str = Field(max_length=255)

    email_verified: bool = Field(default=False)
    phone_verified: bool = Field(default=False)

    # Secret is set as soon as setup begins; enabled only after a valid code
    two_factor_enabled: bool = Field(default=False)
    two_factor_secret: str | None = Field(default=None, max_length=64)

    locked: bool = Field(default=False)
    failed_attempts: int = Field(default=0)
    last_login_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )

    @property
    def identifier(self) -> str:
        """Primary identity: email when present, otherwise phone."""
        return self.email or self.phone or ""

    @property
    def channel_verified(self) -> bool:
        """Whether the identity channel used for login has been verified.

        An email identity must be verified whenever it is set; a phone
        identity only matters when it is the sole identity.
        """
        if self.email is not None:
            return self.email_verified
        return self.phone_verified


class AccountRead(SQLModel):
    """Schema for reading an account (no secrets)."""

    id: str
    email: str | None
    phone: str | None
    email_verified: bool
    phone_verified: bool
    two_factor_enabled: bool
    locked: bool
    last_login_at: datetime | None
