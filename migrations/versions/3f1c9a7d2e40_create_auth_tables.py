"""create_auth_tables

Create accounts, verification_tokens and rate_windows.

Revision ID: 3f1c9a7d2e40
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2e40"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.VARCHAR(21), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("phone_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("two_factor_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("two_factor_secret", sa.String(64), nullable=True),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("failed_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "email IS NOT NULL OR phone IS NOT NULL", name="accounts_identity_check"
        ),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)
    op.create_index("ix_accounts_phone", "accounts", ["phone"], unique=True)

    op.create_table(
        "verification_tokens",
        sa.Column("id", sa.VARCHAR(21), primary_key=True),
        sa.Column("token", sa.String(255), nullable=False),
        sa.Column(
            "account_id",
            sa.VARCHAR(21),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_verification_tokens_token", "verification_tokens", ["token"], unique=True)
    op.create_index("ix_verification_tokens_account_id", "verification_tokens", ["account_id"])
    op.create_index("ix_verification_tokens_expires_at", "verification_tokens", ["expires_at"])

    op.create_table(
        "rate_windows",
        sa.Column("id", sa.VARCHAR(21), primary_key=True),
        sa.Column("identifier", sa.String(255), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("identifier", "action_type", name="rate_windows_key_uniq"),
    )
    op.create_index("rate_windows_window_start_idx", "rate_windows", ["window_start"])


def downgrade() -> None:
    op.drop_index("rate_windows_window_start_idx", table_name="rate_windows")
    op.drop_table("rate_windows")
    op.drop_index("ix_verification_tokens_expires_at", table_name="verification_tokens")
    op.drop_index("ix_verification_tokens_account_id", table_name="verification_tokens")
    op.drop_index("ix_verification_tokens_token", table_name="verification_tokens")
    op.drop_table("verification_tokens")
    op.drop_index("ix_accounts_phone", table_name="accounts")
    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_table("accounts")
