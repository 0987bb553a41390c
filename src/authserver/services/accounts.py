"""Account lookups and store-side mutations."""

import logging
import re

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from authserver.models import Account

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"\+?[1-9]\d{6,14}")
PHONE_SEPARATORS = re.compile(r"[\s\-().]")


class InvalidIdentifierError(ValueError):
    """Raised when an email address or phone number is malformed."""


def normalize_email(email: str) -> str:
    """Validate and normalize an email address.

    Raises:
        InvalidIdentifierError: If the address is malformed
    """
    try:
        validated = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidIdentifierError(str(e)) from e
    return validated.normalized.lower()


def email_lookup_key(email: str) -> str:
    """The stored form of ``email``, or the trimmed lowercase input if malformed."""
    try:
        return normalize_email(email)
    except InvalidIdentifierError:
        return email.strip().lower()


def normalize_phone(phone: str) -> str:
    """Strip separators and validate an E.164-style phone number.

    Raises:
        InvalidIdentifierError: If the number is malformed
    """
    cleaned = PHONE_SEPARATORS.sub("", phone.strip())
    if not PHONE_PATTERN.fullmatch(cleaned):
        raise InvalidIdentifierError(f"Invalid phone number: {phone!r}")
    return cleaned


async def get_account(session: AsyncSession, account_id: str) -> Account | None:
    """Get an account by ID."""
    stmt = (
        select(Account)
        .where(Account.id == account_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_account_by_email(session: AsyncSession, email: str) -> Account | None:
    """Get an account by its (normalized) email address."""
    stmt = (
        select(Account)
        .where(Account.email == email)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_account_by_phone(session: AsyncSession, phone: str) -> Account | None:
    """Get an account by its (normalized) phone number."""
    stmt = (
        select(Account)
        .where(Account.phone == phone)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def resolve_account(session: AsyncSession, identifier: str) -> Account | None:
    """Resolve a login identifier, trying email first and then phone."""
    account = await get_account_by_email(session, email_lookup_key(identifier))
    if account:
        return account

    try:
        phone = normalize_phone(identifier)
    except InvalidIdentifierError:
        return None
    return await get_account_by_phone(session, phone)


async def create_account(
    session: AsyncSession,
    *,
    password_hash: str,
    email: str | None = None,
    phone: str | None = None,
) -> Account:
    """Create an account.

    Uniqueness is enforced by the store; a concurrent duplicate surfaces as
    ``IntegrityError`` on flush.
    """
    account = Account(email=email, phone=phone, password_hash=password_hash)
    session.add(account)
    await session.flush()
    return account


async def mark_email_verified(session: AsyncSession, account: Account) -> None:
    """Set the email-verified flag."""
    await session.execute(
        update(Account)
        .where(Account.id == account.id)
        .values(email_verified=True)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(account)


async def mark_phone_verified(session: AsyncSession, account: Account) -> None:
    """Set the phone-verified flag."""
    await session.execute(
        update(Account)
        .where(Account.id == account.id)
        .values(phone_verified=True)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(account)


async def set_password(session: AsyncSession, account: Account, password_hash: str) -> None:
    """Replace the password hash, clearing the failure counter and the lock."""
    await session.execute(
        update(Account)
        .where(Account.id == account.id)
        .values(password_hash=password_hash, failed_attempts=0, locked=False)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(account)
    logger.info(f"Password replaced and lock cleared for account {account.id}")


async def unlock_account(session: AsyncSession, account: Account) -> None:
    """Administratively clear the lock and failure counter."""
    await session.execute(
        update(Account)
        .where(Account.id == account.id)
        .values(failed_attempts=0, locked=False)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(account)
