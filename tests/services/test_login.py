"""Login state machine and refresh tests."""

import asyncio
from datetime import timedelta

import pyotp
import pytest

from authserver.models import Account, TokenKind
from authserver.services.auth import ACCESS, REFRESH, TokenIssuer, TokenPair, token_issuer
from authserver.services.login import LoginOrchestrator, LoginState
from authserver.services.outcomes import ErrorKind, Rejected, RejectReason
from authserver.services.password_recovery import PasswordRecoveryFlow
from authserver.services.rate_limit import RateLimitConfig
from authserver.services.second_factor import SecondFactor
from tests.conftest import PASSWORD, latest_token, make_account, reload
from tests.services.test_second_factor import wrong_code

IP = "203.0.113.7"


async def login(session, identifier, password=PASSWORD, *, client_ip=IP, code=None, **kwargs):
    orchestrator = LoginOrchestrator(session, **kwargs)
    result = await orchestrator.login(
        identifier, password, client_ip=client_ip, two_factor_code=code
    )
    return orchestrator, result


class TestLogin:
    """Tests for each step of LoginOrchestrator.login."""

    @pytest.mark.asyncio
    async def test_success_issues_token_pair(self, session, account: Account):
        orchestrator, result = await login(session, "user@example.com")

        assert isinstance(result, TokenPair)
        assert orchestrator.state == LoginState.ISSUED
        access = token_issuer.parse(result.access_token)
        refresh = token_issuer.parse(result.refresh_token)
        assert access.kind == ACCESS
        assert refresh.kind == REFRESH
        assert access.account_id == account.id
        assert access.subject == "user@example.com"

        await reload(session, account)
        assert account.last_login_at is not None

    @pytest.mark.asyncio
    async def test_identifier_is_case_insensitive(self, session, account: Account):
        _, result = await login(session, "  User@Example.com ")
        assert isinstance(result, TokenPair)

    @pytest.mark.asyncio
    async def test_phone_identity(self, session):
        await make_account(session, phone="+15550001111", phone_verified=True)

        _, result = await login(session, "+1 (555) 000-1111")

        assert isinstance(result, TokenPair)

    @pytest.mark.asyncio
    async def test_unknown_identifier_is_invalid_credentials(self, session):
        orchestrator, result = await login(session, "ghost@example.com")

        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.INVALID_CREDENTIALS
        assert result.kind == ErrorKind.UNAUTHORIZED
        assert orchestrator.state == LoginState.REJECTED

    @pytest.mark.asyncio
    async def test_wrong_password_records_failure(self, session, account: Account):
        _, result = await login(session, "user@example.com", "wrong-password")

        assert result.reason == RejectReason.INVALID_CREDENTIALS
        await reload(session, account)
        assert account.failed_attempts == 1

    @pytest.mark.asyncio
    async def test_unverified_email(self, session):
        account = await make_account(session, email="new@example.com")

        _, result = await login(session, "new@example.com")

        assert result.reason == RejectReason.CHANNEL_UNVERIFIED
        await reload(session, account)
        assert account.failed_attempts == 0

    @pytest.mark.asyncio
    async def test_unverified_sole_phone(self, session, phone_account: Account):
        _, result = await login(session, "+15551234567")
        assert result.reason == RejectReason.CHANNEL_UNVERIFIED

    @pytest.mark.asyncio
    async def test_unverified_phone_ignored_when_email_verified(self, session):
        await make_account(
            session, email="both@example.com", phone="+15559998888", email_verified=True
        )

        _, result = await login(session, "both@example.com")

        assert isinstance(result, TokenPair)

    @pytest.mark.asyncio
    async def test_rate_limited_before_identity(self, session, account: Account):
        config = {"LOGIN": RateLimitConfig(max_attempts=2, window_minutes=15)}
        for _ in range(2):
            await login(session, "ghost@example.com", rate_limit_config=config)

        orchestrator, result = await login(session, "user@example.com", rate_limit_config=config)

        assert result.reason == RejectReason.RATE_LIMITED
        assert result.retry_after_minutes == 15
        assert orchestrator.state == LoginState.REJECTED

    @pytest.mark.asyncio
    async def test_success_resets_client_window(self, session, account: Account):
        config = {"LOGIN": RateLimitConfig(max_attempts=2, window_minutes=15)}
        await login(session, "ghost@example.com", rate_limit_config=config)
        _, ok = await login(session, "user@example.com", rate_limit_config=config)
        assert isinstance(ok, TokenPair)

        # Window was reset, so two more attempts fit
        _, first = await login(session, "ghost@example.com", rate_limit_config=config)
        _, second = await login(session, "ghost@example.com", rate_limit_config=config)
        assert first.reason == RejectReason.INVALID_CREDENTIALS
        assert second.reason == RejectReason.INVALID_CREDENTIALS

    @pytest.mark.asyncio
    async def test_concurrent_logins_from_one_address_are_limited(self, session_factory):
        config = {"LOGIN": RateLimitConfig(max_attempts=5, window_minutes=15)}

        async def attempt():
            async with session_factory() as own_session:
                _, result = await login(
                    own_session, "ghost@example.com", client_ip="198.51.100.9", rate_limit_config=config
                )
                return result

        results = await asyncio.gather(*(attempt() for _ in range(20)))

        reasons = [r.reason for r in results]
        assert reasons.count(RejectReason.INVALID_CREDENTIALS) == 5
        assert reasons.count(RejectReason.RATE_LIMITED) == 15


class TestLockout:
    """Lockout behaviour across login and password reset."""

    @pytest.mark.asyncio
    async def test_locked_after_five_failures_until_reset(self, session, account: Account):
        for i in range(5):
            _, result = await login(session, "user@example.com", "bad", client_ip=f"10.0.0.{i}")
            assert result.reason == RejectReason.INVALID_CREDENTIALS

        _, locked = await login(session, "user@example.com", client_ip="10.0.1.1")
        assert locked.reason == RejectReason.ACCOUNT_LOCKED

        recovery = PasswordRecoveryFlow(session)
        sent = await recovery.forgot_password("user@example.com")
        assert sent.delivery_warning is None
        token = await latest_token(session, account.id, TokenKind.PASSWORD_RESET)
        reset = await recovery.reset_password(token.token, "brand-new-pass")
        assert isinstance(reset, Account)

        _, result = await login(
            session, "user@example.com", "brand-new-pass", client_ip="10.0.1.2"
        )
        assert isinstance(result, TokenPair)

    @pytest.mark.asyncio
    async def test_locked_check_precedes_password(self, session):
        account = await make_account(session, email="locked@example.com", locked=True)

        _, result = await login(session, "locked@example.com", "wrong")

        assert result.reason == RejectReason.ACCOUNT_LOCKED
        await reload(session, account)
        assert account.failed_attempts == 0

    @pytest.mark.asyncio
    async def test_concurrent_bad_passwords(self, session_factory, session, account: Account):
        async def attempt(i: int):
            async with session_factory() as own_session:
                _, result = await login(
                    own_session, "user@example.com", "bad", client_ip=f"10.1.0.{i}"
                )
                return result

        results = await asyncio.gather(*(attempt(i) for i in range(8)))

        reasons = {r.reason for r in results}
        assert reasons <= {RejectReason.INVALID_CREDENTIALS, RejectReason.ACCOUNT_LOCKED}
        await reload(session, account)
        assert account.failed_attempts == 5
        assert account.locked is True


class TestTwoFactorLogin:
    """Second-factor step of the login."""

    @pytest.mark.asyncio
    async def test_code_required_then_accepted(self, session, account: Account):
        factor = SecondFactor(session)
        setup = await factor.begin_setup(account)
        await factor.activate(account, pyotp.TOTP(setup.secret).now())

        _, missing = await login(session, "user@example.com")
        assert missing.reason == RejectReason.TWO_FACTOR_REQUIRED

        _, bad = await login(session, "user@example.com", code=wrong_code(setup.secret))
        assert bad.reason == RejectReason.INVALID_TWO_FACTOR_CODE

        _, ok = await login(session, "user@example.com", code=pyotp.TOTP(setup.secret).now())
        assert isinstance(ok, TokenPair)

    @pytest.mark.asyncio
    async def test_pending_setup_does_not_require_code(self, session, account: Account):
        await SecondFactor(session).begin_setup(account)

        _, result = await login(session, "user@example.com")

        assert isinstance(result, TokenPair)


class TestRefresh:
    """Tests for LoginOrchestrator.refresh."""

    @pytest.mark.asyncio
    async def test_refresh_issues_new_pair(self, session, account: Account):
        pair = token_issuer.issue_pair(account.identifier, account.id)

        result = await LoginOrchestrator(session).refresh(pair.refresh_token)

        assert isinstance(result, TokenPair)
        assert token_issuer.parse(result.access_token).account_id == account.id

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_refresh_token(self, session, account: Account):
        pair = token_issuer.issue_pair(account.identifier, account.id)

        result = await LoginOrchestrator(session).refresh(pair.access_token)

        assert result.reason == RejectReason.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_expired_refresh_token(self, session, account: Account):
        issuer = TokenIssuer(refresh_ttl=timedelta(seconds=-5))
        token = issuer.issue_refresh(account.identifier, account.id)

        result = await LoginOrchestrator(session, issuer=issuer).refresh(token)

        assert result.reason == RejectReason.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_garbage_token(self, session):
        result = await LoginOrchestrator(session).refresh("not-a-jwt")
        assert result.reason == RejectReason.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_forged_signature(self, session, account: Account):
        forger = TokenIssuer(secret="x" * 40)
        token = forger.issue_refresh(account.identifier, account.id)

        result = await LoginOrchestrator(session).refresh(token)

        assert result.reason == RejectReason.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_locked_account_cannot_refresh(self, session):
        account = await make_account(session, email="l@example.com", locked=True)
        token = token_issuer.issue_refresh(account.identifier, account.id)

        result = await LoginOrchestrator(session).refresh(token)

        assert result.reason == RejectReason.ACCOUNT_LOCKED
