"""Authentication endpoint tests."""

import pytest
from httpx import AsyncClient

from authserver.config import settings
from authserver.models import Account, TokenKind
from authserver.services.accounts import get_account_by_email
from authserver.services.auth import ACCESS, token_issuer
from tests.conftest import PASSWORD, latest_token, make_account


def from_ip(ip: str) -> dict[str, str]:
    return {"X-Forwarded-For": ip}


@pytest.mark.asyncio
async def test_register_verify_and_login(client: AsyncClient, session, email_outbox):
    response = await client.post(
        "/api/auth/register",
        json={"email": "new@example.com", "password": PASSWORD},
    )
    assert response.status_code == 201
    assert response.json()["delivery_warning"] is None
    assert email_outbox.sent[0]["subject"] == "Email Verification"

    response = await client.post(
        "/api/auth/login", json={"identifier": "new@example.com", "password": PASSWORD}
    )
    assert response.status_code == 401
    assert response.json()["code"] == "channel_unverified"

    account = await get_account_by_email(session, "new@example.com")
    token = await latest_token(session, account.id, TokenKind.EMAIL_VERIFICATION)
    response = await client.get("/api/auth/verify-email", params={"token": token.token})
    assert response.status_code == 200
    assert response.json()["message"] == "Email verified successfully"

    response = await client.post(
        "/api/auth/login", json={"identifier": "new@example.com", "password": PASSWORD}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["expires_in"] == 3600
    assert token_issuer.parse(data["access_token"]).kind == ACCESS


@pytest.mark.asyncio
async def test_register_duplicate_is_conflict(client: AsyncClient, account: Account):
    response = await client.post(
        "/api/auth/register",
        json={"email": "user@example.com", "password": PASSWORD},
    )
    assert response.status_code == 409
    assert response.json() == {"detail": "Already registered", "code": "already_registered"}


@pytest.mark.asyncio
async def test_register_short_password(client: AsyncClient):
    response = await client.post(
        "/api/auth/register", json={"email": "short@example.com", "password": "abc"}
    )
    assert response.status_code == 422
    assert response.json()["code"] == "invalid_input"


@pytest.mark.asyncio
async def test_register_malformed_email(client: AsyncClient):
    response = await client.post(
        "/api/auth/register", json={"email": "nope", "password": PASSWORD}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_register_phone_then_verify(client: AsyncClient, session, sms_outbox):
    response = await client.post(
        "/api/auth/register/phone", json={"phone": "+15553334444", "password": PASSWORD}
    )
    assert response.status_code == 201
    assert sms_outbox.sent == []

    response = await client.post("/api/auth/send-otp", json={"phone": "+15553334444"})
    assert response.status_code == 200
    code = sms_outbox.sent[0]["body"].split("code is: ")[1][:6]
    wrong = f"{(int(code) + 1) % 1_000_000:06d}"

    response = await client.post(
        "/api/auth/verify-otp", json={"phone": "+15553334444", "code": wrong}
    )
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"

    response = await client.post(
        "/api/auth/verify-otp", json={"phone": "+15553334444", "code": code}
    )
    assert response.status_code == 200

    response = await client.post(
        "/api/auth/login", json={"identifier": "+15553334444", "password": PASSWORD}
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_login_invalid_credentials(client: AsyncClient, account: Account):
    response = await client.post(
        "/api/auth/login", json={"identifier": "user@example.com", "password": "wrong"}
    )
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json() == {"detail": "Invalid credentials", "code": "invalid_credentials"}


@pytest.mark.asyncio
async def test_login_rate_limited_per_client(client: AsyncClient):
    for _ in range(5):
        response = await client.post(
            "/api/auth/login",
            json={"identifier": "ghost@example.com", "password": "x"},
            headers=from_ip("198.51.100.1"),
        )
        assert response.status_code == 401

    response = await client.post(
        "/api/auth/login",
        json={"identifier": "ghost@example.com", "password": "x"},
        headers=from_ip("198.51.100.1"),
    )
    assert response.status_code == 429
    assert response.json()["code"] == "rate_limited"
    assert response.headers["Retry-After"] == "900"

    # Another client is unaffected
    response = await client.post(
        "/api/auth/login",
        json={"identifier": "ghost@example.com", "password": "x"},
        headers=from_ip("198.51.100.2"),
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_lockout_and_password_reset(client: AsyncClient, session, account, email_outbox):
    for i in range(5):
        await client.post(
            "/api/auth/login",
            json={"identifier": "user@example.com", "password": "wrong"},
            headers=from_ip(f"192.0.2.{i}"),
        )

    response = await client.post(
        "/api/auth/login",
        json={"identifier": "user@example.com", "password": PASSWORD},
        headers=from_ip("192.0.2.50"),
    )
    assert response.status_code == 401
    assert response.json()["code"] == "account_locked"

    response = await client.post("/api/auth/forgot-password", json={"email": "user@example.com"})
    assert response.status_code == 200
    token = await latest_token(session, account.id, TokenKind.PASSWORD_RESET)

    response = await client.post(
        "/api/auth/reset-password", json={"token": token.token, "new_password": "fresh-pass"}
    )
    assert response.status_code == 200

    response = await client.post(
        "/api/auth/reset-password", json={"token": token.token, "new_password": "fresh-pass"}
    )
    assert response.status_code == 401
    assert response.json()["code"] == "already_used"

    response = await client.post(
        "/api/auth/login",
        json={"identifier": "user@example.com", "password": "fresh-pass"},
        headers=from_ip("192.0.2.51"),
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_forgot_password_unknown_email(client: AsyncClient):
    response = await client.post("/api/auth/forgot-password", json={"email": "who@example.com"})
    assert response.status_code == 404
    assert response.json()["code"] == "account_not_found"


@pytest.mark.asyncio
async def test_delivery_failure_is_reported(client: AsyncClient, account, email_outbox):
    email_outbox.fail = True

    response = await client.post("/api/auth/forgot-password", json={"email": "user@example.com"})

    assert response.status_code == 200
    assert response.json()["delivery_warning"] == "Could not send email. Please try again later."


@pytest.mark.asyncio
async def test_resend_verification(client: AsyncClient, session, email_outbox):
    await make_account(session, email="pending@example.com")

    response = await client.post(
        "/api/auth/resend-verification", json={"email": "pending@example.com"}
    )

    assert response.status_code == 200
    assert len(email_outbox.sent) == 1


@pytest.mark.asyncio
async def test_resend_verification_already_verified(client: AsyncClient, account):
    response = await client.post(
        "/api/auth/resend-verification", json={"email": "user@example.com"}
    )
    assert response.status_code == 409
    assert response.json()["code"] == "already_verified"


@pytest.mark.asyncio
async def test_verify_email_unknown_token(client: AsyncClient):
    response = await client.post("/api/auth/verify-email", json={"token": "nope"})
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_send_otp_rate_limited(client: AsyncClient, phone_account):
    for _ in range(3):
        response = await client.post("/api/auth/send-otp", json={"phone": "+15551234567"})
        assert response.status_code == 200

    response = await client.post("/api/auth/send-otp", json={"phone": "+15551234567"})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "3600"


@pytest.mark.asyncio
async def test_refresh(client: AsyncClient, account: Account):
    pair = token_issuer.issue_pair(account.identifier, account.id)

    response = await client.post("/api/auth/refresh", json={"refresh_token": pair.refresh_token})
    assert response.status_code == 200

    response = await client.post("/api/auth/refresh", json={"refresh_token": pair.access_token})
    assert response.status_code == 401
    assert response.json()["code"] == "invalid_token"


@pytest.mark.asyncio
async def test_get_current_account(client: AsyncClient, account: Account, auth_headers):
    response = await client.get("/api/auth/me", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == account.id
    assert data["email"] == "user@example.com"
    assert data["two_factor_enabled"] is False
    assert "password_hash" not in data
    assert "two_factor_secret" not in data


@pytest.mark.asyncio
async def test_get_current_account_unauthenticated(client: AsyncClient):
    response = await client.get("/api/auth/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_is_not_a_bearer(client: AsyncClient, account: Account):
    refresh = token_issuer.issue_refresh(account.identifier, account.id)

    response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {refresh}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_request_id_header(client: AsyncClient):
    response = await client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_bad_bearer_tokens_count_against_api_limit(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_api_requests", 2)
    headers = {"Authorization": "Bearer forged", **from_ip("198.51.100.3")}

    for _ in range(2):
        response = await client.get("/api/auth/me", headers=headers)
        assert response.status_code == 401

    response = await client.get("/api/auth/me", headers=headers)
    assert response.status_code == 429
    assert response.json()["code"] == "rate_limited"
