"""Bearer token issuing and parsing (JWT)."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from secrets import token_hex

from jose import JWTError, jwt

from authserver.config import settings

ACCESS = "access"
REFRESH = "refresh"


class AuthError(Exception):
    """Authentication error."""

    pass


@dataclass(frozen=True)
class TokenClaims:
    """Claims extracted from a bearer token."""

    subject: str
    account_id: str
    kind: str
    expired: bool


@dataclass(frozen=True)
class TokenPair:
    """Access and refresh tokens handed to a client."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = 0


class TokenIssuer:
    """Signs access/refresh tokens and parses them back."""

    def __init__(
        self,
        secret: str | None = None,
        algorithm: str | None = None,
        access_ttl: timedelta | None = None,
        refresh_ttl: timedelta | None = None,
    ) -> None:
        self.secret = secret or settings.session_secret
        self.algorithm = algorithm or settings.jwt_algorithm
        self.access_ttl = access_ttl or timedelta(minutes=settings.access_token_expiration_minutes)
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.refresh_token_expiration_days)

    def _encode(self, subject: str, account_id: str, kind: str, ttl: timedelta) -> str:
        now = datetime.now(UTC)
        payload = {
            "sub": subject,
            "uid": account_id,
            "type": kind,
            "iss": settings.jwt_issuer,
            "jti": token_hex(8),
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def issue_access(self, subject: str, account_id: str) -> str:
        """Create a short-lived access token."""
        return self._encode(subject, account_id, ACCESS, self.access_ttl)

    def issue_refresh(self, subject: str, account_id: str) -> str:
        """Create a long-lived refresh token."""
        return self._encode(subject, account_id, REFRESH, self.refresh_ttl)

    def issue_pair(self, subject: str, account_id: str) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access(subject, account_id),
            refresh_token=self.issue_refresh(subject, account_id),
            expires_in=int(self.access_ttl.total_seconds()),
        )

    def parse(self, token: str) -> TokenClaims:
        """Verify the signature and extract claims.

        Expiry is reported in the result rather than raised so callers can
        distinguish an expired token from a forged one.

        Raises:
            AuthError: If the token is malformed or the signature is invalid
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise AuthError(f"Invalid token: {e}") from e

        subject = payload.get("sub")
        account_id = payload.get("uid")
        kind = payload.get("type")
        exp = payload.get("exp")
        if not subject or not account_id or kind not in (ACCESS, REFRESH) or exp is None:
            raise AuthError("Invalid token: missing claims")

        return TokenClaims(
            subject=subject,
            account_id=account_id,
            kind=kind,
            expired=datetime.fromtimestamp(exp, UTC) <= datetime.now(UTC),
        )


token_issuer = TokenIssuer()
