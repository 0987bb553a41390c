"""FastAPI dependencies for dependency injection."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from authserver.api.utils import RejectedError, get_client_ip
from authserver.database import get_session
from authserver.models import Account
from authserver.services.accounts import get_account
from authserver.services.auth import ACCESS, AuthError, token_issuer
from authserver.services.outcomes import Rejected
from authserver.services.rate_limit import ActionType, RateLimiter

logger = logging.getLogger(__name__)

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]

# Security scheme
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_account(
    session: SessionDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Account:
    """Get the account behind a valid access token or raise 401."""
    if not credentials:
        raise _unauthorized("Not authenticated")

    try:
        claims = token_issuer.parse(credentials.credentials)
    except AuthError as e:
        logger.debug(f"Token verification failed: {e!r}")
        raise _unauthorized("Invalid or expired token") from e

    if claims.kind != ACCESS or claims.expired:
        raise _unauthorized("Invalid or expired token")

    account = await get_account(session, claims.account_id)
    if account is None:
        raise _unauthorized("Invalid or expired token")
    return account


CurrentAccount = Annotated[Account, Depends(get_current_account)]


async def api_rate_limit(request: Request, session: SessionDep) -> None:
    """Count the request against the caller's API_REQUEST window."""
    limiter = RateLimiter(session)
    result = await limiter.check(get_client_ip(request), ActionType.API_REQUEST)
    await session.commit()
    if isinstance(result, Rejected):
        raise RejectedError(result)


ApiRateLimit = Annotated[None, Depends(api_rate_limit)]
