"""Shared API utilities."""

from typing import TypeVar

from fastapi import Request
from fastapi.responses import JSONResponse

from authserver.schemas.common import ErrorResponse
from authserver.services.outcomes import ErrorKind, Rejected

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.CONFLICT: 409,
}


class RejectedError(Exception):
    """Carries a ``Rejected`` outcome out of a route to the error handler."""

    def __init__(self, rejected: Rejected) -> None:
        super().__init__(rejected.detail)
        self.rejected = rejected


T = TypeVar("T")


def raise_if_rejected(outcome: T | Rejected) -> T:
    """Return a success payload, or raise ``RejectedError`` for a rejection."""
    if isinstance(outcome, Rejected):
        raise RejectedError(outcome)
    return outcome


def rejected_response(rejected: Rejected) -> JSONResponse:
    """Render a rejection as ``{"detail", "code"}`` with the mapped status."""
    headers = {}
    if rejected.retry_after_minutes is not None:
        headers["Retry-After"] = str(rejected.retry_after_minutes * 60)
    elif rejected.kind == ErrorKind.UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"

    body = ErrorResponse(detail=rejected.detail, code=rejected.reason.value)
    return JSONResponse(
        status_code=STATUS_BY_KIND[rejected.kind],
        content=body.model_dump(),
        headers=headers,
    )


def get_client_ip(request: Request) -> str:
    """Extract client IP from request headers.

    Checks common headers used by proxies and load balancers.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # x-forwarded-for can be a comma-separated list, take the first IP
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
