"""Request correlation and access logging."""

import logging
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    """Correlation ID of the request being handled, if any."""
    return request_id_var.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags each request with a correlation ID.

    An incoming ``X-Request-ID`` is reused, otherwise a UUID is generated.
    The ID is echoed on the response and visible to log records through
    ``RequestContextFilter``.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_var.reset(token)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request with status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"{request.method} {request.url.path} failed after {duration_ms:.1f}ms: {e}",
                exc_info=True,
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} in {duration_ms:.1f}ms",
            extra={"status_code": response.status_code, "duration_ms": duration_ms},
        )
        return response


class RequestContextFilter(logging.Filter):
    """Logging filter that adds ``request_id`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True
