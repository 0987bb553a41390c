"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from authserver import __version__
from authserver.api.middleware import RequestIDMiddleware, RequestLoggingMiddleware
from authserver.api.router import api_router
from authserver.api.utils import RejectedError, rejected_response
from authserver.config import settings
from authserver.database import close_db

logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking
if settings.sentry_dsn:
    import sentry_sdk

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        send_default_pii=False,
    )
    logger.info("Sentry initialized")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Schema is managed by Alembic migrations
    yield
    await close_db()


app = FastAPI(
    title="AuthServer API",
    description="Registration, login, verification tokens and two-factor authentication",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug_enabled else None,
    redoc_url="/api/redoc" if settings.debug_enabled else None,
    openapi_url="/api/openapi.json" if settings.debug_enabled else None,
)


@app.exception_handler(RejectedError)
async def rejected_handler(_request: Request, exc: RejectedError):
    return rejected_response(exc.rejected)


app.add_middleware(RequestLoggingMiddleware)  # type: ignore[arg-type]
# Added last so it wraps the logging middleware and the ID is set first
app.add_middleware(RequestIDMiddleware)  # type: ignore[arg-type]

app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Retry-After"],
)

app.include_router(api_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    from authserver.logging import get_uvicorn_log_config

    uvicorn.run(
        "authserver.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_config=get_uvicorn_log_config(),
    )
