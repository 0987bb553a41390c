"""Liveness and readiness probes."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from authserver.api.deps import SessionDep
from authserver.tasks.queue import queue

logger = logging.getLogger(__name__)

router = APIRouter()

DATABASE_DOWN = {"status": "error", "database": "disconnected"}


async def _database_reachable(session) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database probe failed: {e!r}")
        return False
    return True


async def _redis_status() -> str:
    redis = getattr(queue, "redis", None)
    if redis is None:
        return "not_initialized"
    try:
        await redis.ping()
    except Exception as e:
        logger.warning(f"Redis probe failed: {e!r}")
        return "disconnected"
    return "connected"


@router.get("")
async def health_check():
    """The process is up."""
    return {"status": "ok"}


@router.get("/db")
async def health_check_db(session: SessionDep):
    if not await _database_reachable(session):
        return JSONResponse(status_code=503, content=DATABASE_DOWN)
    return {"status": "ok", "database": "connected"}


@router.get("/ready")
async def readiness_check(session: SessionDep):
    """Readiness for load balancers.

    The database is required. Redis only feeds the periodic sweeps, so when
    it is unreachable the probe reports ``degraded`` but still passes.
    """
    if not await _database_reachable(session):
        return JSONResponse(status_code=503, content=DATABASE_DOWN)

    redis_status = await _redis_status()
    return {
        "status": "ok" if redis_status == "connected" else "degraded",
        "database": "connected",
        "redis": redis_status,
    }
