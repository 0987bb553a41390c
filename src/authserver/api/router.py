"""Main API router that aggregates all route modules."""

from fastapi import APIRouter

from authserver.api import auth, health, two_factor

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(two_factor.router, prefix="/auth/2fa", tags=["2fa"])
