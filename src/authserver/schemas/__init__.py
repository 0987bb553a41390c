"""Pydantic schemas for API requests/responses."""

from authserver.schemas.common import ErrorResponse, SuccessResponse

__all__ = [
    "ErrorResponse",
    "SuccessResponse",
]
