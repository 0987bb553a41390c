"""Common schemas used across the API."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str | None = None


class SuccessResponse(BaseModel):
    """Standard success response."""

    message: str
    delivery_warning: str | None = None
