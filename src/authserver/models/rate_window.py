"""Rate window model for fixed-window attempt counting."""

from datetime import datetime

from sqlalchemy import DateTime, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from authserver.models.base import generate_nanoid


class RateWindow(SQLModel, table=True):
    """Attempt counter for one (identifier, action) window.

    One row per key; a window that has elapsed is restarted in place.
    """

    __tablename__ = "rate_windows"
    __table_args__ = (
        UniqueConstraint("identifier", "action_type", name="rate_windows_key_uniq"),
        Index("rate_windows_window_start_idx", "window_start"),
    )

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    identifier: str = Field(max_length=255, description="IP address or account identifier")
    action_type: str = Field(max_length=50)
    attempt_count: int = Field(default=1)
    window_start: datetime = Field(
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )
