"""Cache Entry Model Module."""

from typing import Any

from sqlalchemy import JSON, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.db.base import Base

__all__ = ["CacheEntryRow"]


class CacheEntryRow(Base):
    """Persisted cache entry.

    Rows are replaced wholesale on refresh; ``created_at`` is a POSIX
    timestamp and ``ttl`` a duration in seconds.
    """

    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    payload: Mapped[Any] = mapped_column(JSON(none_as_null=True), nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)
    ttl: Mapped[float] = mapped_column(Float, nullable=False)
