"""Database models."""

from src.models.db.base import Base
from src.models.db.cache_entry import CacheEntryRow
from src.models.db.housekeeping import Housekeeping

__all__ = ["Base", "CacheEntryRow", "Housekeeping"]
