"""Core Module Initialization."""

from src.core.cache import CacheKey, CacheStore
from src.core.jellyfin import JellyfinClient, LibraryClient
from src.core.reconcile import ReconciliationEngine

from src.core.sched import CollectionMarkerService  # isort:skip

__all__ = [
    "CacheKey",
    "CacheStore",
    "CollectionMarkerService",
    "JellyfinClient",
    "LibraryClient",
    "ReconciliationEngine",
]
