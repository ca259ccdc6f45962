"""Models Initialization Module."""

from src.models.db import Base, CacheEntryRow, Housekeeping
from src.models.events import CollectionMutation, MutationAction
from src.models.media import Collection, MediaItem, MediaKind, MembershipSet
from src.models.run import ReconciliationRun, RunState, RunTrigger

__all__ = [
    "Base",
    "CacheEntryRow",
    "Collection",
    "CollectionMutation",
    "Housekeeping",
    "MediaItem",
    "MediaKind",
    "MembershipSet",
    "MutationAction",
    "ReconciliationRun",
    "RunState",
    "RunTrigger",
]
