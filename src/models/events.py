"""Inbound collection mutation events."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from src.models.media import MediaKind
from src.utils.types import BaseStrEnum

__all__ = ["CollectionMutation", "MutationAction"]


class MutationAction(BaseStrEnum):
    """What happened to a collection."""

    ADDED = "added"  # items were added to the collection
    REMOVED = "removed"  # items were removed from the collection
    CHANGED = "changed"  # collection created, renamed or deleted


class CollectionMutation(BaseModel):
    """A detected write to a collection, fed to the mutation watcher."""

    collection_id: str | None = None
    action: MutationAction = MutationAction.CHANGED
    kind: MediaKind | None = None
    item_ids: tuple[str, ...] = ()
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def targets_items(self) -> bool:
        """Whether the event names the affected items directly."""
        return bool(self.item_ids) and self.action in (
            MutationAction.ADDED,
            MutationAction.REMOVED,
        )
