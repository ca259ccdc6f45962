"""Library media models."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.exceptions import UnsupportedMediaKindError
from src.utils.types import BaseStrEnum

__all__ = ["Collection", "MediaItem", "MediaKind", "MembershipSet"]


class MediaKind(BaseStrEnum):
    """Kinds of library items that can carry the marker tag."""

    MOVIE = "movie"
    SERIES = "series"

    @property
    def item_type(self) -> str:
        """Jellyfin ``IncludeItemTypes`` value for this kind."""
        return _ITEM_TYPES[self]

    @classmethod
    def parse(cls, value: str) -> MediaKind:
        """Resolve a user supplied kind name such as ``movie`` or ``Series``.

        Raises:
            UnsupportedMediaKindError: If the value names no supported kind.
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise UnsupportedMediaKindError(f"Unsupported media kind: {value}") from None

    @classmethod
    def from_item_type(cls, item_type: str) -> MediaKind:
        """Resolve a Jellyfin item type (``Movie``/``Series``) to a media kind.

        Raises:
            UnsupportedMediaKindError: If the item type is not a movie or series.
        """
        for kind, value in _ITEM_TYPES.items():
            if value.lower() == item_type.lower():
                return kind
        raise UnsupportedMediaKindError(f"Unsupported item type: {item_type}")


_ITEM_TYPES = {MediaKind.MOVIE: "Movie", MediaKind.SERIES: "Series"}


class MediaItem(BaseModel):
    """A movie or series as returned by the library item queries.

    Only the fields the reconciliation needs are modeled; the untouched
    server record is kept in ``raw`` so updates can resend it verbatim.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="Id")
    name: str = Field(default="", alias="Name")
    tags: frozenset[str] = Field(default_factory=frozenset, alias="Tags")
    provider_ids: dict[str, str] = Field(default_factory=dict, alias="ProviderIds")
    item_type: str | None = Field(default=None, alias="Type")
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> MediaItem:
        """Build an item from a Jellyfin ``BaseItemDto`` dictionary."""
        return cls.model_validate(
            {
                "Id": record["Id"],
                "Name": record.get("Name") or "",
                "Tags": record.get("Tags") or [],
                "ProviderIds": record.get("ProviderIds") or {},
                "Type": record.get("Type"),
                "raw": record,
            }
        )

    def has_tag(self, tag: str) -> bool:
        """Return whether the item currently carries ``tag``."""
        return tag in self.tags

    def __repr__(self) -> str:
        """Return a short representation used in log lines."""
        return f"<{self.item_type or 'Item'}:{self.id}:{self.name}>"


class Collection(BaseModel):
    """A curated grouping (Jellyfin BoxSet) of library items."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="Id")
    name: str = Field(default="", alias="Name")
    member_ids: frozenset[str] = Field(default_factory=frozenset)


class MembershipSet(BaseModel):
    """Union of collection member ids for a single media kind."""

    model_config = ConfigDict(frozen=True)

    kind: MediaKind
    item_ids: frozenset[str] = Field(default_factory=frozenset)
    collection_count: int = 0
    skipped_collections: tuple[str, ...] = ()

    @classmethod
    def from_ids(
        cls,
        kind: MediaKind,
        item_ids: Iterable[str],
        collection_count: int = 0,
        skipped_collections: Iterable[str] = (),
    ) -> MembershipSet:
        """Create a membership set from any iterable of ids."""
        return cls(
            kind=kind,
            item_ids=frozenset(item_ids),
            collection_count=collection_count,
            skipped_collections=tuple(skipped_collections),
        )

    def __contains__(self, item_id: object) -> bool:
        """Return whether ``item_id`` belongs to at least one collection."""
        return item_id in self.item_ids

    def __len__(self) -> int:
        """Return the number of distinct member ids."""
        return len(self.item_ids)
