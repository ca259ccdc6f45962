"""Provider id to library item index."""

from typing import Any

from pydantic import BaseModel, ConfigDict

from src import log
from src.core.cache import CacheKey, CacheStore
from src.core.jellyfin import LibraryClient
from src.models.media import MediaItem, MediaKind

__all__ = ["LibraryIndex", "LibraryMatch"]


class LibraryMatch(BaseModel):
    """Library item matched by an external provider id."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    name: str = ""
    tags: frozenset[str] = frozenset()


def provider_key(provider: str, external_id: str | int) -> str:
    """Normalized lookup key, e.g. ``tmdb:603``."""
    return f"{provider.lower()}:{external_id}"


class LibraryIndex:
    """Cached map from external provider ids (TMDB, IMDb, TVDB) to library items.

    Lets callers answer "is this title already in the library?" for many titles
    with a single library query. The payload includes item tags, so the index
    is dropped whenever a run changes tags.
    """

    def __init__(self, client: LibraryClient, cache: CacheStore, ttl: float) -> None:
        self.client = client
        self.cache = cache
        self.ttl = ttl

    async def get_index(
        self, kind: MediaKind, force_refresh: bool = False
    ) -> dict[str, LibraryMatch]:
        """Return the provider key to library item map for ``kind``.

        Raises:
            FetchError: If the library items cannot be fetched.
        """
        key = CacheKey.library(kind)
        payload: dict[str, Any] | None = None
        if not force_refresh:
            payload = self.cache.get(key)

        if payload is None:
            items = await self.client.list_items(kind)
            payload = self._build_payload(items)
            self.cache.set(key, payload, self.ttl)
            log.debug(f"Indexed {len(payload)} provider ids for {len(items)} {kind}")

        return {
            pkey: LibraryMatch.model_validate(value) for pkey, value in payload.items()
        }

    async def lookup(
        self, kind: MediaKind, provider: str, external_ids: list[str | int]
    ) -> dict[str, LibraryMatch | None]:
        """Resolve a batch of external ids of one provider to library items.

        Returns:
            dict[str, LibraryMatch | None]: Match per external id (as a string),
                None when the title is not in the library.
        """
        index = await self.get_index(kind)
        return {
            str(external_id): index.get(provider_key(provider, external_id))
            for external_id in external_ids
        }

    @staticmethod
    def _build_payload(items: list[MediaItem]) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for item in items:
            entry = {
                "item_id": item.id,
                "name": item.name,
                "tags": sorted(item.tags),
            }
            for provider, external_id in item.provider_ids.items():
                if external_id:
                    payload[provider_key(provider, external_id)] = entry
        return payload
