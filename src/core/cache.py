"""TTL cache over a durable key-value store."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

from src import log
from src.config.database import CollectionMarkerDB
from src.models.db import CacheEntryRow
from src.models.media import MediaKind
from src.utils.types import BaseStrEnum

__all__ = [
    "CacheEntry",
    "CacheKey",
    "CacheStore",
    "DatabaseKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
]


class CacheKey(BaseStrEnum):
    """The closed set of cache keys known to the application."""

    MOVIE_MEMBERSHIP = "membership:movie"
    SERIES_MEMBERSHIP = "membership:series"
    MOVIE_LIBRARY = "library:movie"
    SERIES_LIBRARY = "library:series"

    @classmethod
    def membership(cls, kind: MediaKind) -> CacheKey:
        """Key holding the collection membership ids of ``kind``."""
        return cls(f"membership:{kind.value}")

    @classmethod
    def library(cls, kind: MediaKind) -> CacheKey:
        """Key holding the provider id to library id index of ``kind``."""
        return cls(f"library:{kind.value}")

    @classmethod
    def tag_dependent(cls) -> tuple[CacheKey, ...]:
        """Keys whose payload is derived from item tags."""
        return (cls.MOVIE_LIBRARY, cls.SERIES_LIBRARY)


class CacheEntry(BaseModel):
    """A cached payload together with the time it was stored and its lifetime."""

    model_config = ConfigDict(frozen=True)

    payload: Any
    timestamp: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_valid(self, now: float) -> bool:
        """An entry whose age has reached its ttl is expired."""
        return self.age(now) < self.ttl


class KeyValueStore(Protocol):
    """Durable storage used by `CacheStore`."""

    def read(self, key: str) -> CacheEntry | None: ...

    def write(self, key: str, entry: CacheEntry) -> None: ...

    def delete(self, keys: Iterable[str]) -> None: ...


class MemoryKeyValueStore:
    """Process-local store, mostly useful for tests."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def read(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def write(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._entries.pop(key, None)


class DatabaseKeyValueStore:
    """Store backed by the ``cache_entries`` table of the application database."""

    def __init__(self, db: Callable[[], CollectionMarkerDB]) -> None:
        self._db = db

    def read(self, key: str) -> CacheEntry | None:
        with self._db() as ctx:
            row = ctx.session.get(CacheEntryRow, key)
            if row is None:
                return None
            return CacheEntry(
                payload=row.payload, timestamp=row.created_at, ttl=row.ttl
            )

    def write(self, key: str, entry: CacheEntry) -> None:
        with self._db() as ctx:
            ctx.session.merge(
                CacheEntryRow(
                    key=key,
                    payload=entry.payload,
                    created_at=entry.timestamp,
                    ttl=entry.ttl,
                )
            )
            ctx.session.commit()

    def delete(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        with self._db() as ctx:
            ctx.session.query(CacheEntryRow).filter(
                CacheEntryRow.key.in_(keys)
            ).delete(synchronize_session=False)
            ctx.session.commit()


class CacheStore:
    """Typed-key cache with per-entry time-to-live.

    The store never computes values: callers fill it on a miss. Entries are
    replaced wholesale by `set`, never modified in place.
    """

    def __init__(
        self, store: KeyValueStore, clock: Callable[[], float] = time.time
    ) -> None:
        """Initialize the cache.

        Args:
            store (KeyValueStore): Backing storage for entries.
            clock (Callable[[], float]): Returns the current time in seconds.
        """
        self.store = store
        self.clock = clock

    def get(self, key: CacheKey) -> Any | None:
        """Return the payload for ``key``, or None when absent or expired."""
        entry = self.store.read(key.value)
        if entry is None:
            return None
        if not entry.is_valid(self.clock()):
            log.debug(f"Cache entry $$'{key}'$$ expired")
            return None
        return entry.payload

    def entry(self, key: CacheKey) -> CacheEntry | None:
        """Return the raw entry for ``key`` regardless of its validity."""
        return self.store.read(key.value)

    def set(self, key: CacheKey, payload: Any, ttl: float) -> None:
        """Store ``payload`` under ``key`` for ``ttl`` seconds."""
        self.store.write(
            key.value, CacheEntry(payload=payload, timestamp=self.clock(), ttl=ttl)
        )

    def invalidate(self, key: CacheKey) -> None:
        """Drop the entry for ``key``."""
        self.invalidate_all((key,))

    def invalidate_all(self, keys: Iterable[CacheKey]) -> None:
        """Drop the entries for all ``keys``."""
        keys = list(keys)
        self.store.delete(key.value for key in keys)
        names = ", ".join(f"$$'{key}'$$" for key in keys)
        log.debug(f"Invalidated {names}")

    def clear(self) -> None:
        """Drop every known cache entry."""
        self.invalidate_all(CacheKey)
