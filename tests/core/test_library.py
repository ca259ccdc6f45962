"""Tests for the provider id library index."""

import pytest

from src.core.cache import CacheKey, CacheStore, MemoryKeyValueStore
from src.core.library import LibraryIndex, provider_key
from src.models.media import MediaKind
from tests.fakes import FakeClock, FakeLibraryClient


@pytest.fixture
def client() -> FakeLibraryClient:
    client = FakeLibraryClient()
    client.add_item(
        "m1", MediaKind.MOVIE, ProviderIds={"Tmdb": "603", "Imdb": "tt0133093"}
    )
    client.add_item("m2", MediaKind.MOVIE, tags=["NotInCollection"])
    client.add_item("s1", MediaKind.SERIES, ProviderIds={"Tvdb": "81189"})
    return client


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def index(client: FakeLibraryClient, clock: FakeClock) -> LibraryIndex:
    return LibraryIndex(client, CacheStore(MemoryKeyValueStore(), clock), ttl=300)


def test_provider_key_is_normalized() -> None:
    assert provider_key("Tmdb", 603) == "tmdb:603"


@pytest.mark.asyncio
async def test_lookup_matches_by_provider(index: LibraryIndex) -> None:
    matches = await index.lookup(MediaKind.MOVIE, "TMDB", [603, "604"])

    assert matches["603"] is not None
    assert matches["603"].item_id == "m1"
    assert matches["604"] is None


@pytest.mark.asyncio
async def test_lookup_is_per_kind(index: LibraryIndex) -> None:
    assert (await index.lookup(MediaKind.SERIES, "tvdb", ["81189"]))["81189"]
    assert (await index.lookup(MediaKind.MOVIE, "tvdb", ["81189"]))["81189"] is None


@pytest.mark.asyncio
async def test_index_is_cached_until_ttl(
    index: LibraryIndex, client: FakeLibraryClient, clock: FakeClock
) -> None:
    await index.get_index(MediaKind.MOVIE)
    await index.lookup(MediaKind.MOVIE, "imdb", ["tt0133093"])
    assert client.calls["list_items"] == 1

    clock.advance(300)
    await index.get_index(MediaKind.MOVIE)
    assert client.calls["list_items"] == 2


@pytest.mark.asyncio
async def test_invalidated_index_is_rebuilt(
    index: LibraryIndex, client: FakeLibraryClient
) -> None:
    await index.get_index(MediaKind.MOVIE)
    client.records["m1"]["Tags"] = ["NotInCollection"]
    index.cache.invalidate_all(CacheKey.tag_dependent())

    result = await index.get_index(MediaKind.MOVIE)

    assert "NotInCollection" in result["tmdb:603"].tags
    assert client.calls["list_items"] == 2
