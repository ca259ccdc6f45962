"""Tests for the collection membership index."""

import pytest

from src.core.cache import CacheKey, CacheStore, MemoryKeyValueStore
from src.core.membership import MembershipIndex
from src.exceptions import FetchError
from src.models.media import MediaKind
from tests.fakes import FakeClock, FakeLibraryClient

TTLS = {MediaKind.MOVIE: 3600, MediaKind.SERIES: 300}


@pytest.fixture
def client() -> FakeLibraryClient:
    client = FakeLibraryClient()
    for item_id in ("m1", "m2", "m3"):
        client.add_item(item_id, MediaKind.MOVIE)
    client.add_item("s1", MediaKind.SERIES)
    client.add_collection("c1", ["m1", "s1"])
    client.add_collection("c2", ["m1", "m2"])
    return client


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def index(client: FakeLibraryClient, clock: FakeClock) -> MembershipIndex:
    return MembershipIndex(client, CacheStore(MemoryKeyValueStore(), clock), TTLS)


@pytest.mark.asyncio
async def test_membership_is_union_of_collection_members(
    index: MembershipIndex,
) -> None:
    membership = await index.get_membership(MediaKind.MOVIE)

    assert membership.item_ids == frozenset({"m1", "m2"})
    assert membership.collection_count == 2
    assert "m3" not in membership


@pytest.mark.asyncio
async def test_membership_filters_by_kind(index: MembershipIndex) -> None:
    membership = await index.get_membership(MediaKind.SERIES)

    assert membership.item_ids == frozenset({"s1"})


@pytest.mark.asyncio
async def test_cache_hit_makes_no_requests(
    index: MembershipIndex, client: FakeLibraryClient
) -> None:
    await index.get_membership(MediaKind.MOVIE)
    calls = dict(client.calls)

    membership = await index.get_membership(MediaKind.MOVIE)

    assert client.calls == calls
    assert membership.item_ids == frozenset({"m1", "m2"})


@pytest.mark.asyncio
async def test_force_refresh_bypasses_cache(
    index: MembershipIndex, client: FakeLibraryClient
) -> None:
    await index.get_membership(MediaKind.MOVIE)
    client.add_collection("c3", ["m3"])

    cached = await index.get_membership(MediaKind.MOVIE)
    fresh = await index.get_membership(MediaKind.MOVIE, force_refresh=True)

    assert "m3" not in cached
    assert "m3" in fresh
    assert client.calls["list_collections"] == 2


@pytest.mark.asyncio
async def test_expired_cache_is_rebuilt_with_kind_ttl(
    index: MembershipIndex, client: FakeLibraryClient, clock: FakeClock
) -> None:
    """Series membership uses its shorter ttl."""
    await index.get_membership(MediaKind.SERIES)
    await index.get_membership(MediaKind.MOVIE)

    clock.advance(300)
    await index.get_membership(MediaKind.SERIES)
    await index.get_membership(MediaKind.MOVIE)

    # Series rebuilt once more, movie still cached
    assert client.calls["list_collections"] == 3


@pytest.mark.asyncio
async def test_cache_is_served_just_before_ttl(
    index: MembershipIndex, client: FakeLibraryClient, clock: FakeClock
) -> None:
    """No library request is made while the entry is younger than its ttl."""
    await index.get_membership(MediaKind.SERIES)
    calls = dict(client.calls)

    clock.advance(299.5)
    membership = await index.get_membership(MediaKind.SERIES)

    assert client.calls == calls
    assert membership.item_ids == frozenset({"s1"})

    clock.advance(0.5)
    await index.get_membership(MediaKind.SERIES)
    assert client.calls["list_collections"] == calls["list_collections"] + 1


@pytest.mark.asyncio
async def test_failing_collection_is_skipped(
    index: MembershipIndex, client: FakeLibraryClient
) -> None:
    client.failing_collections.add("c2")

    membership = await index.get_membership(MediaKind.MOVIE)

    assert membership.item_ids == frozenset({"m1"})
    assert membership.skipped_collections == ("c2",)


@pytest.mark.asyncio
async def test_collection_list_failure_raises(
    index: MembershipIndex, client: FakeLibraryClient
) -> None:
    client.fail_collection_list = True

    with pytest.raises(FetchError):
        await index.get_membership(MediaKind.MOVIE)


@pytest.mark.asyncio
async def test_invalidate_drops_cached_membership(
    index: MembershipIndex, client: FakeLibraryClient
) -> None:
    await index.get_membership(MediaKind.MOVIE)

    index.invalidate(MediaKind.MOVIE)

    assert index.cache.get(CacheKey.MOVIE_MEMBERSHIP) is None
