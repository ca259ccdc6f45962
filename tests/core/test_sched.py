"""Tests for the auto-run scheduler and the service facade."""

import asyncio

import pytest
import pytest_asyncio

from src.config.settings import CollectionMarkerConfig
from src.core.cache import CacheKey, CacheStore, MemoryKeyValueStore
from src.core.membership import MembershipIndex
from src.core.reconcile import ReconciliationEngine
from src.core.sched import AutoRunPreference, AutoRunScheduler, CollectionMarkerService
from src.exceptions import (
    NotAuthorizedError,
    ServiceNotInitializedError,
    UnsupportedMediaKindError,
)
from src.models.events import CollectionMutation
from src.models.media import MediaKind
from src.models.run import RunState, RunTrigger
from src.utils.rate_limiter import RequestThrottle
from tests.fakes import FakeLibraryClient

MARKER = "NotInCollection"


class StubEngine:
    """Records the runs requested by the scheduler."""

    def __init__(self) -> None:
        self.runs: list[tuple[MediaKind, RunTrigger]] = []

    async def run(self, kind: MediaKind, trigger: RunTrigger):
        self.runs.append((kind, trigger))
        return None


@pytest.fixture
def preference(memory_db) -> AutoRunPreference:
    return AutoRunPreference(lambda: memory_db)


def _scheduler(
    preference: AutoRunPreference,
    privileged: bool = True,
    interval: float = 0.05,
    initial_delay: float = 0.0,
) -> tuple[AutoRunScheduler, StubEngine]:
    engine = StubEngine()

    async def is_privileged() -> bool:
        return privileged

    scheduler = AutoRunScheduler(
        engine,  # type: ignore[arg-type]
        [MediaKind.MOVIE, MediaKind.SERIES],
        preference,
        is_privileged,
        interval=interval,
        initial_delay=initial_delay,
    )
    return scheduler, engine


def test_preference_defaults_and_persists(memory_db) -> None:
    preference = AutoRunPreference(lambda: memory_db, default=True)
    assert preference.enabled is True

    preference.set(False)
    assert preference.enabled is False
    assert AutoRunPreference(lambda: memory_db, default=True).enabled is False


@pytest.mark.asyncio
async def test_scheduler_refuses_without_opt_in(
    preference: AutoRunPreference,
) -> None:
    scheduler, engine = _scheduler(preference)

    assert await scheduler.start() is False
    assert not scheduler.is_running
    assert engine.runs == []


@pytest.mark.asyncio
async def test_scheduler_refuses_without_privilege(
    preference: AutoRunPreference,
) -> None:
    preference.set(True)
    scheduler, _ = _scheduler(preference, privileged=False)

    assert await scheduler.start() is False
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_scheduler_runs_every_kind_periodically(
    preference: AutoRunPreference,
) -> None:
    preference.set(True)
    scheduler, engine = _scheduler(preference, interval=0.02)

    assert await scheduler.start() is True
    assert await scheduler.start() is True  # already running
    await asyncio.sleep(0.07)
    await scheduler.stop()

    assert len(engine.runs) >= 4
    assert engine.runs[:2] == [
        (MediaKind.MOVIE, RunTrigger.SCHEDULED),
        (MediaKind.SERIES, RunTrigger.SCHEDULED),
    ]
    assert not scheduler.is_running
    assert scheduler.next_run_at is None


@pytest.mark.asyncio
async def test_scheduler_waits_initial_delay(preference: AutoRunPreference) -> None:
    preference.set(True)
    scheduler, engine = _scheduler(preference, initial_delay=10)

    await scheduler.start()
    await asyncio.sleep(0.02)

    assert engine.runs == []
    assert scheduler.next_run_at is not None
    await scheduler.stop()
    assert engine.runs == []


@pytest.mark.asyncio
async def test_stop_without_start_is_safe(preference: AutoRunPreference) -> None:
    scheduler, _ = _scheduler(preference)
    await scheduler.stop()
    assert not scheduler.is_running


@pytest.fixture
def client() -> FakeLibraryClient:
    client = FakeLibraryClient()
    client.add_item("m1", MediaKind.MOVIE)
    client.add_item("m2", MediaKind.MOVIE, ProviderIds={"Tmdb": "603"})
    client.add_item("s1", MediaKind.SERIES)
    client.add_collection("c1", ["m1"])
    return client


def _config(**overrides) -> CollectionMarkerConfig:
    return CollectionMarkerConfig(
        marker_tag=MARKER,
        update_delay=0,
        watcher={"debounce_window": 0.01, "settle_delay": 0},
        auto_run={"interval": 60, "initial_delay": 30},
        **overrides,
    )


@pytest_asyncio.fixture
async def service(client: FakeLibraryClient, preference: AutoRunPreference):
    service = CollectionMarkerService(
        _config(),
        client=client,
        store=MemoryKeyValueStore(),
        preference=preference,
    )
    yield service
    await service.close()


@pytest.mark.asyncio
async def test_service_requires_initialization(
    service: CollectionMarkerService,
) -> None:
    with pytest.raises(ServiceNotInitializedError):
        await service.trigger_sync()
    with pytest.raises(ServiceNotInitializedError):
        service.observe(CollectionMutation(collection_id="c1"))


@pytest.mark.asyncio
async def test_service_initialize_starts_components(
    service: CollectionMarkerService, client: FakeLibraryClient
) -> None:
    await service.initialize()

    assert client.initialized
    assert service.initialized
    assert service.watcher.is_running
    assert not service.scheduler.is_running


@pytest.mark.asyncio
async def test_trigger_sync_reconciles_all_kinds(
    service: CollectionMarkerService, client: FakeLibraryClient
) -> None:
    await service.initialize()

    runs = await service.trigger_sync()

    assert set(runs) == {MediaKind.MOVIE, MediaKind.SERIES}
    assert runs[MediaKind.MOVIE] is not None
    assert runs[MediaKind.MOVIE].added_count == 1
    assert MARKER in client.tags("s1")


@pytest.mark.asyncio
async def test_trigger_sync_requires_administrator(
    preference: AutoRunPreference,
) -> None:
    client = FakeLibraryClient(administrator=False)
    client.add_item("m1", MediaKind.MOVIE)
    service = CollectionMarkerService(
        _config(), client=client, store=MemoryKeyValueStore(), preference=preference
    )
    await service.initialize()
    try:
        with pytest.raises(NotAuthorizedError):
            await service.trigger_sync(MediaKind.MOVIE)
        with pytest.raises(NotAuthorizedError):
            await service.set_auto_run(True)
        assert client.calls["update_item"] == 0
        assert client.tags("m1") == []
    finally:
        await service.close()


@pytest.mark.asyncio
async def test_trigger_sync_rejects_disabled_kind(
    client: FakeLibraryClient, preference: AutoRunPreference
) -> None:
    service = CollectionMarkerService(
        _config(kinds=["movie"]),
        client=client,
        store=MemoryKeyValueStore(),
        preference=preference,
    )
    await service.initialize()
    try:
        with pytest.raises(UnsupportedMediaKindError):
            await service.trigger_sync(MediaKind.SERIES)
    finally:
        await service.close()


@pytest.mark.asyncio
async def test_trigger_purge(
    service: CollectionMarkerService, client: FakeLibraryClient
) -> None:
    await service.initialize()
    await service.trigger_sync(MediaKind.MOVIE)

    runs = await service.trigger_purge(MediaKind.MOVIE)

    assert runs[MediaKind.MOVIE] is not None
    assert runs[MediaKind.MOVIE].removed_count == 1
    assert MARKER not in client.tags("m2")


@pytest.mark.asyncio
async def test_clear_cache_single_kind(service: CollectionMarkerService) -> None:
    await service.initialize()
    await service.trigger_sync()

    service.clear_cache(MediaKind.MOVIE)

    assert service.cache.get(CacheKey.MOVIE_MEMBERSHIP) is None
    assert service.cache.get(CacheKey.SERIES_MEMBERSHIP) is not None

    service.clear_cache()
    assert service.cache.get(CacheKey.SERIES_MEMBERSHIP) is None


@pytest.mark.asyncio
async def test_set_auto_run_toggles_scheduler(
    service: CollectionMarkerService, preference: AutoRunPreference
) -> None:
    await service.initialize()

    assert await service.set_auto_run(True) is True
    assert preference.enabled
    assert service.scheduler.is_running

    assert await service.set_auto_run(False) is False
    assert not preference.enabled
    assert not service.scheduler.is_running


@pytest.mark.asyncio
async def test_lookup_library(service: CollectionMarkerService) -> None:
    await service.initialize()

    matches = await service.lookup_library(MediaKind.MOVIE, "tmdb", ["603", "604"])

    assert matches["603"] is not None
    assert matches["603"].item_id == "m2"
    assert matches["604"] is None


@pytest.mark.asyncio
async def test_get_status(service: CollectionMarkerService) -> None:
    await service.initialize()
    await service.trigger_sync(MediaKind.MOVIE)

    status = service.get_status()

    assert status.initialized
    assert status.privileged is True
    assert status.marker_tag == MARKER
    movie = status.kinds["movie"]
    assert movie.state == RunState.DONE
    assert movie.last_run is not None
    assert movie.membership_cache.valid
    assert status.kinds["series"].state == RunState.IDLE
    assert not status.scheduler.enabled
    assert status.watcher_running


@pytest.mark.asyncio
async def test_stop_does_not_interrupt_applying_run(
    client: FakeLibraryClient, preference: AutoRunPreference
) -> None:
    """Stopping the scheduler leaves a run that reached Applying to finish."""
    cache = CacheStore(MemoryKeyValueStore())
    engine = ReconciliationEngine(
        client,
        MembershipIndex(client, cache, {MediaKind.MOVIE: 3600, MediaKind.SERIES: 300}),
        cache,
        MARKER,
        RequestThrottle("test", 0),
    )

    async def is_privileged() -> bool:
        return True

    preference.set(True)
    scheduler = AutoRunScheduler(
        engine,
        [MediaKind.MOVIE],
        preference,
        is_privileged,
        interval=60,
        initial_delay=0,
    )
    client.update_gate = asyncio.Event()

    await scheduler.start()
    async with asyncio.timeout(2):
        while engine.state(MediaKind.MOVIE) != RunState.APPLYING:
            await asyncio.sleep(0.005)

    await scheduler.stop()
    assert not scheduler.is_running
    assert engine.state(MediaKind.MOVIE) == RunState.APPLYING

    client.update_gate.set()
    async with asyncio.timeout(2):
        while engine.state(MediaKind.MOVIE) != RunState.DONE:
            await asyncio.sleep(0.005)

    run = engine.last_run(MediaKind.MOVIE)
    assert run is not None
    assert run.trigger == RunTrigger.SCHEDULED
    assert run.added_count == 1
    assert MARKER in client.tags("m2")
