"""Scheduler Module."""

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime, timedelta

from tzlocal import get_localzone

from src import log
from src.config.database import CollectionMarkerDB, db
from src.config.settings import CollectionMarkerConfig
from src.core.cache import CacheKey, CacheStore, DatabaseKeyValueStore, KeyValueStore
from src.core.jellyfin import JellyfinClient, LibraryClient
from src.core.library import LibraryIndex, LibraryMatch
from src.core.membership import MembershipIndex
from src.core.reconcile import ReconciliationEngine
from src.core.watcher import MutationWatcher
from src.exceptions import (
    LibraryError,
    NotAuthorizedError,
    ServiceNotInitializedError,
    UnsupportedMediaKindError,
)
from src.models.db.housekeeping import Housekeeping
from src.models.events import CollectionMutation
from src.models.media import MediaKind
from src.models.run import ReconciliationRun, RunTrigger
from src.models.status import (
    CacheStatus,
    KindStatus,
    SchedulerStatus,
    ServiceStatus,
)
from src.utils.rate_limiter import RequestThrottle

__all__ = ["AutoRunPreference", "AutoRunScheduler", "CollectionMarkerService"]


class AutoRunPreference:
    """Persisted opt-in flag for background reconciliation.

    Stored in the housekeeping table; until it is first written the configured
    default applies.
    """

    KEY = "auto_run_enabled"

    def __init__(
        self, db: Callable[[], CollectionMarkerDB], default: bool = False
    ) -> None:
        self._db = db
        self.default = default

    @property
    def enabled(self) -> bool:
        with self._db() as ctx:
            value = Housekeeping.read(ctx.session, self.KEY)
        if value is None:
            return self.default
        return value == "true"

    def set(self, enabled: bool) -> None:
        with self._db() as ctx:
            Housekeeping.write(ctx.session, self.KEY, "true" if enabled else "false")
        log.info(f"Auto-run {'enabled' if enabled else 'disabled'}")


class AutoRunScheduler:
    """Runs the reconciliation engine periodically for every configured kind.

    The scheduler only starts when the persisted opt-in flag is set and the
    library session is privileged. It waits `initial_delay` before the first
    run and `interval` between runs. Stopping cancels the waits but never a
    run that is already in progress.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        kinds: Sequence[MediaKind],
        preference: AutoRunPreference,
        is_privileged: Callable[[], Awaitable[bool]],
        interval: float = 300,
        initial_delay: float = 15,
    ) -> None:
        """Initialize the scheduler.

        Args:
            engine (ReconciliationEngine): Engine to trigger.
            kinds (Sequence[MediaKind]): Kinds reconciled on every tick.
            preference (AutoRunPreference): Persisted opt-in flag.
            is_privileged (Callable[[], Awaitable[bool]]): Authorization check.
            interval (float): Seconds between runs.
            initial_delay (float): Seconds before the first run.
        """
        self.engine = engine
        self.kinds = list(kinds)
        self.preference = preference
        self.is_privileged = is_privileged
        self.interval = interval
        self.initial_delay = initial_delay

        self.next_run_at: datetime | None = None
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()  # Prevents early GC

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, interval: float | None = None) -> bool:
        """Start periodic runs.

        Args:
            interval (float | None): Override the configured interval.

        Returns:
            bool: Whether the scheduler is running after the call.
        """
        if self.is_running:
            return True
        if not self.preference.enabled:
            log.info("Auto-run is disabled, not scheduling reconciliations")
            return False
        if not await self.is_privileged():
            log.warning("Auto-run requires an administrator session, not starting")
            return False

        if interval is not None:
            self.interval = interval
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._periodic_loop())
        log.info(
            f"Auto-run started: first run in {self.initial_delay:g}s, then every "
            f"{self.interval:g}s"
        )
        return True

    async def stop(self) -> None:
        """Stop periodic runs. Safe to call when not started."""
        task = self._task
        self._task = None
        self.next_run_at = None
        self._stop_event.set()
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            log.info("Auto-run stopped")

    async def run_once(self) -> list[ReconciliationRun | None]:
        """Trigger one scheduled run for every configured kind."""
        runs: list[ReconciliationRun | None] = []
        for kind in self.kinds:
            task = asyncio.ensure_future(self.engine.run(kind, RunTrigger.SCHEDULED))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            try:
                runs.append(await asyncio.shield(task))
            except asyncio.CancelledError:
                raise
            except Exception:
                log.error(f"[{kind}] Scheduled run failed", exc_info=True)
        return runs

    async def _wait(self, seconds: float) -> bool:
        """Wait up to ``seconds``; return True if a stop was requested."""
        self.next_run_at = datetime.now(UTC) + timedelta(seconds=seconds)
        log.debug(
            f"Next scheduled run at: {self.next_run_at.astimezone(get_localzone())}"
        )
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), seconds)
        return self._stop_event.is_set()

    async def _periodic_loop(self) -> None:
        """Handle periodic reconciliation."""
        if self.initial_delay > 0 and await self._wait(self.initial_delay):
            return

        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                log.debug("Periodic run cancelled")
                raise
            except Exception:
                log.error("Periodic run error", exc_info=True)

            if await self._wait(self.interval):
                break


class CollectionMarkerService:
    """Owns the library client, caches, engine, watcher and scheduler.

    Entry point for the web API and the main process. Manual operations
    refuse to run for sessions without administrator rights.
    """

    def __init__(
        self,
        config: CollectionMarkerConfig,
        client: LibraryClient | None = None,
        store: KeyValueStore | None = None,
        preference: AutoRunPreference | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Wire the service components from configuration.

        Args:
            config (CollectionMarkerConfig): Application configuration.
            client (LibraryClient | None): Library client; a `JellyfinClient` is
                built from the configuration when omitted.
            store (KeyValueStore | None): Cache storage; the application
                database when omitted.
            preference (AutoRunPreference | None): Auto-run opt-in storage.
            clock (Callable[[], float]): Clock used for cache expiry.
        """
        self.config = config
        self.kinds = list(config.kinds)
        self.client: LibraryClient = client or JellyfinClient(
            url=config.jellyfin.url,
            token=config.jellyfin.token.get_secret_value(),
            user_id=config.jellyfin.user_id,
            request_timeout=config.jellyfin.request_timeout,
        )
        self.cache = CacheStore(store or DatabaseKeyValueStore(db), clock=clock)
        self.membership = MembershipIndex(
            self.client,
            self.cache,
            {kind: config.cache.membership_ttl(kind) for kind in MediaKind},
        )
        self.library = LibraryIndex(
            self.client, self.cache, config.cache.library_index_ttl
        )
        self.engine = ReconciliationEngine(
            self.client,
            self.membership,
            self.cache,
            marker_tag=config.marker_tag,
            throttle=RequestThrottle("ItemUpdates", config.update_delay),
        )
        self.watcher = MutationWatcher(
            self.engine,
            self.membership,
            self.kinds,
            debounce_window=config.watcher.debounce_window,
            settle_delay=config.watcher.settle_delay,
        )
        self.preference = preference or AutoRunPreference(
            db, default=config.auto_run.enabled
        )
        self.scheduler = AutoRunScheduler(
            self.engine,
            self.kinds,
            self.preference,
            self.is_privileged,
            interval=config.auto_run.interval,
            initial_delay=config.auto_run.initial_delay,
        )

        self.stop_event = asyncio.Event()
        self._privileged: bool | None = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def request_shutdown(self) -> None:
        """Request application shutdown from external callers."""
        if not self.stop_event.is_set():
            self.stop_event.set()

    async def wait_for_completion(self) -> None:
        """Wait until shutdown is requested."""
        await self.stop_event.wait()

    async def initialize(self) -> None:
        """Connect to the library and start the watcher and the scheduler."""
        if self._initialized:
            return
        log.info("Initializing CollectionMarker service")

        await self.client.initialize()
        privileged = await self.is_privileged()
        if not privileged:
            log.warning(
                "Jellyfin session is not an administrator, tags will not be modified"
            )

        await self.watcher.start()
        self._initialized = True
        await self.scheduler.start()
        log.success(
            f"Service ready: marker $$'{self.config.marker_tag}'$$ for "
            f"{', '.join(str(k) for k in self.kinds)}"
        )

    async def close(self) -> None:
        """Stop the scheduler and the watcher and close the library client."""
        await self.scheduler.stop()
        await self.watcher.stop()
        await self.client.close()
        self._initialized = False
        log.info("Service stopped")

    async def is_privileged(self) -> bool:
        """Whether the library session may modify item metadata."""
        if self._privileged is None:
            try:
                self._privileged = await self.client.is_administrator()
            except LibraryError:
                log.error("Failed to check administrator rights", exc_info=True)
                return False
        return self._privileged

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise ServiceNotInitializedError("Service is not initialized")

    async def _require_privileged(self) -> None:
        if not await self.is_privileged():
            raise NotAuthorizedError("An administrator session is required")

    def _resolve_kinds(self, kind: MediaKind | None) -> list[MediaKind]:
        if kind is None:
            return list(self.kinds)
        if kind not in self.kinds:
            raise UnsupportedMediaKindError(f"Media kind '{kind}' is not enabled")
        return [kind]

    async def trigger_sync(
        self, kind: MediaKind | None = None
    ) -> dict[MediaKind, ReconciliationRun | None]:
        """Manually reconcile one kind, or every configured kind.

        Returns:
            dict[MediaKind, ReconciliationRun | None]: Run per kind; None when a
                run of that kind was already active.

        Raises:
            ServiceNotInitializedError: If `initialize` has not completed.
            NotAuthorizedError: If the session is not privileged.
            UnsupportedMediaKindError: If ``kind`` is not configured.
        """
        self._require_initialized()
        await self._require_privileged()
        kinds = self._resolve_kinds(kind)
        log.info(f"Manually triggering sync for {', '.join(str(k) for k in kinds)}")
        return {k: await self.engine.run(k, RunTrigger.MANUAL) for k in kinds}

    async def trigger_purge(
        self, kind: MediaKind | None = None
    ) -> dict[MediaKind, ReconciliationRun | None]:
        """Remove the marker from every item of one kind, or of every kind.

        Raises:
            ServiceNotInitializedError: If `initialize` has not completed.
            NotAuthorizedError: If the session is not privileged.
            UnsupportedMediaKindError: If ``kind`` is not configured.
        """
        self._require_initialized()
        await self._require_privileged()
        kinds = self._resolve_kinds(kind)
        return {k: await self.engine.purge(k, RunTrigger.MANUAL) for k in kinds}

    def clear_cache(self, kind: MediaKind | None = None) -> None:
        """Drop every cache entry, or the entries of one kind."""
        if kind is None:
            self.cache.clear()
            log.info("Cleared all caches")
            return
        self.cache.invalidate_all((CacheKey.membership(kind), CacheKey.library(kind)))
        log.info(f"[{kind}] Cleared caches")

    def observe(self, event: CollectionMutation) -> None:
        """Feed a collection mutation event to the watcher."""
        self._require_initialized()
        self.watcher.observe(event)

    async def set_auto_run(self, enabled: bool) -> bool:
        """Persist the auto-run opt-in and start or stop the scheduler.

        Returns:
            bool: Whether the scheduler is running afterwards.

        Raises:
            NotAuthorizedError: If enabling from an unprivileged session.
        """
        if enabled:
            await self._require_privileged()
            self.preference.set(True)
            return await self.scheduler.start()
        self.preference.set(False)
        await self.scheduler.stop()
        return False

    async def lookup_library(
        self, kind: MediaKind, provider: str, external_ids: list[str]
    ) -> dict[str, LibraryMatch | None]:
        """Resolve external provider ids to library items of ``kind``."""
        self._require_initialized()
        self._resolve_kinds(kind)
        return await self.library.lookup(kind, provider, list(external_ids))

    def _cache_status(self, key: CacheKey) -> CacheStatus:
        entry = self.cache.entry(key)
        if entry is None:
            return CacheStatus(key=key.value)
        now = self.cache.clock()
        return CacheStatus(
            key=key.value,
            cached_at=datetime.fromtimestamp(entry.timestamp, UTC),
            ttl=entry.ttl,
            expires_in=max(0.0, entry.ttl - entry.age(now)),
            valid=entry.is_valid(now),
        )

    def get_status(self) -> ServiceStatus:
        """Snapshot of run states, caches and scheduler."""
        kinds = {
            str(kind): KindStatus(
                state=self.engine.state(kind),
                current_run=self.engine.current_run(kind),
                last_run=self.engine.last_run(kind),
                membership_cache=self._cache_status(CacheKey.membership(kind)),
                library_cache=self._cache_status(CacheKey.library(kind)),
            )
            for kind in self.kinds
        }
        return ServiceStatus(
            marker_tag=self.config.marker_tag,
            initialized=self._initialized,
            privileged=self._privileged,
            kinds=kinds,
            scheduler=SchedulerStatus(
                enabled=self.preference.enabled,
                running=self.scheduler.is_running,
                interval=self.scheduler.interval,
                initial_delay=self.scheduler.initial_delay,
                next_run_at=self.scheduler.next_run_at,
            ),
            watcher_running=self.watcher.is_running,
        )
