"""Collection mutation watcher."""

import asyncio
import contextlib
from collections.abc import Sequence

from src import log
from src.core.membership import MembershipIndex
from src.core.reconcile import ReconciliationEngine
from src.models.events import CollectionMutation, MutationAction
from src.models.media import MediaKind
from src.models.run import ReconciliationRun, RunTrigger

__all__ = ["MutationWatcher"]


class MutationWatcher:
    """Turns bursts of collection mutation events into debounced reconciliations.

    Events are queued by `observe` and drained by a consumer task. Each event
    restarts the debounce window; once the window passes without new events
    the watcher waits a settle delay, drops the cached membership and runs the
    engine once for every affected kind.

    Events that name the added or removed items are also applied to those
    items right away.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        membership: MembershipIndex,
        kinds: Sequence[MediaKind],
        debounce_window: float = 1.2,
        settle_delay: float = 1.2,
    ) -> None:
        """Initialize the watcher.

        Args:
            engine (ReconciliationEngine): Engine triggered after each burst.
            membership (MembershipIndex): Index whose cache is dropped before
                triggering.
            kinds (Sequence[MediaKind]): Kinds reconciled when an event does not
                say which kind it concerns.
            debounce_window (float): Quiet period after the last event (seconds).
            settle_delay (float): Extra wait before triggering (seconds).
        """
        self.engine = engine
        self.membership = membership
        self.kinds = list(kinds)
        self.debounce_window = debounce_window
        self.settle_delay = settle_delay

        self._queue: asyncio.Queue[CollectionMutation] = asyncio.Queue()
        self._consumer: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()  # Prevents early GC
        self.last_runs: list[ReconciliationRun | None] = []

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def observe(self, event: CollectionMutation) -> None:
        """Queue a collection mutation event."""
        log.debug(
            f"Observed {event.action} on collection $$'{event.collection_id}'$$"
            + (f" ({len(event.item_ids)} items)" if event.item_ids else "")
        )
        self._queue.put_nowait(event)

    async def start(self) -> None:
        """Start consuming events."""
        if self.is_running:
            return
        self._consumer = asyncio.create_task(self._consume())
        log.debug(
            f"Watching collection mutations (window {self.debounce_window:g}s, "
            f"settle {self.settle_delay:g}s)"
        )

    async def stop(self) -> None:
        """Stop consuming events, dropping any window that has not fired yet."""
        consumer = self._consumer
        self._consumer = None
        if consumer is not None and not consumer.done():
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        while not self._queue.empty():
            self._queue.get_nowait()

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            pending: set[MediaKind] = set()
            self._accept(event, pending)

            while True:
                try:
                    event = await asyncio.wait_for(
                        self._queue.get(), timeout=self.debounce_window
                    )
                except TimeoutError:
                    break
                self._accept(event, pending)

            try:
                if self.settle_delay > 0:
                    await asyncio.sleep(self.settle_delay)
                await self._fire(pending)
            except asyncio.CancelledError:
                raise
            except Exception:
                log.error("Mutation window failed", exc_info=True)

    def _accept(self, event: CollectionMutation, pending: set[MediaKind]) -> None:
        if event.kind is not None and event.kind in self.kinds:
            pending.add(event.kind)
        else:
            pending.update(self.kinds)

        if event.targets_items:
            # Added to a collection -> drop the marker, removed -> add it
            present = event.action == MutationAction.REMOVED
            task = asyncio.create_task(self._apply_items(event.item_ids, present))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _apply_items(self, item_ids: Sequence[str], present: bool) -> None:
        for item_id in item_ids:
            await self.engine.apply_marker(item_id, present)

    async def _fire(self, kinds: set[MediaKind]) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self.membership.invalidate()
        runs: list[ReconciliationRun | None] = []
        for kind in [k for k in self.kinds if k in kinds]:
            task = asyncio.ensure_future(self.engine.run(kind, RunTrigger.MUTATION))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            try:
                runs.append(await asyncio.shield(task))
            except asyncio.CancelledError:
                raise
            except Exception:
                log.error(f"[{kind}] Mutation-triggered run failed", exc_info=True)
        self.last_runs = runs
