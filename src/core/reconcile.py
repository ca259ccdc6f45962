"""Collection membership reconciliation engine."""

from collections.abc import Iterable

from src import log
from src.core.cache import CacheKey, CacheStore
from src.core.jellyfin import LibraryClient
from src.core.membership import MembershipIndex
from src.core.records import ItemRecordBuilder
from src.exceptions import LibraryError, UpdateError
from src.models.media import MediaItem, MediaKind, MembershipSet
from src.models.run import ReconciliationRun, RunState, RunTrigger
from src.utils.rate_limiter import RequestThrottle

__all__ = ["ReconciliationContext", "ReconciliationEngine", "diff_items"]


def diff_items(
    items: Iterable[MediaItem], membership: MembershipSet, marker: str
) -> tuple[list[MediaItem], list[MediaItem]]:
    """Split items into those that need the marker added and removed.

    Items already in the correct state appear in neither list.

    Returns:
        tuple[list[MediaItem], list[MediaItem]]: ``(to_add, to_remove)``.
    """
    to_add: list[MediaItem] = []
    to_remove: list[MediaItem] = []
    for item in items:
        in_collection = item.id in membership
        marked = item.has_tag(marker)
        if not in_collection and not marked:
            to_add.append(item)
        elif in_collection and marked:
            to_remove.append(item)
    return to_add, to_remove


class ReconciliationContext:
    """Run state of one media kind."""

    def __init__(self, kind: MediaKind) -> None:
        self.kind = kind
        self.state = RunState.IDLE
        self.current: ReconciliationRun | None = None
        self.last_run: ReconciliationRun | None = None

    @property
    def is_active(self) -> bool:
        return self.state.is_active


class ReconciliationEngine:
    """Keeps the marker tag on exactly the items that are in no collection.

    A run collects the membership set and the library items of one kind,
    computes which items must gain or lose the marker and applies the changes
    one item at a time. At most one run (or purge) per kind is active at once;
    a trigger arriving while one is active is dropped.
    """

    def __init__(
        self,
        client: LibraryClient,
        membership: MembershipIndex,
        cache: CacheStore,
        marker_tag: str,
        throttle: RequestThrottle,
    ) -> None:
        """Initialize the engine.

        Args:
            client (LibraryClient): Library used to read and update items.
            membership (MembershipIndex): Source of collection membership.
            cache (CacheStore): Cache whose tag-dependent keys are dropped after
                a run that changed tags.
            marker_tag (str): Tag marking items that are in no collection.
            throttle (RequestThrottle): Spacing between item updates.
        """
        self.client = client
        self.membership = membership
        self.cache = cache
        self.marker_tag = marker_tag
        self.throttle = throttle
        self._contexts = {kind: ReconciliationContext(kind) for kind in MediaKind}

    def state(self, kind: MediaKind) -> RunState:
        """Current state of ``kind``."""
        return self._contexts[kind].state

    def current_run(self, kind: MediaKind) -> ReconciliationRun | None:
        """The run of ``kind`` in progress, if any."""
        return self._contexts[kind].current

    def last_run(self, kind: MediaKind) -> ReconciliationRun | None:
        """The most recently finished run of ``kind``, if any."""
        return self._contexts[kind].last_run

    def is_running(self, kind: MediaKind) -> bool:
        return self._contexts[kind].is_active

    async def run(
        self, kind: MediaKind, trigger: RunTrigger
    ) -> ReconciliationRun | None:
        """Reconcile the marker tag for every item of ``kind``.

        Args:
            kind (MediaKind): Media kind to reconcile.
            trigger (RunTrigger): What caused the run. Manual and mutation
                triggers bypass the cached membership.

        Returns:
            ReconciliationRun | None: The finished run, or None if a run of this
                kind was already active.
        """
        context = self._begin(kind, trigger)
        if context is None:
            return None
        run = context.current
        assert run is not None

        log.info(f"[{kind}] Starting {trigger} reconciliation")
        try:
            try:
                membership = await self.membership.get_membership(
                    kind, force_refresh=trigger.forces_refresh
                )
                items = await self.client.list_items(kind)
            except LibraryError as e:
                log.error(f"[{kind}] Failed to collect library state", exc_info=True)
                return self._finish(context, RunState.FAILED, str(e))

            self._advance(context, RunState.DIFFING)
            to_add, to_remove = diff_items(items, membership, self.marker_tag)
            run.skipped_count = len(items) - len(to_add) - len(to_remove)
            log.debug(
                f"[{kind}] {len(items)} items, {len(membership)} in collections: "
                f"$${{add: {len(to_add)}, remove: {len(to_remove)}}}$$"
            )

            self._advance(context, RunState.APPLYING)
            for item in to_add:
                await self._apply(run, item, present=True)
            for item in to_remove:
                await self._apply(run, item, present=False)

            return self._finish(context, RunState.DONE)
        except Exception as e:
            log.error(f"[{kind}] Reconciliation aborted", exc_info=True)
            return self._finish(context, RunState.FAILED, str(e)) or run
        finally:
            if context.current is run:
                # Cancelled mid-run
                self._finish(context, RunState.FAILED, "cancelled")

    async def purge(
        self, kind: MediaKind, trigger: RunTrigger = RunTrigger.MANUAL
    ) -> ReconciliationRun | None:
        """Remove the marker tag from every item of ``kind`` that carries it.

        Returns:
            ReconciliationRun | None: The finished run, or None if a run of this
                kind was already active.
        """
        context = self._begin(kind, trigger)
        if context is None:
            return None
        run = context.current
        assert run is not None

        log.info(f"[{kind}] Removing marker $$'{self.marker_tag}'$$ from all items")
        try:
            try:
                items = await self.client.list_items(kind, tags=[self.marker_tag])
            except LibraryError as e:
                log.error(f"[{kind}] Failed to list marked items", exc_info=True)
                return self._finish(context, RunState.FAILED, str(e))

            self._advance(context, RunState.DIFFING)
            marked = [item for item in items if item.has_tag(self.marker_tag)]

            self._advance(context, RunState.APPLYING)
            for item in marked:
                await self._apply(run, item, present=False)

            return self._finish(context, RunState.DONE)
        except Exception as e:
            log.error(f"[{kind}] Marker purge aborted", exc_info=True)
            return self._finish(context, RunState.FAILED, str(e)) or run
        finally:
            if context.current is run:
                self._finish(context, RunState.FAILED, "cancelled")

    async def apply_marker(self, item_id: str, present: bool) -> bool:
        """Add or remove the marker on a single item outside of a run.

        Returns:
            bool: True if the item ends up in the requested state.
        """
        try:
            changed = await self._write_marker(item_id, present)
        except UpdateError:
            log.error(
                f"Failed to {'add' if present else 'remove'} marker on item "
                f"$$'{item_id}'$$",
                exc_info=True,
            )
            return False
        if changed:
            self._invalidate_tag_dependent()
        return True

    def _begin(
        self, kind: MediaKind, trigger: RunTrigger
    ) -> ReconciliationContext | None:
        context = self._contexts[kind]
        if context.is_active:
            log.debug(
                f"[{kind}] Ignoring {trigger} trigger, a run is already "
                f"{context.state}"
            )
            return None
        context.current = ReconciliationRun(
            kind=kind, trigger=trigger, state=RunState.COLLECTING
        )
        context.state = RunState.COLLECTING
        return context

    def _advance(self, context: ReconciliationContext, state: RunState) -> None:
        context.state = state
        if context.current is not None:
            context.current.state = state

    def _finish(
        self,
        context: ReconciliationContext,
        state: RunState,
        error: str | None = None,
    ) -> ReconciliationRun | None:
        run = context.current
        if run is None:
            return None
        run.finish(state, error)
        context.state = state
        context.current = None
        context.last_run = run

        if state == RunState.DONE:
            if run.changed:
                self._invalidate_tag_dependent()
            message = f"[{run.kind}] Finished {run.trigger} run: {run.summary()}"
            if run.failed_count:
                log.warning(message)
            else:
                log.success(message)
        else:
            log.error(f"[{run.kind}] {run.trigger.capitalize()} run failed: {error}")
        return run

    def _invalidate_tag_dependent(self) -> None:
        """Drop the caches derived from item tags, logging storage failures."""
        try:
            self.cache.invalidate_all(CacheKey.tag_dependent())
        except Exception:
            log.error("Failed to invalidate tag-dependent caches", exc_info=True)

    async def _apply(
        self, run: ReconciliationRun, item: MediaItem, present: bool
    ) -> None:
        try:
            changed = await self._write_marker(item.id, present)
        except UpdateError:
            run.failed_count += 1
            log.error(
                f"[{run.kind}] Failed to {'add' if present else 'remove'} marker "
                f"on $$'{item.name or item.id}'$$",
                exc_info=True,
            )
            return

        if not changed:
            run.skipped_count += 1
        elif present:
            run.added_count += 1
        else:
            run.removed_count += 1

    async def _write_marker(self, item_id: str, present: bool) -> bool:
        """Read the full record of an item and rewrite it with the marker delta.

        Returns:
            bool: Whether an update was sent.

        Raises:
            UpdateError: If the record cannot be read or the update fails.
        """
        try:
            record = await self.client.get_item(item_id)
        except LibraryError as e:
            raise UpdateError(item_id, str(e)) from e

        try:
            payload = ItemRecordBuilder.with_marker(record, self.marker_tag, present)
        except ValueError as e:
            raise UpdateError(item_id, str(e)) from e
        if payload is None:
            return False

        await self.throttle.wait_if_needed()
        await self.client.update_item(item_id, payload)
        return True
