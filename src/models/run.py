"""Reconciliation run tracking models."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field, computed_field

from src.models.media import MediaKind
from src.utils.types import BaseStrEnum

__all__ = ["ReconciliationRun", "RunState", "RunTrigger"]


class RunTrigger(BaseStrEnum):
    """What caused a reconciliation run."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"
    MUTATION = "mutation"

    @property
    def forces_refresh(self) -> bool:
        """Whether the membership cache must be bypassed for this trigger.

        Scheduled passes reuse a warm cache; manual syncs and collection
        mutations need fresh membership data.
        """
        return self is not RunTrigger.SCHEDULED


class RunState(BaseStrEnum):
    """Lifecycle of a reconciliation run for one media kind."""

    IDLE = "idle"
    COLLECTING = "collecting"
    DIFFING = "diffing"
    APPLYING = "applying"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        """Whether a run in this state blocks new runs of the same kind."""
        return self in (RunState.COLLECTING, RunState.DIFFING, RunState.APPLYING)


class ReconciliationRun(BaseModel):
    """Counters and timing of a single reconciliation or purge pass."""

    kind: MediaKind
    trigger: RunTrigger
    state: RunState = RunState.IDLE
    added_count: int = 0
    removed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    error: str | None = None

    @computed_field
    @property
    def changed(self) -> int:
        """Number of items whose marker tag was successfully changed."""
        return self.added_count + self.removed_count

    @computed_field
    @property
    def refresh_required(self) -> bool:
        """Whether the UI should reload because tag state changed."""
        return self.state == RunState.DONE and self.changed > 0

    @property
    def duration(self) -> float | None:
        """Elapsed seconds, once the run has finished."""
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def finish(self, state: RunState, error: str | None = None) -> None:
        """Mark the run as finished with a terminal ``state``."""
        self.state = state
        self.error = error
        self.finished_at = datetime.now(UTC)

    def summary(self) -> str:
        """Return a one-line human readable summary."""
        return (
            f"+{self.added_count} / -{self.removed_count}, "
            f"{self.skipped_count} unchanged, {self.failed_count} failed"
        )
