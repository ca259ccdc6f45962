"""Status snapshot models returned by the service and the web API."""

from datetime import datetime

from pydantic import BaseModel

from src.models.run import ReconciliationRun, RunState

__all__ = ["CacheStatus", "KindStatus", "SchedulerStatus", "ServiceStatus"]


class CacheStatus(BaseModel):
    key: str
    cached_at: datetime | None = None
    ttl: float | None = None
    expires_in: float | None = None
    valid: bool = False


class KindStatus(BaseModel):
    state: RunState
    current_run: ReconciliationRun | None = None
    last_run: ReconciliationRun | None = None
    membership_cache: CacheStatus
    library_cache: CacheStatus


class SchedulerStatus(BaseModel):
    enabled: bool
    running: bool
    interval: float
    initial_delay: float
    next_run_at: datetime | None = None


class ServiceStatus(BaseModel):
    """Point-in-time view of the service, one entry per configured kind."""

    marker_tag: str
    initialized: bool
    privileged: bool | None = None
    kinds: dict[str, KindStatus]
    scheduler: SchedulerStatus
    watcher_running: bool
