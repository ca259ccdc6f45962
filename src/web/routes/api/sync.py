"""API endpoints to trigger reconciliation runs."""

from __future__ import annotations

from fastapi import APIRouter, Path
from pydantic import BaseModel

from src.models.media import MediaKind
from src.models.run import ReconciliationRun
from src.web.state import get_app_state

__all__ = ["SyncResponse", "router"]


class SyncResponse(BaseModel):
    """Outcome of a manual run, one entry per kind.

    A kind maps to None when a run of that kind was already in progress.
    """

    ok: bool = True
    runs: dict[str, ReconciliationRun | None]
    refresh_required: bool = False

    @classmethod
    def from_runs(
        cls, runs: dict[MediaKind, ReconciliationRun | None]
    ) -> SyncResponse:
        return cls(
            runs={str(kind): run for kind, run in runs.items()},
            refresh_required=any(
                run is not None and run.refresh_required for run in runs.values()
            ),
        )


router = APIRouter()


@router.post("", response_model=SyncResponse)
async def sync_all() -> SyncResponse:
    """Reconcile every configured media kind.

    Returns:
        SyncResponse: The finished runs.

    Raises:
        ServiceNotInitializedError: If the service is not running.
        NotAuthorizedError: If the Jellyfin session is not an administrator.
    """
    service = get_app_state().require_service()
    return SyncResponse.from_runs(await service.trigger_sync())


@router.post("/{kind}", response_model=SyncResponse)
async def sync_kind(kind: str = Path(...)) -> SyncResponse:
    """Reconcile a single media kind.

    Raises:
        UnsupportedMediaKindError: If the kind is unknown or not enabled.
    """
    service = get_app_state().require_service()
    return SyncResponse.from_runs(await service.trigger_sync(MediaKind.parse(kind)))


@router.post("/{kind}/purge", response_model=SyncResponse)
async def purge_kind(kind: str = Path(...)) -> SyncResponse:
    """Remove the marker tag from every item of a media kind."""
    service = get_app_state().require_service()
    return SyncResponse.from_runs(await service.trigger_purge(MediaKind.parse(kind)))
