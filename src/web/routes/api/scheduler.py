"""API endpoints controlling background reconciliation."""

from fastapi import APIRouter
from pydantic import BaseModel

from src.web.state import get_app_state

__all__ = ["router"]


class SchedulerToggleRequest(BaseModel):
    enabled: bool


class SchedulerToggleResponse(BaseModel):
    enabled: bool
    running: bool


router = APIRouter()


@router.put("", response_model=SchedulerToggleResponse)
async def toggle_scheduler(body: SchedulerToggleRequest) -> SchedulerToggleResponse:
    """Persist the auto-run opt-in and start or stop the scheduler.

    Raises:
        NotAuthorizedError: If enabling from a non-administrator session.
    """
    service = get_app_state().require_service()
    running = await service.set_auto_run(body.enabled)
    return SchedulerToggleResponse(enabled=body.enabled, running=running)
