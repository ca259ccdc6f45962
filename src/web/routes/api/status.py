"""API status endpoints."""

from fastapi.routing import APIRouter

from src.models.status import ServiceStatus
from src.web.state import get_app_state

__all__ = ["router"]

router = APIRouter()


@router.get("", response_model=ServiceStatus)
async def status() -> ServiceStatus:
    """Get run states, cache ages and scheduler state.

    Returns:
        ServiceStatus: The status of the service.
    """
    return get_app_state().require_service().get_status()
