"""API endpoints to drop cached library state."""

from fastapi import APIRouter, Path
from pydantic import BaseModel

from src.models.media import MediaKind
from src.web.state import get_app_state

__all__ = ["router"]


class OkResponse(BaseModel):
    ok: bool = True


router = APIRouter()


@router.delete("", response_model=OkResponse)
async def clear_cache() -> OkResponse:
    """Drop every cache entry so the next run queries the library."""
    get_app_state().require_service().clear_cache()
    return OkResponse()


@router.delete("/{kind}", response_model=OkResponse)
async def clear_kind_cache(kind: str = Path(...)) -> OkResponse:
    """Drop the cache entries of a single media kind."""
    get_app_state().require_service().clear_cache(MediaKind.parse(kind))
    return OkResponse()
