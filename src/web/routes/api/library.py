"""API endpoints to check which titles are already in the library."""

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel

from src.core.library import LibraryMatch
from src.models.media import MediaKind
from src.web.state import get_app_state

__all__ = ["router"]


class LibraryLookupResponse(BaseModel):
    provider: str
    matches: dict[str, LibraryMatch | None]


router = APIRouter()


@router.get("/{kind}/lookup", response_model=LibraryLookupResponse)
async def lookup(
    kind: str = Path(...),
    provider: str = Query("tmdb"),
    ids: list[str] | None = Query(None),
) -> LibraryLookupResponse:
    """Resolve external ids (e.g. TMDB ids) to items already in the library."""
    service = get_app_state().require_service()
    matches = await service.lookup_library(MediaKind.parse(kind), provider, ids or [])
    return LibraryLookupResponse(provider=provider.lower(), matches=matches)
