"""API routes."""

from fastapi.routing import APIRouter

from src.web.routes.api.cache import router as cache_router
from src.web.routes.api.library import router as library_router
from src.web.routes.api.scheduler import router as scheduler_router
from src.web.routes.api.status import router as status_router
from src.web.routes.api.sync import router as sync_router

__all__ = ["router"]

router = APIRouter()


router.include_router(sync_router, prefix="/sync", tags=["sync"])
router.include_router(cache_router, prefix="/cache", tags=["cache"])
router.include_router(status_router, prefix="/status", tags=["status"])
router.include_router(scheduler_router, prefix="/scheduler", tags=["scheduler"])
router.include_router(library_router, prefix="/library", tags=["library"])
