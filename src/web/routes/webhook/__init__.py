"""Webhook route aggregator."""

from fastapi.routing import APIRouter

from src.web.routes.webhook.collections import router as collections_router

__all__ = ["router"]

router = APIRouter()
router.include_router(collections_router, prefix="/collections")
