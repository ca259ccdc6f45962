"""Global web application state utilities.

Holds the reference to the long-lived service needed by route handlers.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from src import log
from src.exceptions import ServiceNotInitializedError

__all__ = ["AppState", "get_app_state"]

if TYPE_CHECKING:
    from src.core.sched import CollectionMarkerService


class AppState:
    """Container for global web application state."""

    def __init__(self) -> None:
        """Initialize empty state containers and record process start time."""
        self.service: CollectionMarkerService | None = None
        self.on_shutdown_callbacks: list[Callable[[], Any]] = []
        self.started_at: datetime = datetime.now(UTC)

    def set_service(self, service: CollectionMarkerService) -> None:
        """Set the service instance used by the routes.

        Args:
            service (CollectionMarkerService): The service instance to set.
        """
        self.service = service

    def require_service(self) -> CollectionMarkerService:
        """Return the service or fail when none was registered.

        Raises:
            ServiceNotInitializedError: If no service is available.
        """
        if self.service is None:
            raise ServiceNotInitializedError("Service not available")
        return self.service

    def add_shutdown_callback(self, cb: Callable[[], Any]) -> None:
        """Register a shutdown callback executed during app shutdown.

        Args:
            cb (Callable[[], Any]): The callback function to register.
        """
        self.on_shutdown_callbacks.append(cb)

    async def shutdown(self) -> None:
        """Run registered shutdown callbacks, logging individual errors."""
        for cb in self.on_shutdown_callbacks:
            try:
                res = cb()
                if hasattr(res, "__await__"):
                    await res
            except Exception:
                log.debug("Web: Shutdown callback failed", exc_info=True)
        self.on_shutdown_callbacks.clear()


@lru_cache(maxsize=1)
def get_app_state() -> AppState:
    """Get the singleton application state instance.

    Returns:
        AppState: The application state instance.
    """
    return AppState()
