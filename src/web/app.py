"""FastAPI application factory and setup."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi.applications import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request

from src import __version__, log
from src.core.sched import CollectionMarkerService
from src.exceptions import CollectionMarkerError
from src.web.routes import router
from src.web.state import get_app_state

__all__ = ["create_app"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan context manager.

    Args:
        app (FastAPI): The FastAPI application instance.

    Returns:
        AsyncGenerator: The application lifespan context manager.
    """
    service: CollectionMarkerService | None = app.extra.get("service")
    if service is None:
        log.info("Web: No service passed; external lifecycle management expected")
    else:
        get_app_state().set_service(service)
        if not service.initialized:
            await service.initialize()
            get_app_state().add_shutdown_callback(service.close)
            log.success("Web: Service started for web API")
    try:
        yield
    finally:
        await get_app_state().shutdown()


def create_app(service: CollectionMarkerService | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        service (CollectionMarkerService | None): The service instance.

    Returns:
        FastAPI: The created FastAPI application.
    """
    app = FastAPI(title="CollectionMarker", lifespan=lifespan, version=__version__)

    if service:
        app.extra["service"] = service
        get_app_state().set_service(service)

    app.include_router(router)

    @app.exception_handler(CollectionMarkerError)
    async def domain_exception_handler(
        request: Request, exc: CollectionMarkerError
    ) -> JSONResponse:
        """Handle CollectionMarker errors with structured JSON responses.

        Args:
            request (Request): The incoming HTTP request.
            exc (CollectionMarkerError): The exception instance.

        Returns:
            JSONResponse: Structured JSON response with error details.
        """
        cls = exc.__class__
        payload = {
            "error": cls.__name__,
            "detail": str(exc) or cls.__doc__ or "",
            "path": request.url.path,
        }
        return JSONResponse(status_code=cls.status_code, content=payload)

    return app
