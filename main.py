"""CollectionMarker Main Application."""

import asyncio
import signal
import sys

import uvicorn

from src import COLLECTIONMARKER_HEADER, log
from src.config.settings import get_config
from src.core.sched import CollectionMarkerService
from src.exceptions import LibraryError
from src.web.app import create_app


def _setup_signal_handlers(service: CollectionMarkerService) -> None:
    """Install SIGINT/SIGTERM handlers that request service shutdown."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.get_event_loop()

    def _on_signal(sig):
        name = signal.Signals(sig).name if sig else "UNKNOWN"
        log.info(
            f"CollectionMarker: Received {name} signal, initiating graceful shutdown..."
        )
        service.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: _on_signal(s))
        except NotImplementedError:
            # Fallback for environments that don't support add_signal_handler
            signal.signal(sig, lambda s, f: _on_signal(s))


def validate_configuration() -> bool:
    """Check that a Jellyfin token is configured and log a summary.

    Invalid values are already rejected when the configuration is loaded.

    Returns:
        bool: True if the service can start, False otherwise
    """
    config = get_config()
    if not config.jellyfin.token.get_secret_value():
        log.error("CollectionMarker: No Jellyfin token configured")
        return False

    log.info(f"CollectionMarker: {config!s}")
    return True


async def run() -> int:
    """Main application entry point.

    Initializes the service and runs until shutdown is requested.

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    service: CollectionMarkerService | None = None
    server_task: asyncio.Task | None = None

    ret = 0
    try:
        log.info("\n" + COLLECTIONMARKER_HEADER)

        if not validate_configuration():
            return 1
        config = get_config()

        service = CollectionMarkerService(config)
        await service.initialize()

        _setup_signal_handlers(service)

        if config.web.enabled:
            app = create_app(service)
            uv_config = uvicorn.Config(
                app,
                host=config.web.host,
                port=config.web.port,
                log_config=None,
                loop="asyncio",
                proxy_headers=True,
                forwarded_allow_ips="*",
            )

            server = uvicorn.Server(uv_config)
            # Use `_serve()` so uvicorn doesn't install its own signal handlers
            server_task = asyncio.create_task(server._serve())

            log.success(
                "CollectionMarker: Web API started at "
                f"\033[92mhttp://{config.web.host}:{config.web.port} "
                "(ctrl+c to stop)\033[0m"
            )

            await service.wait_for_completion()

            server.should_exit = True
            await server_task
        else:
            await service.wait_for_completion()
    except KeyboardInterrupt:
        log.info("CollectionMarker: Keyboard interrupt received, shutting down...")
    except LibraryError as e:
        log.error(f"CollectionMarker: Could not connect to Jellyfin: {e}")
        return 1
    except (OSError, PermissionError) as e:
        log.error(f"CollectionMarker: File system error: {e}")
        return 1
    except asyncio.CancelledError:
        log.info("CollectionMarker: Application cancelled")
        return 0
    except Exception as e:
        log.error(f"CollectionMarker: Unexpected application error: {e}", exc_info=True)
        return 1
    finally:
        if service:
            log.info("CollectionMarker: Shutting down application...")
            try:
                await service.close()
                log.success("CollectionMarker: Application shutdown complete")
            except asyncio.CancelledError:
                log.info("CollectionMarker: Shutdown cancelled")
                ret = 1
            except Exception as e:
                log.error(
                    f"CollectionMarker: Error during shutdown: {e}", exc_info=True
                )
                ret = 1
    return ret


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv (list[str] | None): Command-line arguments (unused).

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    try:
        return asyncio.run(run())
    except KeyboardInterrupt:
        log.info("CollectionMarker: Application interrupted")
        return 0
    except Exception as e:
        log.error(f"CollectionMarker: Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
