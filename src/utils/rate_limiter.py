"""Async request spacing for library writes."""

import asyncio
from time import monotonic

from src import log

__all__ = ["RequestThrottle"]


class RequestThrottle:
    """Throttle that sleeps so consecutive calls are spaced by a fixed interval.

    The throttle relies on the developer to call `wait_if_needed` before making a
    request. Concurrent callers are serialized so the spacing holds across tasks.
    """

    def __init__(self, log_name: str, min_interval: float = 0.05) -> None:
        self.log_name = log_name
        self.min_interval = max(0.0, min_interval)

        self._last_call: float | None = None
        self._lock = asyncio.Lock()

    async def wait_if_needed(self) -> None:
        """Sleeps until `min_interval` has passed since the previous call."""
        async with self._lock:
            now = monotonic()
            if self._last_call is not None and self.min_interval > 0:
                sleep_time = self.min_interval - (now - self._last_call)
                if sleep_time > 0:
                    log.debug(
                        f"{self.log_name}: Throttling, sleeping for "
                        f"{sleep_time:.3f} seconds"
                    )
                    await asyncio.sleep(sleep_time)
            self._last_call = monotonic()

    def reset(self) -> None:
        """Forget the previous call so the next one is not delayed."""
        self._last_call = None
