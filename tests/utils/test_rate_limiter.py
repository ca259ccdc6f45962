"""Tests for the async request throttle."""

import asyncio

import pytest

from src.utils import rate_limiter as rate_limiter_module
from src.utils.rate_limiter import RequestThrottle


@pytest.mark.asyncio
async def test_first_call_does_not_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    monkeypatch.setattr(rate_limiter_module.asyncio, "sleep", fake_sleep)

    await RequestThrottle("test", min_interval=1.0).wait_if_needed()

    assert sleeps == []


@pytest.mark.asyncio
async def test_consecutive_calls_are_spaced(monkeypatch: pytest.MonkeyPatch) -> None:
    now = [100.0]
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        now[0] += seconds

    monkeypatch.setattr(rate_limiter_module, "monotonic", lambda: now[0])
    monkeypatch.setattr(rate_limiter_module.asyncio, "sleep", fake_sleep)

    throttle = RequestThrottle("test", min_interval=0.5)
    await throttle.wait_if_needed()
    now[0] += 0.25
    await throttle.wait_if_needed()

    assert sleeps == [pytest.approx(0.25)]


@pytest.mark.asyncio
async def test_reset_skips_next_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    monkeypatch.setattr(rate_limiter_module.asyncio, "sleep", fake_sleep)

    throttle = RequestThrottle("test", min_interval=10)
    await throttle.wait_if_needed()
    throttle.reset()
    await throttle.wait_if_needed()

    assert sleeps == []


@pytest.mark.asyncio
async def test_zero_interval_never_sleeps() -> None:
    throttle = RequestThrottle("test", min_interval=0)
    await asyncio.wait_for(
        asyncio.gather(*(throttle.wait_if_needed() for _ in range(10))), 1
    )


def test_negative_interval_is_clamped() -> None:
    assert RequestThrottle("test", min_interval=-1).min_interval == 0.0
