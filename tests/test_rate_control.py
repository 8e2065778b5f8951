import asyncio

import pytest

from waybackx.workflows.rate_control import AdaptiveRateLimiter, parse_retry_after


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _limiter(clock=None, sleeps=None, **kwargs):
    recorded = sleeps if sleeps is not None else []

    async def fake_sleep(delay):
        recorded.append(delay)

    return AdaptiveRateLimiter(clock=clock or FakeClock(), sleep=fake_sleep, **kwargs)


def test_parse_retry_after_accepts_plain_seconds_only() -> None:
    assert parse_retry_after("10") == 10.0
    assert parse_retry_after(" 2.5 ") == 2.5
    assert parse_retry_after("") is None
    assert parse_retry_after(None) is None
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
    assert parse_retry_after("-3") is None
    assert parse_retry_after("inf") is None


def test_starts_at_one_request_per_second() -> None:
    limiter = _limiter()
    assert limiter.interval == 1.0
    assert limiter.snapshot() == {"interval_seconds": 1.0, "burst": 1, "adjustments": 0}


def test_retry_after_tightens_and_never_loosens() -> None:
    limiter = _limiter()

    async def scenario():
        changed = await limiter.adjust_from_headers({"Retry-After": "10"})
        assert changed is True
        assert limiter.interval >= 10
        assert await limiter.adjust_from_headers({"Retry-After": "3"}) is False
        assert await limiter.adjust_from_headers({"X-RateLimit-Remaining": "0"}) is False

    asyncio.run(scenario())
    assert limiter.interval == 10.0
    assert limiter.snapshot()["adjustments"] == 1


def test_low_remaining_quota_slows_to_five_seconds() -> None:
    for remaining in ("0", "1"):
        limiter = _limiter()
        changed = asyncio.run(limiter.adjust_from_headers({"X-RateLimit-Remaining": remaining}))
        assert changed is True
        assert limiter.interval == 5.0


def test_healthy_quota_and_unrelated_headers_are_ignored() -> None:
    limiter = _limiter()

    async def scenario():
        assert await limiter.adjust_from_headers({"X-RateLimit-Remaining": "42"}) is False
        assert await limiter.adjust_from_headers({"Content-Type": "text/plain"}) is False
        assert await limiter.adjust_from_headers({}) is False
        assert await limiter.adjust_from_headers(None) is False

    asyncio.run(scenario())
    assert limiter.interval == 1.0


def test_parsed_retry_after_wins_over_remaining_header() -> None:
    limiter = _limiter()
    headers = {"Retry-After": "0", "X-RateLimit-Remaining": "0"}
    assert asyncio.run(limiter.adjust_from_headers(headers)) is False
    assert limiter.interval == 1.0


def test_unparseable_retry_after_falls_through_to_remaining() -> None:
    limiter = _limiter()
    headers = {"Retry-After": "soon", "X-RateLimit-Remaining": "1"}
    assert asyncio.run(limiter.adjust_from_headers(headers)) is True
    assert limiter.interval == 5.0


def test_acquire_spaces_requests_by_interval() -> None:
    clock = FakeClock()
    sleeps = []
    limiter = _limiter(clock=clock, sleeps=sleeps)

    async def scenario():
        first = await limiter.acquire()
        second = await limiter.acquire()
        clock.now = 5.0
        third = await limiter.acquire()
        return first, second, third

    first, second, third = asyncio.run(scenario())
    assert first == 0.0
    assert second == pytest.approx(1.0)
    # bucket refilled to capacity (1) after the pause
    assert third == 0.0
    assert sleeps == [pytest.approx(1.0)]


def test_acquire_uses_tightened_interval() -> None:
    clock = FakeClock()
    limiter = _limiter(clock=clock)

    async def scenario():
        await limiter.acquire()
        await limiter.adjust_from_headers({"Retry-After": "10"})
        return await limiter.acquire()

    assert asyncio.run(scenario()) == pytest.approx(10.0)


def test_concurrent_callers_are_served_in_order() -> None:
    limiter = _limiter(clock=FakeClock())

    async def scenario():
        return await asyncio.gather(*(limiter.acquire() for _ in range(3)))

    delays = asyncio.run(scenario())
    assert delays == [0.0, pytest.approx(1.0), pytest.approx(2.0)]


def test_rejects_invalid_construction() -> None:
    with pytest.raises(ValueError):
        AdaptiveRateLimiter(interval=0)
    with pytest.raises(ValueError):
        AdaptiveRateLimiter(burst=0)


def test_acquire_wait_ends_when_cancelled() -> None:
    limiter = AdaptiveRateLimiter(interval=3600)

    async def scenario():
        event = asyncio.Event()
        await limiter.acquire(event)
        asyncio.get_running_loop().call_later(0.01, event.set)
        delay = await asyncio.wait_for(limiter.acquire(event), timeout=5)
        return delay, event.is_set()

    delay, cancelled = asyncio.run(scenario())
    assert cancelled is True
    assert delay == pytest.approx(3600.0, rel=1e-3)
