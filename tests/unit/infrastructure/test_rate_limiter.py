"""Tests for the sliding-window rate limiter."""

import asyncio

import pytest

from cardcatalog.infrastructure.rate_limiter import RateLimiter, RateLimiterConfig


class FakeMonotonic:
    """Monotonic clock that only moves when someone sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeMonotonic:
    return FakeMonotonic()


def _limiter(clock: FakeMonotonic, max_calls: int = 3, period: float = 1.0) -> RateLimiter:
    return RateLimiter(
        config=RateLimiterConfig(max_calls=max_calls, period_seconds=period),
        clock=clock,
        sleep=clock.sleep,
    )


class TestRateLimiterConfig:
    """Config validation."""

    def test_rejects_zero_calls(self) -> None:
        with pytest.raises(ValueError):
            RateLimiterConfig(max_calls=0)

    def test_rejects_non_positive_period(self) -> None:
        with pytest.raises(ValueError):
            RateLimiterConfig(period_seconds=0)

    def test_for_acoustid_integer_rate(self) -> None:
        limiter = RateLimiter.for_acoustid(3)
        assert limiter.config.max_calls == 3
        assert limiter.config.period_seconds == 1.0
        assert limiter.name == "acoustid"

    def test_for_acoustid_fractional_rate(self) -> None:
        limiter = RateLimiter.for_acoustid(0.5)
        assert limiter.config.max_calls == 1
        assert limiter.config.period_seconds == 2.0

    def test_for_musicbrainz_never_exceeds_one_per_second(self) -> None:
        limiter = RateLimiter.for_musicbrainz(5)
        assert limiter.config.max_calls == 1
        assert limiter.config.period_seconds == 1.0


class TestRateLimiterAdmission:
    """Window and fairness."""

    async def test_first_calls_pass_without_waiting(self, clock: FakeMonotonic) -> None:
        limiter = _limiter(clock)
        for _ in range(3):
            await limiter.acquire()
        assert clock.sleeps == []
        assert limiter.total_admitted == 3

    async def test_fourth_call_waits_for_window(self, clock: FakeMonotonic) -> None:
        limiter = _limiter(clock)
        for _ in range(4):
            await limiter.acquire()
        assert clock.sleeps == [1.0]
        assert clock.now == 1.0

    async def test_hundred_concurrent_callers_never_exceed_three_per_second(
        self, clock: FakeMonotonic
    ) -> None:
        """100 concurrent lookups under a 3/s cap: no 1s window sees more than 3."""
        limiter = _limiter(clock)
        completions: list[float] = []

        async def lookup() -> None:
            await limiter.acquire()
            completions.append(clock())

        await asyncio.gather(*(lookup() for _ in range(100)))

        assert len(completions) == 100
        for start in completions:
            in_window = [t for t in completions if start <= t < start + 1.0]
            assert len(in_window) <= 3
        # 100 calls at 3/s need at least 33 full windows
        assert clock.now >= 33.0

    async def test_admission_is_fifo(self, clock: FakeMonotonic) -> None:
        limiter = _limiter(clock, max_calls=1)
        order: list[int] = []

        async def worker(number: int) -> None:
            await limiter.acquire()
            order.append(number)

        await asyncio.gather(*(worker(i) for i in range(10)))

        assert order == list(range(10))

    async def test_context_manager_acquires(self, clock: FakeMonotonic) -> None:
        limiter = _limiter(clock)
        async with limiter:
            assert limiter.in_flight == 1
        assert limiter.total_admitted == 1
        assert limiter.in_flight == 0


class TestRateLimiterHeldSlots:
    """`async with` keeps the slot until the call completed."""

    async def test_running_calls_keep_their_slots(self, clock: FakeMonotonic) -> None:
        limiter = _limiter(clock)

        async with limiter, limiter, limiter:
            waiter = asyncio.create_task(limiter.acquire())
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            assert not waiter.done()

            # a slow call still owns its slot long after the window it started in
            clock.now = 10.0
            await asyncio.sleep(0)
            assert not waiter.done()

        await waiter

        # the window counts from the completions at 10.0
        assert clock.now == 11.0
        assert clock.sleeps == [1.0]

    async def test_slow_calls_never_bunch_completions(self, clock: FakeMonotonic) -> None:
        """Three calls finishing late plus three new ones: never 4 completions in 1s."""
        limiter = _limiter(clock)
        completions: list[float] = []

        async def call(latency: float) -> None:
            async with limiter:
                clock.now += latency
            completions.append(clock())

        for latency in (0.5, 0.0, 0.0, 0.0, 0.0, 0.0):
            await call(latency)

        for start in completions:
            assert len([t for t in completions if start <= t < start + 1.0]) <= 3

    async def test_slot_is_released_when_the_call_raises(self, clock: FakeMonotonic) -> None:
        limiter = _limiter(clock)

        with pytest.raises(RuntimeError):
            async with limiter:
                raise RuntimeError("boom")

        assert limiter.in_flight == 0


class TestRateLimiterBackoff:
    """429 handling."""

    async def test_retry_after_blocks_admissions(self, clock: FakeMonotonic) -> None:
        limiter = _limiter(clock)
        waited = await limiter.handle_rate_limit_response(retry_after=5.0)
        assert waited == 5.0

        await limiter.acquire()

        assert clock.now == 5.0

    async def test_backoff_grows_and_resets(self, clock: FakeMonotonic) -> None:
        limiter = _limiter(clock)
        assert await limiter.handle_rate_limit_response() == 1.0
        assert await limiter.handle_rate_limit_response() == 2.0
        assert await limiter.handle_rate_limit_response() == 4.0

        limiter.reset_backoff()

        assert await limiter.handle_rate_limit_response() == 1.0

    async def test_backoff_is_capped(self, clock: FakeMonotonic) -> None:
        limiter = RateLimiter(
            config=RateLimiterConfig(max_backoff_seconds=10.0),
            clock=clock,
            sleep=clock.sleep,
        )
        assert await limiter.handle_rate_limit_response(retry_after=300.0) == 10.0
