"""
Rate limiter for the identification service.

Hey future me – this is THE one shared thing in the whole scan pipeline! Every resolver
worker gets the SAME instance passed in (no module-level singleton - tests build their
own instance with a fake clock). If you ever create one limiter per worker, the AcoustID
budget is silently multiplied by the worker count and we get throttled/banned.

ALGORITHM: sliding window over COMPLETIONS
- `async with limiter:` holds a slot from admission until the call finished, then the
  slot stays taken for period_seconds after the completion
- A new request is admitted when fewer than max_calls slots are taken (calls in flight
  plus calls that completed in the last period_seconds)
- So no period_seconds window ever sees more than max_calls calls COMPLETE, no matter
  how the latency of the calls varies
- Plain acquire() is a call that completes on admission (the slot starts right away)

Why not the token bucket with burst capacity? AcoustID says "3 requests per second",
and a bucket that refilled while idle lets 3 + refill through inside one second.

FAIRNESS: waiters queue on one asyncio.Lock which wakes them in FIFO order, and the
lock is held while sleeping, so nobody overtakes a waiting worker.

ADAPTIVE BACKOFF on 429:
- The service told us to slow down: block ALL admissions until the backoff passes
- Retry-After wins if given, otherwise 1s, 2s, 4s... (reset after success)

USAGE:
    limiter = RateLimiter.for_acoustid(requests_per_second=3)

    async with limiter:
        candidates = await client.lookup(fingerprint)
"""

import asyncio
import logging
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter.

    Defaults match AcoustID's published limit: 3 requests per second.
    """

    max_calls: int = 3  # Admissions per window
    period_seconds: float = 1.0  # Window length
    max_backoff_seconds: float = 120.0  # Cap for 429 backoff
    initial_backoff_seconds: float = 1.0  # First 429 wait
    backoff_multiplier: float = 2.0  # Exponential backoff factor

    def __post_init__(self) -> None:
        if self.max_calls < 1:
            raise ValueError(f"max_calls must be >= 1, got {self.max_calls}")
        if self.period_seconds <= 0:
            raise ValueError(f"period_seconds must be > 0, got {self.period_seconds}")


@dataclass
class RateLimiter:
    """Sliding-window rate limiter with FIFO admission and adaptive backoff.

    Attributes:
        config: Rate limiter configuration
        clock: Monotonic time source (injectable for tests)
        sleep: Async sleep function (injectable for tests)
        name: Label for log messages
    """

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    name: str = "default"

    # Internal state (not in __init__ signature)
    # Completion times of the calls still inside the window
    _completions: deque[float] = field(default_factory=deque, init=False)
    _in_flight: int = field(default=0, init=False)
    _released: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _blocked_until: float = field(default=0.0, init=False)
    _current_backoff: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _total_admitted: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self._current_backoff = self.config.initial_backoff_seconds

    @classmethod
    def for_acoustid(
        cls, requests_per_second: float = 3.0, **kwargs: Any
    ) -> "RateLimiter":
        """Create rate limiter for the AcoustID lookup API.

        Fractional rates (e.g. 0.5/s) are expressed as 1 call per 2 seconds.
        """
        if requests_per_second >= 1:
            config = RateLimiterConfig(
                max_calls=math.floor(requests_per_second), period_seconds=1.0
            )
        else:
            config = RateLimiterConfig(
                max_calls=1, period_seconds=1.0 / requests_per_second
            )
        return cls(config=config, name="acoustid", **kwargs)

    @classmethod
    def for_musicbrainz(
        cls, requests_per_second: float = 1.0, **kwargs: Any
    ) -> "RateLimiter":
        """Create rate limiter for the MusicBrainz web service.

        Hey future me – MusicBrainz is STRICT: 1 req/sec, and they ban aggressive clients.
        """
        config = RateLimiterConfig(
            max_calls=1,
            period_seconds=1.0 / min(requests_per_second, 1.0),
            initial_backoff_seconds=2.0,
        )
        return cls(config=config, name="musicbrainz", **kwargs)

    @property
    def total_admitted(self) -> int:
        return self._total_admitted

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def _wait_time(self, now: float) -> float | None:
        """Seconds until the next admission is allowed.

        Returns:
            0 to admit now, None if every slot belongs to a call still running
            (only a release can free one)
        """
        if now < self._blocked_until:
            return self._blocked_until - now

        # Drop completions that left the window
        while self._completions and now - self._completions[0] >= self.config.period_seconds:
            self._completions.popleft()

        if self._in_flight + len(self._completions) < self.config.max_calls:
            return 0.0
        if not self._completions:
            return None
        return self._completions[0] + self.config.period_seconds - now

    async def _admit(self, hold: bool) -> None:
        async with self._lock:
            while True:
                now = self.clock()
                wait_time = self._wait_time(now)
                if wait_time is None:
                    logger.debug(
                        f"RateLimiter[{self.name}]: all slots in flight, waiting for a release"
                    )
                    self._released.clear()
                    await self._released.wait()
                    continue
                if wait_time <= 0:
                    if hold:
                        self._in_flight += 1
                    else:
                        self._completions.append(now)
                    self._total_admitted += 1
                    return

                logger.debug(
                    f"RateLimiter[{self.name}]: window full, waiting {wait_time:.2f}s"
                )
                await self.sleep(wait_time)

    def _release(self) -> None:
        self._in_flight -= 1
        self._completions.append(self.clock())
        self._released.set()

    async def acquire(self) -> None:
        """Wait for an admission slot for a call that counts as completed right away.

        Prefer `async with limiter:` around the actual request, which keeps the slot
        until the request finished. Blocks only the calling worker. Cancelling a waiting
        worker releases the lock right away, so shutdown never hangs on the limiter.
        """
        await self._admit(hold=False)

    async def handle_rate_limit_response(self, retry_after: float | None = None) -> float:
        """Handle a 429 response with adaptive backoff.

        Blocks every admission until the backoff passed (the waiting itself happens in
        acquire()).

        Args:
            retry_after: Retry-After value from the response (seconds)

        Returns:
            The backoff applied
        """
        wait_time = retry_after if retry_after is not None else self._current_backoff
        wait_time = min(wait_time, self.config.max_backoff_seconds)

        logger.warning(
            f"RateLimiter[{self.name}]: 429 Rate Limited! "
            f"Pausing admissions for {wait_time:.1f}s "
            f"(backoff level: {self._current_backoff:.1f}s)"
        )

        self._blocked_until = max(self._blocked_until, self.clock() + wait_time)
        self._current_backoff = min(
            self._current_backoff * self.config.backoff_multiplier,
            self.config.max_backoff_seconds,
        )
        return wait_time

    def reset_backoff(self) -> None:
        """Reset backoff after a successful request."""
        self._current_backoff = self.config.initial_backoff_seconds

    async def __aenter__(self) -> "RateLimiter":
        await self._admit(hold=True)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._release()
