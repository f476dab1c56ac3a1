"""Adaptive spacing between calls to external APIs."""

import asyncio
import time
from collections.abc import Callable

DEFAULT_BASE_DELAY = 0.2  # seconds
DEFAULT_ERROR_STEP = 0.1  # seconds per recent failure
DEFAULT_MAX_ERROR_COUNT = 5


class AdaptiveRateLimiter:
    """Minimum spacing between calls that widens while an upstream is failing.

    The required spacing is ``max(base_delay, error_count * error_step)``.
    Each failure raises error_count (capped), each success lowers it by one,
    so the delay decays back to base_delay once the upstream recovers.
    """

    def __init__(
        self,
        *,
        base_delay: float = DEFAULT_BASE_DELAY,
        error_step: float = DEFAULT_ERROR_STEP,
        max_error_count: int = DEFAULT_MAX_ERROR_COUNT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._base_delay = base_delay
        self._error_step = error_step
        self._max_error_count = max_error_count
        self._clock = clock
        self._error_count = 0
        self._last_request_time: float | None = None
        self._lock = asyncio.Lock()

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def current_spacing(self) -> float:
        return max(self._base_delay, self._error_count * self._error_step)

    def delay_needed(self) -> float:
        """Seconds to wait before the next call may go out."""
        if self._last_request_time is None:
            return 0.0
        elapsed = self._clock() - self._last_request_time
        return max(0.0, self.current_spacing - elapsed)

    async def wait(self) -> None:
        """Wait until a request slot is available."""
        async with self._lock:
            delay = self.delay_needed()
            if delay > 0:
                await asyncio.sleep(delay)
            self._last_request_time = self._clock()

    def record_error(self) -> None:
        self._error_count = min(self._error_count + 1, self._max_error_count)

    def record_success(self) -> None:
        self._error_count = max(self._error_count - 1, 0)
