"""Spacing rate limiter for the crypto provider."""

import threading
import time
from typing import Callable


class RateLimiter:
    """
    Enforces a fixed minimum spacing between consecutive calls.

    The upstream quota is global, so a single instance is shared by every
    request toward the provider, retries included. There is no burst
    allowance: each call waits until ``spacing_ms`` has passed since the
    previous permitted call.
    """

    def __init__(
        self,
        spacing_ms: int = 5000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the rate limiter.

        Args:
            spacing_ms: Minimum gap between two permitted calls in milliseconds
            clock: Returns the current time in seconds
            sleep: Suspends the caller for the given number of seconds
        """
        self.spacing_ms = spacing_ms
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None
        self._lock = threading.Lock()

    @property
    def last_call(self) -> float | None:
        """Clock reading of the last permitted call, None before the first."""
        return self._last_call

    def acquire(self) -> float:
        """
        Wait until the next call is permitted and record it.

        Returns:
            Seconds spent waiting
        """
        with self._lock:
            waited = 0.0
            if self._last_call is not None:
                elapsed_ms = (self._clock() - self._last_call) * 1000
                if elapsed_ms < self.spacing_ms:
                    waited = (self.spacing_ms - elapsed_ms) / 1000
                    self._sleep(waited)
            self._last_call = self._clock()
            return waited

    def reset(self) -> None:
        """Forget the last call so the next acquire proceeds immediately."""
        with self._lock:
            self._last_call = None
