"""HTTP GET with bounded retry, exponential backoff and jitter."""

import random
import time
from typing import Any, Callable

import requests

from stonks.services.errors import (
    MarketDataError,
    ProviderDataError,
    error_for_exception,
    error_for_status,
)
from stonks.services.rate_limiter import RateLimiter
from stonks.utils.logger import StructuredLogger

DEFAULT_HEADERS = {"User-Agent": "Mozilla/5.0"}
MAX_JITTER_MS = 300


class RetryingFetcher:
    """
    Performs a JSON GET with at most ``retries`` extra attempts.

    When a rate limiter is attached, every attempt (the first one included)
    waits on it before going out. Only NetworkError, RateLimitError and
    ServerError are retried; any other failure propagates at once.
    """

    def __init__(
        self,
        source: str,
        rate_limiter: RateLimiter | None = None,
        retries: int = 3,
        base_delay_ms: int = 1000,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ):
        """
        Initialize the fetcher.

        Args:
            source: Provider name used in log entries
            rate_limiter: Shared limiter consulted before every attempt
            retries: Attempts allowed beyond the first
            base_delay_ms: Backoff base; attempt ``i`` waits ``base * 2**i`` plus jitter
            session: requests session (a new one by default)
            sleep: Suspends the caller for the given number of seconds
            jitter: ``jitter(0, 300)`` returns the random extra delay in milliseconds
        """
        self.source = source
        self.rate_limiter = rate_limiter
        self.retries = retries
        self.base_delay_ms = base_delay_ms
        self.session = session or requests.Session()
        self._sleep = sleep
        self._jitter = jitter
        self.logger = StructuredLogger("RetryingFetcher")

    def backoff_ms(self, attempt: int) -> float:
        """Delay before the attempt following failed attempt ``attempt`` (0-based)."""
        jitter = min(self._jitter(0, MAX_JITTER_MS), MAX_JITTER_MS - 1e-6)
        return self.base_delay_ms * (2**attempt) + max(0.0, jitter)

    def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        timeout: float = 10.0,
    ) -> Any:
        """
        GET ``url`` and decode the JSON body.

        Returns:
            The decoded JSON document

        Raises:
            MarketDataError: the last failure once retries are exhausted, or
                the first terminal failure
        """
        attempt = 0
        while True:
            try:
                return self._attempt(url, params, timeout)
            except MarketDataError as e:
                if not e.retryable or attempt >= self.retries:
                    self.logger.warning(
                        f"Request to {self.source} failed",
                        context={
                            "source": self.source,
                            "url": url,
                            "attempts": attempt + 1,
                            "error_type": type(e).__name__,
                            "status_code": e.status_code,
                            "result": "failed",
                        },
                    )
                    raise
                delay_ms = self.backoff_ms(attempt)
                self.logger.info(
                    f"Request to {self.source} failed, retrying in {delay_ms:.0f}ms",
                    context={
                        "source": self.source,
                        "url": url,
                        "attempt": attempt + 1,
                        "error_type": type(e).__name__,
                        "status_code": e.status_code,
                        "retry_delay_ms": delay_ms,
                    },
                )
                self._sleep(delay_ms / 1000)
                attempt += 1

    def _attempt(self, url: str, params: dict[str, Any] | None, timeout: float) -> Any:
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

        try:
            response = self.session.get(
                url, params=params, headers=DEFAULT_HEADERS, timeout=timeout
            )
        except requests.RequestException as e:
            raise error_for_exception(e, url) from e

        if response.status_code >= 400:
            raise error_for_status(response.status_code, url)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderDataError(
                f"Invalid JSON from {url}", url=url, status_code=response.status_code
            ) from e
