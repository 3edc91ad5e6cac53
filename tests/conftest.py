"""Pytest configuration and fixtures."""

from unittest.mock import Mock

import pytest

from stonks.services.cache_store import CacheStore
from stonks.services.crypto_adapter import CryptoAdapter
from stonks.services.equity_adapter import EquityAdapter
from stonks.services.rate_limiter import RateLimiter
from stonks.services.retrying_fetcher import RetryingFetcher

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock whose sleep moves time forward."""

    def __init__(self, now: float = START_TIME):
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_response(status_code: int = 200, payload=None, invalid_json: bool = False) -> Mock:
    """Build a requests-like response mock."""
    response = Mock()
    response.status_code = status_code
    if invalid_json:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = payload if payload is not None else {}
    return response


class FakeSession:
    """
    Session stand-in routing GETs by URL suffix.

    Each route holds a queue of responses or exceptions; the last item is
    repeated once the queue is drained. Unrouted URLs answer 404.
    """

    def __init__(self, routes: dict | None = None):
        self.routes = {suffix: list(items) for suffix, items in (routes or {}).items()}
        self.calls: list[dict] = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        for suffix, queue in self.routes.items():
            if url.endswith(suffix):
                item = queue.pop(0) if len(queue) > 1 else queue[0]
                if isinstance(item, Exception):
                    raise item
                return item
        return make_response(404)

    def calls_to(self, suffix: str) -> list[dict]:
        return [call for call in self.calls if call["url"].endswith(suffix)]


def chart_payload(prices, start_ms: int = 1_699_000_000_000, step_ms: int = 86_400_000) -> dict:
    """CoinGecko market chart body for the given prices."""
    return {"prices": [[start_ms + i * step_ms, p] for i, p in enumerate(prices)]}


def yahoo_chart_payload(closes, meta=None, opens=None, start_s: int = 1_699_000_000) -> dict:
    """Yahoo chart body for the given closes."""
    return {
        "chart": {
            "result": [
                {
                    "meta": meta or {},
                    "timestamp": [start_s + i * 86_400 for i in range(len(closes))],
                    "indicators": {"quote": [{"close": closes, "open": opens or []}]},
                }
            ],
            "error": None,
        }
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    return CacheStore(tmp_path / "cache.json", clock=clock)


@pytest.fixture
def make_crypto_adapter(cache, clock):
    """Factory building a CryptoAdapter over a FakeSession."""

    def factory(session: FakeSession, retries: int = 3) -> CryptoAdapter:
        fetcher = RetryingFetcher(
            "CoinGecko",
            rate_limiter=RateLimiter(5000, clock=clock, sleep=clock.sleep),
            retries=retries,
            base_delay_ms=1000,
            session=session,
            sleep=clock.sleep,
            jitter=lambda low, high: 0.0,
        )
        return CryptoAdapter(fetcher, cache, base_url="https://cg.test/api/v3")

    return factory


@pytest.fixture
def make_equity_adapter(cache, clock):
    """Factory building an EquityAdapter over a FakeSession."""

    def factory(session: FakeSession, retries: int = 0) -> EquityAdapter:
        fetcher = RetryingFetcher(
            "Yahoo Finance",
            retries=retries,
            session=session,
            sleep=clock.sleep,
            jitter=lambda low, high: 0.0,
        )
        return EquityAdapter(fetcher, cache, base_url="https://yf.test")

    return factory
