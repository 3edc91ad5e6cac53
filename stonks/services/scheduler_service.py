"""Scheduler service running the periodic market data refresh cycle."""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

import requests
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from stonks.models.market_data import Asset
from stonks.services.cache_store import CacheStore
from stonks.services.crypto_adapter import CryptoAdapter
from stonks.services.equity_adapter import EquityAdapter
from stonks.services.market_data_aggregator import MarketDataAggregator
from stonks.services.rate_limiter import RateLimiter
from stonks.services.retrying_fetcher import RetryingFetcher
from stonks.utils.config import SUPPORTED_LOOKBACK_DAYS, Config
from stonks.utils.logger import StructuredLogger, clear_trace, create_trace

structured_logger = StructuredLogger("RefreshService")

JOB_ID = "market_refresh"


class RefreshInProgressError(RuntimeError):
    """Raised when a cycle is requested while another one holds the lock."""


class RefreshFailedError(RuntimeError):
    """Raised when a cycle aborts with an unexpected error."""


def _checked_lookback(days: int) -> int:
    if days not in SUPPORTED_LOOKBACK_DAYS:
        raise ValueError(f"Unsupported lookback: {days}. Use one of {SUPPORTED_LOOKBACK_DAYS}")
    return days


@dataclass
class MarketSnapshot:
    """Result of the last completed refresh cycle."""

    assets: list[Asset]
    lookback_days: int
    completed_at: datetime
    duration_ms: float
    has_errors: bool = False
    trace_id: str | None = None
    stale_symbols: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "assets": [asset.to_dict() for asset in self.assets],
            "lookback_days": self.lookback_days,
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
            "has_errors": self.has_errors,
            "trace_id": self.trace_id,
            "stale_symbols": self.stale_symbols,
        }


class RefreshService:
    """
    Runs one fetch cycle at a time on a fixed interval.

    APScheduler keeps a single job instance; the non-blocking cycle lock also
    rejects on-demand runs that arrive while a cycle is in progress.
    """

    def __init__(
        self,
        aggregator: MarketDataAggregator,
        tickers: list[str],
        id_map: dict[str, str],
        lookback_days: int = 7,
        interval_seconds: int = 60,
    ):
        """
        Initialize the refresh service.

        Args:
            aggregator: Aggregator used for each cycle
            tickers: Ordered watchlist
            id_map: Ticker -> CoinGecko id
            lookback_days: Initial chart window
            interval_seconds: Gap between cycles
        """
        self.aggregator = aggregator
        self.tickers = list(tickers)
        self.id_map = dict(id_map)
        self.lookback_days = lookback_days
        self.interval_seconds = interval_seconds
        self.scheduler = BackgroundScheduler()
        self.is_running = False
        self.latest: MarketSnapshot | None = None
        self._cycle_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config) -> "RefreshService":
        """Wire limiter, fetchers, cache, adapters and aggregator from config."""
        provider = config.provider
        session = requests.Session()
        cache = CacheStore(config.cache.cache_file)

        crypto_fetcher = RetryingFetcher(
            "CoinGecko",
            rate_limiter=RateLimiter(provider.coingecko_spacing_ms),
            retries=provider.fetch_retries,
            base_delay_ms=provider.retry_base_delay_ms,
            session=session,
        )
        equity_fetcher = RetryingFetcher(
            "Yahoo Finance",
            retries=provider.equity_retries,
            base_delay_ms=provider.retry_base_delay_ms,
            session=session,
        )

        aggregator = MarketDataAggregator(
            CryptoAdapter(
                crypto_fetcher,
                cache,
                base_url=provider.coingecko_base_url,
                ttl_seconds=config.cache.ttl_seconds,
                detail_ttl_seconds=config.cache.detail_ttl_seconds,
                timeout=provider.request_timeout,
            ),
            EquityAdapter(
                equity_fetcher,
                cache,
                base_url=provider.yahoo_base_url,
                ttl_seconds=config.cache.ttl_seconds,
                timeout=provider.request_timeout,
                quote_timeout=provider.quote_timeout,
            ),
        )
        return cls(
            aggregator,
            config.refresh.tickers,
            config.refresh.crypto_ids,
            lookback_days=config.refresh.lookback_days,
            interval_seconds=config.refresh.update_interval_seconds,
        )

    @property
    def in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def start(self) -> None:
        """Schedule the refresh job; the first cycle runs immediately."""
        self.scheduler.add_job(
            self.run_cycle,
            IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Market Data Refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        if not self.is_running:
            self.scheduler.start()
            self.is_running = True
            structured_logger.info(
                "Refresh scheduler started",
                context={"interval_seconds": self.interval_seconds, "tickers": self.tickers},
            )

    def stop(self) -> None:
        """Stop the scheduler, letting a running cycle finish."""
        if self.is_running:
            self.scheduler.shutdown(wait=True)
            self.is_running = False
            structured_logger.info("Refresh scheduler stopped")

    def set_lookback_days(self, days: int) -> None:
        """
        Change the chart window used by subsequent cycles.

        Raises:
            ValueError: If the window is not a supported period
        """
        self.lookback_days = _checked_lookback(days)

    def refresh_now(self, lookback_days: int | None = None) -> MarketSnapshot:
        """
        Run one full fetch cycle, optionally switching the chart window first.

        The window only changes once the cycle lock is held, so a rejected
        request leaves the service untouched.

        Args:
            lookback_days: New window for this and subsequent cycles

        Returns:
            The new snapshot

        Raises:
            ValueError: If the window is not a supported period
            RefreshInProgressError: If another cycle is running
            RefreshFailedError: If the cycle aborted
        """
        if lookback_days is not None:
            _checked_lookback(lookback_days)
        if not self._cycle_lock.acquire(blocking=False):
            raise RefreshInProgressError("A refresh cycle is already in progress")

        try:
            if lookback_days is not None:
                self.lookback_days = lookback_days
            return self._execute_cycle()
        finally:
            self._cycle_lock.release()

    def run_cycle(self) -> MarketSnapshot | None:
        """
        Scheduled job entry point: run a cycle unless another is in progress.

        Returns:
            The new snapshot, or None if the cycle was skipped or failed
        """
        try:
            return self.refresh_now()
        except RefreshInProgressError:
            structured_logger.warning(
                "Refresh cycle already in progress, skipping",
                context={"lookback_days": self.lookback_days},
            )
        except RefreshFailedError:
            # logged by _execute_cycle
            pass
        return None

    def _execute_cycle(self) -> MarketSnapshot:
        trace_id = create_trace()
        start_time = time.time()
        lookback_days = self.lookback_days
        try:
            structured_logger.info(
                "Starting refresh cycle",
                context={"lookback_days": lookback_days, "tickers": len(self.tickers)},
            )
            outcomes = self.aggregator.fetch_outcomes(self.tickers, self.id_map, lookback_days)
            duration_ms = (time.time() - start_time) * 1000

            assets = [outcome.asset for outcome in outcomes]
            snapshot = MarketSnapshot(
                assets=assets,
                lookback_days=lookback_days,
                completed_at=datetime.now(timezone.utc),
                duration_ms=duration_ms,
                has_errors=any(asset.error for asset in assets),
                trace_id=trace_id,
                stale_symbols=[o.asset.symbol for o in outcomes if o.status == "stale"],
            )
            self.latest = snapshot
            structured_logger.info(
                "Refresh cycle completed",
                context={
                    "lookback_days": lookback_days,
                    "assets": len(assets),
                    "has_errors": snapshot.has_errors,
                    "duration_ms": duration_ms,
                },
            )
            return snapshot
        except Exception as e:
            structured_logger.error(
                "Error during refresh cycle",
                context={
                    "lookback_days": lookback_days,
                    "duration_ms": (time.time() - start_time) * 1000,
                },
                exception=e,
            )
            raise RefreshFailedError(f"Refresh cycle failed: {e}") from e
        finally:
            clear_trace()
