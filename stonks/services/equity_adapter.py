"""Yahoo Finance adapter: chart + quote -> Asset."""

from pydantic import ValidationError

from stonks.models.market_data import Asset, AssetKind, FetchOutcome, percent_change
from stonks.models.provider_schemas import (
    YahooChartResponse,
    YahooChartResult,
    YahooQuote,
    YahooQuoteResponse,
    is_number,
)
from stonks.services.base_adapter import CachedAdapter
from stonks.services.cache_store import CacheStore, chart_key
from stonks.services.errors import MarketDataError, ProviderDataError
from stonks.services.retrying_fetcher import RetryingFetcher


def chart_window(lookback_days: int) -> tuple[str, str]:
    """Map a lookback in days to Yahoo's ``(range, interval)`` pair."""
    if lookback_days <= 1:
        return "1d", "1h"
    if lookback_days <= 7:
        return "7d", "1d"
    if lookback_days <= 30:
        return "1mo", "1d"
    return "3mo", "1d"


def instrument_kind(instrument_type: str | None) -> AssetKind:
    return "etf" if (instrument_type or "").upper() == "ETF" else "stock"


def parse_close_samples(result: YahooChartResult, now_ms: int) -> tuple[list[int], list[float]]:
    """
    Keep valid closes with their timestamps converted from seconds to millis.

    A valid close without a numeric timestamp is stamped with ``now_ms``.
    """
    closes = result.first_quote().close or []
    raw_timestamps = result.timestamp or []
    timestamps: list[int] = []
    prices: list[float] = []
    for i, value in enumerate(closes):
        if not is_number(value):
            continue
        ts = raw_timestamps[i] if i < len(raw_timestamps) else None
        timestamps.append(int(ts * 1000) if is_number(ts) else now_ms)
        prices.append(float(value))
    return timestamps, prices


def build_equity_asset(symbol: str, result: YahooChartResult, fetched_at: int) -> Asset:
    """Map a chart result to an Asset with quote-only fields left at defaults."""
    meta = result.meta
    timestamps, prices = parse_close_samples(result, fetched_at)
    history = prices or [0.0]
    positive = [p for p in history if p > 0]

    current_price = meta.regular_market_price or history[-1] or 0.0
    previous_close = (
        meta.chart_previous_close or meta.previous_close or history[0] or current_price
    )
    change = percent_change(current_price, previous_close)

    opens = [float(v) for v in (result.first_quote().open or []) if is_number(v)]
    open_price = (opens[-1] if opens else 0.0) or previous_close

    return Asset(
        symbol=symbol,
        kind=instrument_kind(meta.instrument_type),
        price=max(0.0, current_price),
        change=change,
        change_24h=change,
        history=history,
        timestamps=timestamps,
        open=open_price,
        high=meta.regular_market_day_high or max(positive, default=0.0),
        low=meta.regular_market_day_low or min(positive, default=0.0),
        high_52w=meta.fifty_two_week_high or 0.0,
        low_52w=meta.fifty_two_week_low or 0.0,
        volume=meta.regular_market_volume or 0.0,
        previous_close=previous_close,
        currency=meta.currency,
        fetched_at=fetched_at,
    )


def apply_quote(asset: Asset, quote: YahooQuote) -> None:
    """Override the chart-derived defaults with quote fields that are present."""
    asset.market_cap = quote.market_cap or 0.0
    asset.pe = quote.trailing_pe or quote.forward_pe or 0.0
    asset.avg_volume = (
        quote.average_daily_volume_3_month or quote.average_daily_volume_10_day or 0.0
    )
    asset.high_52w = quote.fifty_two_week_high or asset.high_52w
    asset.low_52w = quote.fifty_two_week_low or asset.low_52w
    asset.open = quote.regular_market_open or asset.open


class EquityAdapter(CachedAdapter):
    """Fetches stocks and ETFs from Yahoo Finance."""

    source = "Yahoo Finance"
    kind = "stock"

    def __init__(
        self,
        fetcher: RetryingFetcher,
        cache: CacheStore,
        base_url: str = "https://query1.finance.yahoo.com",
        ttl_seconds: float = 60,
        timeout: float = 10.0,
        quote_timeout: float = 5.0,
    ):
        super().__init__(cache, ttl_seconds)
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.quote_timeout = quote_timeout

    def fetch_equity(self, symbol: str, lookback_days: int) -> FetchOutcome:
        """
        Fetch one stock or ETF.

        Never raises: provider failures degrade to the last cached record or
        to a placeholder.

        Args:
            symbol: Yahoo ticker (e.g. "AAPL")
            lookback_days: Chart window in days
        """
        key = chart_key("stock", symbol, lookback_days)
        cached = self._serve_valid_cache(key, symbol)
        if cached is not None:
            return cached

        chart_range, interval = chart_window(lookback_days)
        self.logger.info(
            "Starting stock data fetch",
            context={
                "source": self.source,
                "symbol": symbol,
                "range": chart_range,
                "interval": interval,
            },
        )
        try:
            result = self._fetch_chart(symbol, chart_range, interval)
            asset = build_equity_asset(symbol, result, self.cache.now_ms())
            quote = self._fetch_quote(symbol)
            if quote is not None:
                apply_quote(asset, quote)
            return self._store(key, asset)
        except Exception as e:
            return self._degrade(key, symbol, e)

    def _fetch_chart(self, symbol: str, chart_range: str, interval: str) -> YahooChartResult:
        data = self.fetcher.get_json(
            f"{self.base_url}/v8/finance/chart/{symbol}",
            params={"range": chart_range, "interval": interval},
            timeout=self.timeout,
        )
        try:
            response = YahooChartResponse.model_validate(data)
        except ValidationError as e:
            raise ProviderDataError(f"Malformed chart for {symbol}: {e}") from e

        results = response.chart.result if response.chart else None
        if not results:
            raise ProviderDataError(f"No chart result for {symbol}")
        return results[0]

    def _fetch_quote(self, symbol: str) -> YahooQuote | None:
        """Secondary quote lookup; None when unavailable."""
        try:
            data = self.fetcher.get_json(
                f"{self.base_url}/v7/finance/quote",
                params={"symbols": symbol},
                timeout=self.quote_timeout,
            )
            response = YahooQuoteResponse.model_validate(data)
        except (MarketDataError, ValidationError) as e:
            self.logger.debug(
                "Quote data unavailable, keeping chart defaults",
                context={"source": self.source, "symbol": symbol, "error_type": type(e).__name__},
            )
            return None

        results = response.quote_response.result if response.quote_response else None
        return results[0] if results else None
