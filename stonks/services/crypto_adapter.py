"""CoinGecko adapter: market chart + coin detail -> Asset."""

from pydantic import ValidationError

from stonks.models.market_data import Asset, FetchOutcome, percent_change
from stonks.models.provider_schemas import (
    CoinGeckoChartResponse,
    CoinGeckoDetailResponse,
    CryptoDetail,
    is_number,
)
from stonks.services.base_adapter import CachedAdapter
from stonks.services.cache_store import CacheStore, chart_key, detail_key
from stonks.services.errors import MarketDataError, ProviderDataError
from stonks.services.retrying_fetcher import RetryingFetcher

DETAIL_PARAMS = {
    "localization": "false",
    "tickers": "false",
    "community_data": "false",
    "developer_data": "false",
}


def parse_chart_samples(
    chart: CoinGeckoChartResponse, now_ms: int
) -> tuple[list[int], list[float]]:
    """
    Split ``[timestamp, price]`` pairs into aligned arrays.

    Pairs whose price is missing or non-numeric are dropped; a non-numeric
    timestamp on a valid price is replaced by ``now_ms``.
    """
    timestamps: list[int] = []
    prices: list[float] = []
    for pair in chart.prices or []:
        if not isinstance(pair, (list, tuple)) or len(pair) < 2:
            continue
        ts, value = pair[0], pair[1]
        if not is_number(value):
            continue
        timestamps.append(int(ts) if is_number(ts) else now_ms)
        prices.append(float(value))
    return timestamps, prices


def build_crypto_asset(
    symbol: str,
    timestamps: list[int],
    prices: list[float],
    detail: CryptoDetail | None,
    fetched_at: int,
) -> Asset:
    """Map a filtered chart series and optional detail to an Asset."""
    history = prices or [0.0]
    detail = detail or CryptoDetail()
    positive = [p for p in history if p > 0]

    current_price = (
        detail.current_price if detail.current_price is not None else history[-1]
    ) or 0.0
    first_price = history[0] or current_price

    high = detail.high_24h if detail.high_24h is not None else max(positive, default=0.0)
    low = detail.low_24h if detail.low_24h is not None else min(positive, default=0.0)

    return Asset(
        symbol=symbol,
        kind="crypto",
        price=max(0.0, current_price),
        change=percent_change(current_price, first_price),
        change_24h=detail.change_24h,
        history=history,
        timestamps=timestamps if prices else [],
        open=history[0] or 0.0,
        high=high or 0.0,
        low=low or 0.0,
        high_52w=detail.ath or 0.0,
        low_52w=detail.atl or 0.0,
        market_cap=detail.market_cap,
        volume=detail.volume_24h,
        circulating_supply=detail.circulating_supply,
        total_supply=detail.total_supply,
        rank=detail.rank,
        fetched_at=fetched_at,
    )


class CryptoAdapter(CachedAdapter):
    """Fetches crypto assets from CoinGecko through the shared rate limiter."""

    source = "CoinGecko"
    kind = "crypto"

    def __init__(
        self,
        fetcher: RetryingFetcher,
        cache: CacheStore,
        base_url: str = "https://api.coingecko.com/api/v3",
        ttl_seconds: float = 60,
        detail_ttl_seconds: float = 1800,
        timeout: float = 10.0,
    ):
        """
        Initialize the adapter.

        Args:
            fetcher: Retrying fetcher bound to the CoinGecko rate limiter
            cache: Shared cache store
            base_url: CoinGecko API root
            ttl_seconds: Validity of chart entries
            detail_ttl_seconds: Validity of detail entries
            timeout: Per-request timeout in seconds
        """
        super().__init__(cache, ttl_seconds)
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.detail_ttl_seconds = detail_ttl_seconds
        self.timeout = timeout

    def fetch_crypto(self, symbol: str, provider_id: str, lookback_days: int) -> FetchOutcome:
        """
        Fetch one crypto asset.

        Never raises: provider failures degrade to the last cached record or
        to a placeholder.

        Args:
            symbol: Display ticker (e.g. "BTC")
            provider_id: CoinGecko coin id (e.g. "bitcoin")
            lookback_days: Chart window in days
        """
        key = chart_key("crypto", symbol, lookback_days)
        cached = self._serve_valid_cache(key, symbol)
        if cached is not None:
            return cached

        self.logger.info(
            "Starting cryptocurrency data fetch",
            context={"source": self.source, "symbol": symbol, "provider_id": provider_id},
        )
        try:
            chart = self._fetch_chart(provider_id, lookback_days)
            now_ms = self.cache.now_ms()
            timestamps, prices = parse_chart_samples(chart, now_ms)
            detail = self._get_detail(symbol, provider_id)
            asset = build_crypto_asset(symbol, timestamps, prices, detail, now_ms)
            return self._store(key, asset)
        except Exception as e:
            return self._degrade(key, symbol, e)

    def _fetch_chart(self, provider_id: str, lookback_days: int) -> CoinGeckoChartResponse:
        data = self.fetcher.get_json(
            f"{self.base_url}/coins/{provider_id}/market_chart",
            params={"vs_currency": "usd", "days": lookback_days},
            timeout=self.timeout,
        )
        try:
            return CoinGeckoChartResponse.model_validate(data)
        except ValidationError as e:
            raise ProviderDataError(f"Malformed market chart for {provider_id}: {e}") from e

    def _get_detail(self, symbol: str, provider_id: str) -> CryptoDetail | None:
        """Cached detail inside the long TTL, else a fresh fetch; None on failure."""
        key = detail_key(provider_id)
        if self.cache.is_valid(key, self.detail_ttl_seconds):
            try:
                return CryptoDetail.model_validate(self.cache.get(key))
            except ValidationError:
                pass  # Unreadable entry, refetch below

        try:
            data = self.fetcher.get_json(
                f"{self.base_url}/coins/{provider_id}",
                params=DETAIL_PARAMS,
                timeout=self.timeout,
            )
            detail = CryptoDetail.from_response(CoinGeckoDetailResponse.model_validate(data))
        except (MarketDataError, ValidationError) as e:
            self.logger.warning(
                "Crypto detail unavailable, continuing with chart data",
                context={
                    "source": self.source,
                    "symbol": symbol,
                    "provider_id": provider_id,
                    "error_type": type(e).__name__,
                },
            )
            return None

        self.cache.set(key, detail.model_dump())
        return detail
