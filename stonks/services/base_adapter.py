"""Cache lookup and degrade-to-stale policy shared by the provider adapters."""

from stonks.models.market_data import Asset, AssetKind, FetchOutcome
from stonks.services.cache_store import CacheStore
from stonks.utils.logger import StructuredLogger


class CachedAdapter:
    """Base class for adapters that serve from CacheStore and fall back to it."""

    source = ""
    kind: AssetKind = "stock"

    def __init__(self, cache: CacheStore, ttl_seconds: float):
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.logger = StructuredLogger(type(self).__name__)

    def _cached_asset(self, key: str) -> Asset | None:
        payload = self.cache.get(key)
        if not isinstance(payload, dict):
            return None
        try:
            return Asset.from_dict(payload)
        except (TypeError, ValueError) as e:
            self.logger.warning(
                "Ignoring unreadable cache entry", context={"key": key}, exception=e
            )
            return None

    def _serve_valid_cache(self, key: str, symbol: str) -> FetchOutcome | None:
        """Outcome for a cache hit inside the short TTL, else None."""
        if not self.cache.is_valid(key, self.ttl_seconds):
            return None
        asset = self._cached_asset(key)
        if asset is None:
            return None
        self.logger.debug(
            "Serving cached data",
            context={"source": self.source, "symbol": symbol, "key": key, "result": "cached"},
        )
        return FetchOutcome("cached", asset.flagged(from_cache=True))

    def _store(self, key: str, asset: Asset) -> FetchOutcome:
        self.cache.set(key, asset.to_dict())
        self.logger.info(
            f"Successfully fetched {self.kind} data",
            context={
                "source": self.source,
                "symbol": asset.symbol,
                "result": "success",
                "price": asset.price,
                "change": asset.change,
                "samples": len(asset.history),
            },
        )
        return FetchOutcome("fresh", asset)

    def _degrade(self, key: str, symbol: str, error: Exception) -> FetchOutcome:
        """Last cached record flagged as error, else a placeholder."""
        stale = self._cached_asset(key)
        context = {"source": self.source, "symbol": symbol, "key": key}
        if stale is not None:
            self.logger.error(
                f"Error fetching {self.kind} data for {symbol}, serving stale cache",
                context={**context, "result": "stale"},
                exception=error,
            )
            return FetchOutcome("stale", stale.flagged(error=True, from_cache=True), error)

        self.logger.error(
            f"Error fetching {self.kind} data for {symbol}",
            context={**context, "result": "failed"},
            exception=error,
        )
        return FetchOutcome(
            "failed", Asset.placeholder(symbol, self.kind, self.cache.now_ms()), error
        )
