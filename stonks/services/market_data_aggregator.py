"""Asset aggregator dispatching a watchlist to the provider adapters."""

from collections import Counter

from stonks.models.market_data import Asset, FetchOutcome
from stonks.services.crypto_adapter import CryptoAdapter
from stonks.services.equity_adapter import EquityAdapter
from stonks.utils.logger import StructuredLogger


class MarketDataAggregator:
    """
    Fetches a watchlist one ticker at a time.

    Tickers found in the id map go to the crypto adapter, all others to the
    equity adapter. Calls are strictly sequential: the crypto rate limiter and
    the equity provider's burst limits apply to the whole batch.
    """

    def __init__(self, crypto_adapter: CryptoAdapter, equity_adapter: EquityAdapter):
        self.crypto_adapter = crypto_adapter
        self.equity_adapter = equity_adapter
        self.logger = StructuredLogger("MarketDataAggregator")

    def fetch_outcomes(
        self, tickers: list[str], id_map: dict[str, str], lookback_days: int
    ) -> list[FetchOutcome]:
        """
        Fetch every ticker in order and keep the tagged outcomes.

        Args:
            tickers: Ordered watchlist
            id_map: Ticker -> CoinGecko id for crypto tickers
            lookback_days: Chart window in days

        Returns:
            One FetchOutcome per ticker, in input order
        """
        outcomes = []
        for ticker in tickers:
            provider_id = id_map.get(ticker)
            if provider_id:
                outcome = self.crypto_adapter.fetch_crypto(ticker, provider_id, lookback_days)
            else:
                outcome = self.equity_adapter.fetch_equity(ticker, lookback_days)
            outcomes.append(outcome)

        counts = Counter(outcome.status for outcome in outcomes)
        self.logger.info(
            f"Fetched {len(outcomes)} assets",
            context={
                "lookback_days": lookback_days,
                "fresh": counts["fresh"],
                "cached": counts["cached"],
                "stale": counts["stale"],
                "failed": counts["failed"],
            },
        )
        return outcomes

    def fetch_all(
        self, tickers: list[str], id_map: dict[str, str], lookback_days: int
    ) -> list[Asset]:
        """Fetch every ticker in order; failures come back as error-flagged records."""
        return [outcome.asset for outcome in self.fetch_outcomes(tickers, id_map, lookback_days)]
