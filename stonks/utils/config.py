"""Configuration management for the market data core."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

SUPPORTED_LOOKBACK_DAYS = (1, 7, 30, 90)


def _parse_tickers(raw: str) -> list[str]:
    return [ticker.strip() for ticker in raw.split(",") if ticker.strip()]


def _parse_crypto_ids(raw: str) -> dict[str, str]:
    """Parse ``BTC:bitcoin,ETH:ethereum`` into a ticker -> provider id map."""
    ids = {}
    for pair in raw.split(","):
        if not pair.strip():
            continue
        ticker, _, provider_id = pair.partition(":")
        if not provider_id.strip():
            raise ValueError(f"Invalid CRYPTO_IDS entry: {pair!r}. Use TICKER:id")
        ids[ticker.strip()] = provider_id.strip()
    return ids


@dataclass
class ProviderConfig:
    """Upstream data provider configuration."""

    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    yahoo_base_url: str = "https://query1.finance.yahoo.com"
    coingecko_spacing_ms: int = 5000
    fetch_retries: int = 3
    equity_retries: int = 0
    retry_base_delay_ms: int = 1000
    request_timeout: float = 10.0
    quote_timeout: float = 5.0


@dataclass
class CacheConfig:
    """Durable cache configuration."""

    cache_file: str = "cache.json"
    ttl_seconds: int = 60  # Price series
    detail_ttl_seconds: int = 1800  # Crypto detail


@dataclass
class RefreshConfig:
    """Watchlist and refresh cadence."""

    tickers: list[str] = field(default_factory=list)
    crypto_ids: dict[str, str] = field(default_factory=dict)
    lookback_days: int = 7
    update_interval_seconds: int = 60


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: str = "INFO"
    file_path: str | None = None


class Config:
    """Main application configuration."""

    def __init__(self):
        self.provider = ProviderConfig(
            coingecko_base_url=os.getenv("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"),
            yahoo_base_url=os.getenv("YAHOO_BASE_URL", "https://query1.finance.yahoo.com"),
            coingecko_spacing_ms=int(os.getenv("COINGECKO_SPACING_MS", "5000")),
            fetch_retries=int(os.getenv("FETCH_RETRIES", "3")),
            equity_retries=int(os.getenv("EQUITY_RETRIES", "0")),
            retry_base_delay_ms=int(os.getenv("RETRY_BASE_DELAY_MS", "1000")),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10")),
            quote_timeout=float(os.getenv("QUOTE_TIMEOUT_SECONDS", "5")),
        )

        self.cache = CacheConfig(
            cache_file=os.getenv("CACHE_FILE", "cache.json"),
            ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "60")),
            detail_ttl_seconds=int(os.getenv("DETAIL_TTL_SECONDS", "1800")),
        )

        self.refresh = RefreshConfig(
            tickers=_parse_tickers(os.getenv("TICKERS", "BTC,ETH,SOL,AAPL,MSFT,SPY")),
            crypto_ids=_parse_crypto_ids(
                os.getenv("CRYPTO_IDS", "BTC:bitcoin,ETH:ethereum,SOL:solana")
            ),
            lookback_days=int(os.getenv("LOOKBACK_DAYS", "7")),
            update_interval_seconds=int(os.getenv("UPDATE_INTERVAL_SECONDS", "60")),
        )

        self.logging = LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            file_path=os.getenv("LOG_FILE"),
        )

        watchlist_file = os.getenv("WATCHLIST_FILE")
        if watchlist_file:
            self.load_watchlist(watchlist_file)

    def load_watchlist(self, path: str) -> None:
        """
        Override the watchlist from a JSON file.

        The file holds ``tickers``, ``cryptoIds`` and ``updateInterval``
        (milliseconds); any key may be omitted.

        Args:
            path: Path to the watchlist JSON file

        Raises:
            ValueError if the file is missing or malformed
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Cannot read watchlist file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Watchlist file {path} must contain a JSON object")

        if "tickers" in data:
            self.refresh.tickers = [str(t) for t in data["tickers"]]
        if "cryptoIds" in data:
            self.refresh.crypto_ids = {str(k): str(v) for k, v in data["cryptoIds"].items()}
        if "updateInterval" in data:
            self.refresh.update_interval_seconds = max(1, int(data["updateInterval"]) // 1000)

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if configuration is valid

        Raises:
            ValueError if configuration is invalid
        """
        if not self.refresh.tickers:
            raise ValueError("TICKERS must list at least one symbol")
        if self.refresh.lookback_days not in SUPPORTED_LOOKBACK_DAYS:
            raise ValueError(
                f"Invalid LOOKBACK_DAYS: {self.refresh.lookback_days}. "
                f"Use one of {SUPPORTED_LOOKBACK_DAYS}"
            )
        if self.refresh.update_interval_seconds <= 0:
            raise ValueError("UPDATE_INTERVAL_SECONDS must be positive")
        if self.cache.ttl_seconds <= 0 or self.cache.detail_ttl_seconds <= 0:
            raise ValueError("Cache TTLs must be positive")
        if self.provider.fetch_retries < 0 or self.provider.equity_retries < 0:
            raise ValueError("Retry counts cannot be negative")
        if self.provider.coingecko_spacing_ms < 0:
            raise ValueError("COINGECKO_SPACING_MS cannot be negative")
        if self.logging.level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {self.logging.level}")

        return True


# Global config instance
config = Config()
