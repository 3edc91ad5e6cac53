"""Pydantic schemas for the CoinGecko and Yahoo Finance responses.

Every field is optional: providers omit fields freely and the adapters apply
explicit defaults when mapping to an Asset. Sample arrays are typed loosely
(``list[Any]``) so that nulls and junk values survive validation and are
filtered by the adapters instead of rejecting the whole response.
"""

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def is_number(value: Any) -> bool:
    """True for finite ints/floats (booleans excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# CoinGecko


class UsdValue(_ProviderModel):
    usd: float | None = None


class CoinGeckoChartResponse(_ProviderModel):
    """``/coins/{id}/market_chart``: ``prices`` holds ``[timestamp_ms, price]`` pairs."""

    prices: list[Any] | None = None


class CoinGeckoMarketData(_ProviderModel):
    current_price: UsdValue | None = None
    price_change_percentage_24h: float | None = None
    high_24h: UsdValue | None = None
    low_24h: UsdValue | None = None
    ath: UsdValue | None = None
    atl: UsdValue | None = None
    market_cap: UsdValue | None = None
    total_volume: UsdValue | None = None
    circulating_supply: float | None = None
    total_supply: float | None = None


class CoinGeckoDetailResponse(_ProviderModel):
    """``/coins/{id}``."""

    market_cap_rank: int | None = None
    market_data: CoinGeckoMarketData | None = None


class CryptoDetail(_ProviderModel):
    """Crypto detail snapshot kept under the long-TTL cache key."""

    current_price: float | None = None
    change_24h: float = 0.0
    high_24h: float | None = None
    low_24h: float | None = None
    ath: float | None = None
    atl: float | None = None
    market_cap: float = 0.0
    volume_24h: float = 0.0
    circulating_supply: float = 0.0
    total_supply: float = 0.0
    rank: int = 0

    @classmethod
    def from_response(cls, response: CoinGeckoDetailResponse) -> "CryptoDetail":
        md = response.market_data or CoinGeckoMarketData()

        def usd(value: UsdValue | None) -> float | None:
            return value.usd if value is not None else None

        return cls(
            current_price=usd(md.current_price) or None,
            change_24h=md.price_change_percentage_24h or 0.0,
            high_24h=usd(md.high_24h) or None,
            low_24h=usd(md.low_24h) or None,
            ath=usd(md.ath) or None,
            atl=usd(md.atl) or None,
            market_cap=usd(md.market_cap) or 0.0,
            volume_24h=usd(md.total_volume) or 0.0,
            circulating_supply=md.circulating_supply or 0.0,
            total_supply=md.total_supply or 0.0,
            rank=response.market_cap_rank or 0,
        )


# Yahoo Finance


class _YahooModel(_ProviderModel):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class YahooChartMeta(_YahooModel):
    currency: str | None = None
    instrument_type: str | None = None
    regular_market_price: float | None = None
    chart_previous_close: float | None = None
    previous_close: float | None = None
    regular_market_day_high: float | None = None
    regular_market_day_low: float | None = None
    fifty_two_week_high: float | None = None
    fifty_two_week_low: float | None = None
    regular_market_volume: float | None = None


class YahooQuoteIndicator(_YahooModel):
    close: list[Any] | None = None
    open: list[Any] | None = None


class YahooIndicators(_YahooModel):
    quote: list[YahooQuoteIndicator] | None = None


class YahooChartResult(_YahooModel):
    meta: YahooChartMeta = Field(default_factory=YahooChartMeta)
    timestamp: list[Any] | None = None
    indicators: YahooIndicators | None = None

    def first_quote(self) -> YahooQuoteIndicator:
        quotes = self.indicators.quote if self.indicators else None
        return quotes[0] if quotes else YahooQuoteIndicator()


class YahooChart(_YahooModel):
    result: list[YahooChartResult] | None = None
    error: Any = None


class YahooChartResponse(_YahooModel):
    """``/v8/finance/chart/{symbol}``."""

    chart: YahooChart | None = None


class YahooQuote(_YahooModel):
    market_cap: float | None = None
    trailing_pe: float | None = Field(None, alias="trailingPE")
    forward_pe: float | None = Field(None, alias="forwardPE")
    average_daily_volume_3_month: float | None = Field(None, alias="averageDailyVolume3Month")
    average_daily_volume_10_day: float | None = Field(None, alias="averageDailyVolume10Day")
    fifty_two_week_high: float | None = None
    fifty_two_week_low: float | None = None
    regular_market_open: float | None = None


class YahooQuoteResult(_YahooModel):
    result: list[YahooQuote] | None = None


class YahooQuoteResponse(_YahooModel):
    """``/v7/finance/quote``."""

    quote_response: YahooQuoteResult | None = None
