"""Tests for the Yahoo Finance adapter."""

import math

import pytest
import requests
from hypothesis import given, strategies as st

from conftest import FakeSession, make_response, yahoo_chart_payload
from stonks.models.provider_schemas import YahooChartResponse, YahooQuote
from stonks.services.equity_adapter import (
    apply_quote,
    build_equity_asset,
    chart_window,
    instrument_kind,
)

CHART = "/v8/finance/chart/AAPL"
QUOTE = "/v7/finance/quote"

META = {
    "currency": "USD",
    "instrumentType": "EQUITY",
    "regularMarketPrice": 110.0,
    "chartPreviousClose": 100.0,
    "regularMarketDayHigh": 111.0,
    "regularMarketDayLow": 108.0,
    "fiftyTwoWeekHigh": 199.0,
    "fiftyTwoWeekLow": 90.0,
    "regularMarketVolume": 5_000_000,
}

QUOTE_BODY = {
    "quoteResponse": {
        "result": [
            {
                "marketCap": 3_000_000_000_000,
                "trailingPE": 31.5,
                "forwardPE": 28.0,
                "averageDailyVolume3Month": 55_000_000,
                "fiftyTwoWeekHigh": 200.0,
                "fiftyTwoWeekLow": 150.0,
                "regularMarketOpen": 109.5,
            }
        ]
    }
}


def parse_result(payload):
    return YahooChartResponse.model_validate(payload).chart.result[0]


class TestChartWindow:
    """Lookback to (range, interval) policy."""

    @pytest.mark.parametrize(
        "days, expected",
        [
            (0, ("1d", "1h")),
            (1, ("1d", "1h")),
            (2, ("7d", "1d")),
            (7, ("7d", "1d")),
            (8, ("1mo", "1d")),
            (30, ("1mo", "1d")),
            (31, ("3mo", "1d")),
            (90, ("3mo", "1d")),
        ],
    )
    def test_chart_window(self, days, expected):
        assert chart_window(days) == expected


class TestEquityAdapter:
    """Test suite for EquityAdapter.fetch_equity."""

    def test_thirty_day_lookback_requests_one_month_daily(self, make_equity_adapter):
        """AAPL over 30 days is requested with range=1mo, interval=1d."""
        session = FakeSession({CHART: [make_response(200, yahoo_chart_payload([1.0, 2.0]))]})
        adapter = make_equity_adapter(session)

        adapter.fetch_equity("AAPL", 30)

        params = session.calls_to(CHART)[0]["params"]
        assert params == {"range": "1mo", "interval": "1d"}

    def test_chart_and_quote_are_merged(self, make_equity_adapter):
        session = FakeSession(
            {
                CHART: [make_response(200, yahoo_chart_payload([100.0, 105.0, 110.0], meta=META))],
                QUOTE: [make_response(200, QUOTE_BODY)],
            }
        )
        adapter = make_equity_adapter(session)

        outcome = adapter.fetch_equity("AAPL", 7)

        assert outcome.status == "fresh"
        asset = outcome.asset
        assert asset.kind == "stock"
        assert asset.price == 110.0
        assert asset.previous_close == 100.0
        assert math.isclose(asset.change, 10.0)
        assert asset.change_24h == asset.change
        assert asset.high == 111.0
        assert asset.low == 108.0
        assert asset.volume == 5_000_000
        assert asset.currency == "USD"
        assert asset.market_cap == 3_000_000_000_000
        assert asset.pe == 31.5
        assert asset.avg_volume == 55_000_000
        assert asset.high_52w == 200.0
        assert asset.low_52w == 150.0
        assert asset.open == 109.5
        assert session.calls_to(QUOTE)[0]["params"] == {"symbols": "AAPL"}

    def test_quote_failure_is_silent(self, make_equity_adapter):
        """A failing quote keeps chart defaults and does not flag an error."""
        session = FakeSession(
            {
                CHART: [make_response(200, yahoo_chart_payload([100.0, 110.0], meta=META))],
                QUOTE: [requests.ConnectionError("quote down")],
            }
        )
        adapter = make_equity_adapter(session)

        outcome = adapter.fetch_equity("AAPL", 7)

        assert outcome.status == "fresh"
        asset = outcome.asset
        assert asset.error is False
        assert asset.pe == 0
        assert asset.market_cap == 0
        assert asset.high_52w == 199.0

    def test_etf_instrument_type_passes_through(self, make_equity_adapter):
        session = FakeSession(
            {
                "/v8/finance/chart/SPY": [
                    make_response(200, yahoo_chart_payload([400.0], meta={"instrumentType": "ETF"}))
                ]
            }
        )
        adapter = make_equity_adapter(session)

        assert adapter.fetch_equity("SPY", 7).asset.kind == "etf"

    def test_valid_cache_skips_network(self, make_equity_adapter, clock):
        session = FakeSession({CHART: [make_response(200, yahoo_chart_payload([1.0, 2.0]))]})
        adapter = make_equity_adapter(session)
        adapter.fetch_equity("AAPL", 7)
        calls_before = len(session.calls)
        clock.advance(10)

        outcome = adapter.fetch_equity("AAPL", 7)

        assert outcome.status == "cached"
        assert outcome.asset.from_cache is True
        assert len(session.calls) == calls_before

    def test_lookbacks_are_cached_separately(self, make_equity_adapter):
        session = FakeSession({CHART: [make_response(200, yahoo_chart_payload([1.0, 2.0]))]})
        adapter = make_equity_adapter(session)
        adapter.fetch_equity("AAPL", 7)

        outcome = adapter.fetch_equity("AAPL", 30)

        assert outcome.status == "fresh"
        assert len(session.calls_to(CHART)) == 2

    def test_total_failure_without_cache_returns_placeholder(self, make_equity_adapter):
        """No provider data and nothing cached: price 0, error, not from cache."""
        session = FakeSession({CHART: [requests.ConnectionError("down")]})
        adapter = make_equity_adapter(session)

        outcome = adapter.fetch_equity("AAPL", 7)

        assert outcome.status == "failed"
        asset = outcome.asset
        assert asset.price == 0
        assert asset.error is True
        assert asset.from_cache is False
        assert asset.kind == "stock"
        assert asset.history == [0.0]

    def test_failure_serves_stale_cache(self, make_equity_adapter, clock):
        session = FakeSession(
            {
                CHART: [
                    make_response(200, yahoo_chart_payload([100.0, 110.0], meta=META)),
                    make_response(500),
                ]
            }
        )
        adapter = make_equity_adapter(session)
        adapter.fetch_equity("AAPL", 7)
        clock.advance(61)

        outcome = adapter.fetch_equity("AAPL", 7)

        assert outcome.status == "stale"
        assert outcome.asset.price == 110.0
        assert outcome.asset.error is True
        assert outcome.asset.from_cache is True

    def test_empty_chart_result_is_a_failure(self, make_equity_adapter):
        body = {"chart": {"result": None, "error": {"code": "Not Found"}}}
        session = FakeSession({CHART: [make_response(200, body)]})
        adapter = make_equity_adapter(session)

        outcome = adapter.fetch_equity("AAPL", 7)

        assert outcome.status == "failed"
        assert outcome.asset.error is True

    def test_retries_apply_when_configured(self, make_equity_adapter):
        session = FakeSession(
            {CHART: [make_response(429), make_response(200, yahoo_chart_payload([5.0]))]}
        )
        adapter = make_equity_adapter(session, retries=1)

        outcome = adapter.fetch_equity("AAPL", 7)

        assert outcome.status == "fresh"
        assert len(session.calls_to(CHART)) == 2


class TestEquityMapping:
    """Pure mapping from a chart result to Asset."""

    def test_invalid_closes_are_filtered_and_timestamps_converted(self):
        payload = yahoo_chart_payload([100.0, None, 102.0, "x"], start_s=1_000)
        result = parse_result(payload)

        asset = build_equity_asset("AAPL", result, fetched_at=0)

        assert asset.history == [100.0, 102.0]
        assert asset.timestamps == [1_000_000, (1_000 + 2 * 86_400) * 1000]

    def test_fallbacks_without_meta(self):
        """Without meta, price is the last close and previous close the first."""
        result = parse_result(yahoo_chart_payload([50.0, 60.0, 55.0]))

        asset = build_equity_asset("AAPL", result, fetched_at=0)

        assert asset.price == 55.0
        assert asset.previous_close == 50.0
        assert math.isclose(asset.change, 10.0)
        assert asset.high == 60.0
        assert asset.low == 50.0
        assert asset.open == 50.0

    def test_open_uses_most_recent_valid_sample(self):
        result = parse_result(yahoo_chart_payload([50.0, 60.0], opens=[49.0, 58.5, None]))

        assert build_equity_asset("AAPL", result, fetched_at=0).open == 58.5

    def test_no_valid_closes(self):
        result = parse_result(yahoo_chart_payload([None, None]))

        asset = build_equity_asset("AAPL", result, fetched_at=0)

        assert asset.history == [0.0]
        assert asset.timestamps == []
        assert asset.price == 0
        assert asset.change == 0

    def test_forward_pe_and_ten_day_volume_fallbacks(self):
        asset = build_equity_asset("AAPL", parse_result(yahoo_chart_payload([1.0])), fetched_at=0)

        apply_quote(
            asset,
            YahooQuote.model_validate({"forwardPE": 20.0, "averageDailyVolume10Day": 1000}),
        )

        assert asset.pe == 20.0
        assert asset.avg_volume == 1000

    def test_instrument_kind(self):
        assert instrument_kind("ETF") == "etf"
        assert instrument_kind("EQUITY") == "stock"
        assert instrument_kind(None) == "stock"

    @given(
        closes=st.lists(
            st.one_of(st.floats(min_value=0, max_value=1e7, allow_nan=False), st.none()),
            max_size=40,
        ),
        previous_close=st.one_of(st.none(), st.floats(min_value=-10, max_value=1e7, allow_nan=False)),
    )
    def test_asset_invariants_hold_for_any_chart(self, closes, previous_close):
        """
        Property: history is never empty, timestamps match history when
        present, and change is finite (0 for a non-positive previous close).
        """
        meta = {"chartPreviousClose": previous_close} if previous_close is not None else {}
        result = parse_result(yahoo_chart_payload(closes, meta=meta))

        asset = build_equity_asset("X", result, fetched_at=0)

        assert len(asset.history) >= 1
        if asset.timestamps:
            assert len(asset.timestamps) == len(asset.history)
        assert math.isfinite(asset.change)
        if asset.previous_close <= 0:
            assert asset.change == 0
