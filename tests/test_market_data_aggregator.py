"""Tests for the market data aggregator."""

from unittest.mock import Mock, call

import requests
from hypothesis import given, settings, strategies as st

from conftest import FakeSession, chart_payload, make_response, yahoo_chart_payload
from stonks.models.market_data import Asset, FetchOutcome
from stonks.services.market_data_aggregator import MarketDataAggregator


def outcome_for(symbol: str, kind: str = "stock", status: str = "fresh") -> FetchOutcome:
    return FetchOutcome(status, Asset(symbol=symbol, kind=kind, price=1.0, history=[1.0]))


class TestMarketDataAggregator:
    """Test suite for MarketDataAggregator."""

    def test_dispatches_by_id_map(self):
        """Tickers with a provider id go to crypto, the rest to equity."""
        crypto = Mock()
        crypto.fetch_crypto.side_effect = lambda s, pid, d: outcome_for(s, "crypto")
        equity = Mock()
        equity.fetch_equity.side_effect = lambda s, d: outcome_for(s)
        aggregator = MarketDataAggregator(crypto, equity)

        assets = aggregator.fetch_all(["BTC", "AAPL", "ETH"], {"BTC": "bitcoin", "ETH": "ethereum"}, 30)

        assert [a.symbol for a in assets] == ["BTC", "AAPL", "ETH"]
        assert crypto.fetch_crypto.call_args_list == [
            call("BTC", "bitcoin", 30),
            call("ETH", "ethereum", 30),
        ]
        equity.fetch_equity.assert_called_once_with("AAPL", 30)

    def test_calls_are_sequential_in_input_order(self):
        """Adapters are invoked one after another in watchlist order."""
        order = []
        crypto = Mock()
        crypto.fetch_crypto.side_effect = lambda s, pid, d: order.append(s) or outcome_for(s)
        equity = Mock()
        equity.fetch_equity.side_effect = lambda s, d: order.append(s) or outcome_for(s)
        aggregator = MarketDataAggregator(crypto, equity)

        aggregator.fetch_all(["MSFT", "SOL", "SPY", "BTC"], {"SOL": "solana", "BTC": "bitcoin"}, 7)

        assert order == ["MSFT", "SOL", "SPY", "BTC"]

    def test_outcomes_keep_status(self):
        crypto = Mock()
        crypto.fetch_crypto.return_value = outcome_for("BTC", "crypto", "stale")
        equity = Mock()
        equity.fetch_equity.return_value = outcome_for("AAPL", status="failed")
        aggregator = MarketDataAggregator(crypto, equity)

        outcomes = aggregator.fetch_outcomes(["BTC", "AAPL"], {"BTC": "bitcoin"}, 7)

        assert [o.status for o in outcomes] == ["stale", "failed"]

    def test_empty_watchlist(self):
        aggregator = MarketDataAggregator(Mock(), Mock())

        assert aggregator.fetch_all([], {}, 7) == []

    def test_total_failure_yields_placeholders_in_order(
        self, make_crypto_adapter, make_equity_adapter
    ):
        """Every provider down: one error record per ticker, nothing omitted."""
        session = FakeSession(
            {
                "/market_chart": [make_response(404)],
                "/v8/finance/chart/AAPL": [requests.ConnectionError("down")],
                "/v8/finance/chart/SPY": [make_response(500)],
            }
        )
        aggregator = MarketDataAggregator(
            make_crypto_adapter(session, retries=0), make_equity_adapter(session)
        )

        assets = aggregator.fetch_all(["AAPL", "BTC", "SPY"], {"BTC": "bitcoin"}, 7)

        assert [a.symbol for a in assets] == ["AAPL", "BTC", "SPY"]
        assert [a.kind for a in assets] == ["stock", "crypto", "stock"]
        assert all(a.error and a.price == 0 and not a.from_cache for a in assets)

    def test_mixed_watchlist_end_to_end(self, make_crypto_adapter, make_equity_adapter):
        session = FakeSession(
            {
                "/coins/bitcoin/market_chart": [make_response(200, chart_payload([100, 110]))],
                "/v8/finance/chart/AAPL": [
                    make_response(200, yahoo_chart_payload([190.0, 200.0]))
                ],
            }
        )
        aggregator = MarketDataAggregator(
            make_crypto_adapter(session), make_equity_adapter(session)
        )

        btc, aapl = aggregator.fetch_all(["BTC", "AAPL"], {"BTC": "bitcoin"}, 7)

        assert (btc.kind, btc.price, btc.error) == ("crypto", 110, False)
        assert (aapl.kind, aapl.price, aapl.error) == ("stock", 200.0, False)

    @given(
        tickers=st.lists(
            st.text(alphabet="ABCDEFGHIJKLMNOPQRSTUVWXYZ", min_size=1, max_size=5), max_size=15
        ),
        crypto_share=st.integers(min_value=0, max_value=3),
    )
    @settings(max_examples=50)
    def test_one_result_per_ticker(self, tickers, crypto_share):
        """
        Property: the result has exactly one record per input ticker, in order,
        duplicates included.
        """
        id_map = {t: t.lower() for t in tickers[::crypto_share + 1]}
        crypto = Mock()
        crypto.fetch_crypto.side_effect = lambda s, pid, d: outcome_for(s, "crypto")
        equity = Mock()
        equity.fetch_equity.side_effect = lambda s, d: outcome_for(s)
        aggregator = MarketDataAggregator(crypto, equity)

        assets = aggregator.fetch_all(tickers, id_map, 7)

        assert [a.symbol for a in assets] == tickers
        assert [a.kind == "crypto" for a in assets] == [t in id_map for t in tickers]
