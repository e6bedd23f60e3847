"""
Tests for ticker retrieval and the market snapshot.
"""

import asyncio
from unittest.mock import Mock, patch

import pytest
import requests

from tradeadvisor.market.client import BinanceClient
from tradeadvisor.market.exceptions import MarketDataError
from tradeadvisor.market.models import Ticker
from tradeadvisor.market.snapshot import MarketSnapshot

EXCHANGE_PAYLOAD = [
    {"symbol": "BTCUSDT", "price": "64250.10", "time": 1700000000000},
    {"symbol": "XRPUSDT", "price": "0.61", "time": 1700000000000},
    {"symbol": "ETHUSDT", "price": "3120.55", "time": 1700000000000},
]


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestMarketSnapshot:
    """Last-value cache with staleness."""

    def setup_method(self):
        self.clock = FakeClock()
        self.snapshot = MarketSnapshot(max_age=10, clock=self.clock)

    def test_unknown_symbol(self):
        assert self.snapshot.latest_price("BTCUSDT") is None

    def test_latest_value_wins(self):
        self.snapshot.update([Ticker(symbol="BTCUSDT", price="1")])
        self.snapshot.update([Ticker(symbol="BTCUSDT", price="2")])

        assert self.snapshot.latest_price("btcusdt") == "2"
        assert len(self.snapshot.tickers()) == 1

    def test_price_within_max_age(self):
        self.snapshot.update([Ticker(symbol="BTCUSDT", price="1")])
        self.clock.now += 10

        assert self.snapshot.latest_price("BTCUSDT") == "1"

    def test_stale_price_is_unavailable(self):
        self.snapshot.update([Ticker(symbol="BTCUSDT", price="1")])
        self.clock.now += 10.5

        assert self.snapshot.latest_price("BTCUSDT") is None
        assert self.snapshot.tickers()[0].price == "1"

    def test_refresh_uses_client(self):
        client = Mock()
        client.get_ticker_prices.return_value = [Ticker(symbol="ETHUSDT", price="3000")]

        self.snapshot.refresh(client, ["ETHUSDT"])

        client.get_ticker_prices.assert_called_once_with(["ETHUSDT"])
        assert self.snapshot.latest_price("ETHUSDT") == "3000"

    def test_failed_refresh_keeps_cache(self):
        self.snapshot.update([Ticker(symbol="ETHUSDT", price="3000")])
        client = Mock()
        client.get_ticker_prices.side_effect = MarketDataError("down")

        with pytest.raises(MarketDataError):
            self.snapshot.refresh(client)

        assert self.snapshot.latest_price("ETHUSDT") == "3000"

    def test_refresh_periodically_survives_errors(self):
        client = Mock()
        client.get_ticker_prices.side_effect = [
            MarketDataError("down"),
            [Ticker(symbol="BTCUSDT", price="5")],
            [Ticker(symbol="BTCUSDT", price="6")],
        ]

        async def run_briefly():
            task = asyncio.create_task(self.snapshot.refresh_periodically(client, interval=0.01))
            while client.get_ticker_prices.call_count < 2:
                await asyncio.sleep(0.005)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run_briefly())

        assert self.snapshot.latest_price("BTCUSDT") in ("5", "6")

    def test_refresh_periodically_with_limit_and_hook(self):
        client = Mock()
        client.get_ticker_prices.side_effect = [
            [Ticker(symbol="BTCUSDT", price="5")],
            MarketDataError("down"),
            [Ticker(symbol="BTCUSDT", price="7")],
        ]
        seen = []

        asyncio.run(
            self.snapshot.refresh_periodically(
                client,
                interval=0,
                symbols=["BTCUSDT"],
                on_refresh=lambda snap: seen.append(snap.latest_price("BTCUSDT")),
                limit=3,
            )
        )

        assert seen == ["5", "5", "7"]
        client.get_ticker_prices.assert_called_with(["BTCUSDT"])


class TestBinanceClient:
    """BinanceClient over a mocked session."""

    def setup_method(self):
        self.client = BinanceClient(base_url="https://fapi.test")
        self.client.session = Mock(spec=requests.Session)

    def _respond(self, payload):
        response = Mock()
        response.raise_for_status.return_value = None
        response.json.return_value = payload
        self.client.session.get.return_value = response

    def test_filters_to_tracked_symbols(self):
        self._respond(EXCHANGE_PAYLOAD)

        tickers = self.client.get_ticker_prices()

        self.client.session.get.assert_called_once_with(
            "https://fapi.test/fapi/v1/ticker/price", timeout=10.0
        )
        assert [t.symbol for t in tickers] == ["BTCUSDT", "ETHUSDT"]

    def test_explicit_symbols(self):
        self._respond(EXCHANGE_PAYLOAD)

        tickers = self.client.get_ticker_prices(["xrpusdt"])

        assert [t.symbol for t in tickers] == ["XRPUSDT"]
        assert tickers[0].price == "0.61"

    def test_http_failure(self):
        self.client.session.get.side_effect = requests.exceptions.ConnectionError("dns")

        with pytest.raises(MarketDataError, match="Failed to fetch market data"):
            self.client.get_ticker_prices()

    def test_non_list_payload(self):
        self._respond({"code": -1121, "msg": "Invalid symbol."})

        with pytest.raises(MarketDataError):
            self.client.get_ticker_prices()

    def test_tracked_symbols_from_settings(self, monkeypatch):
        from tradeadvisor.config import reset_settings

        monkeypatch.setenv("TRADEADVISOR_TRACKED_SYMBOLS", "btcusdt, dogeusdt")
        reset_settings()

        with patch("tradeadvisor.market.client.requests.Session"):
            client = BinanceClient()

        assert client.tracked_symbols == ["BTCUSDT", "DOGEUSDT"]
