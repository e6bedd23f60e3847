"""Last-value cache of ticker prices."""

import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from tradeadvisor.market.client import BinanceClient
from tradeadvisor.market.exceptions import MarketDataError
from tradeadvisor.market.models import Ticker

logger = logging.getLogger(__name__)


class MarketSnapshot:
    """Most recently observed price per symbol.

    A price older than ``max_age`` seconds is reported as unavailable, so a
    stalled refresh never feeds an old price into a prompt.
    """

    def __init__(self, max_age: float = 10.0, clock: Callable[[], float] = time.monotonic):
        self.max_age = max_age
        self._clock = clock
        self._prices: Dict[str, Tuple[Ticker, float]] = {}

    def update(self, tickers: Iterable[Ticker]) -> None:
        """Store a batch of tickers, stamped with the current time."""
        now = self._clock()
        for ticker in tickers:
            self._prices[ticker.symbol.upper()] = (ticker, now)

    def latest_price(self, symbol: str) -> Optional[str]:
        """Latest fresh price for ``symbol``, None if unknown or stale."""
        entry = self._prices.get(symbol.upper())
        if entry is None:
            return None
        ticker, observed_at = entry
        if self._clock() - observed_at > self.max_age:
            return None
        return ticker.price

    def tickers(self) -> List[Ticker]:
        """All cached tickers, fresh or not, in insertion order."""
        return [ticker for ticker, _ in self._prices.values()]

    def refresh(self, client: BinanceClient, symbols: Optional[List[str]] = None) -> List[Ticker]:
        """Fetch tickers and store them.

        Raises:
            MarketDataError: If the fetch fails; cached prices are kept
        """
        tickers = client.get_ticker_prices(symbols)
        self.update(tickers)
        return tickers

    async def refresh_periodically(
        self,
        client: BinanceClient,
        interval: float = 10.0,
        symbols: Optional[List[str]] = None,
        on_refresh: Optional[Callable[["MarketSnapshot"], None]] = None,
        limit: Optional[int] = None,
    ) -> None:
        """Refresh every ``interval`` seconds until cancelled.

        A failed refresh is logged and retried on the next tick.

        Args:
            client: Exchange client to poll
            interval: Seconds between refreshes
            symbols: Symbols to fetch; None for the tracked list
            on_refresh: Called with the snapshot after every attempt
            limit: Stop after this many attempts; None runs until cancelled
        """
        attempts = 0
        while limit is None or attempts < limit:
            try:
                await asyncio.to_thread(self.refresh, client, symbols)
            except MarketDataError as e:
                logger.warning("Market data refresh failed: %s", e)
            attempts += 1
            if on_refresh is not None:
                on_refresh(self)
            if limit is None or attempts < limit:
                await asyncio.sleep(interval)
