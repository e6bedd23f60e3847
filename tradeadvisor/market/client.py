"""Binance futures client for ticker prices."""

import logging
from typing import List, Optional

import requests
from pydantic import ValidationError
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tradeadvisor.config import get_settings
from tradeadvisor.market.exceptions import MarketDataError
from tradeadvisor.market.models import Ticker

logger = logging.getLogger(__name__)


class BinanceClient:
    """Public (unauthenticated) Binance USD-M futures market data."""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10.0):
        """Initialize client.

        Args:
            base_url: API base URL. If None, uses config value.
            timeout: Request timeout in seconds
        """
        settings = get_settings()
        self.base_url = (base_url or settings.binance_base_url).rstrip("/")
        self.tracked_symbols = settings.tracked_symbol_list
        self.timeout = timeout
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create requests session with retry logic."""
        session = requests.Session()

        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def get_ticker_prices(self, symbols: Optional[List[str]] = None) -> List[Ticker]:
        """Get latest prices, filtered to the given or tracked symbols.

        Args:
            symbols: Symbols to keep. If None, uses the tracked symbols.

        Returns:
            List of Ticker objects in exchange order

        Raises:
            MarketDataError: If the request fails or the payload is malformed
        """
        wanted = {s.upper() for s in (symbols or self.tracked_symbols)}
        url = f"{self.base_url}/fapi/v1/ticker/price"

        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise MarketDataError(f"Failed to fetch market data: {str(e)}")
        except ValueError as e:
            raise MarketDataError(f"Invalid market data payload: {str(e)}")

        if not isinstance(data, list):
            raise MarketDataError("Invalid market data payload: expected a list")

        try:
            tickers = [Ticker(**item) for item in data if item.get("symbol") in wanted]
        except (ValidationError, AttributeError) as e:
            raise MarketDataError(f"Invalid ticker entry: {str(e)}")

        logger.debug("Fetched %d/%d tracked tickers", len(tickers), len(wanted))
        return tickers

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
