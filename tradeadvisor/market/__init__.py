"""Market data: ticker prices and the last-value snapshot."""

from tradeadvisor.market.models import Ticker
from tradeadvisor.market.snapshot import MarketSnapshot

__all__ = ["MarketSnapshot", "Ticker"]
