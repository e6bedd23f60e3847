"""Exceptions for market data retrieval."""


class MarketDataError(Exception):
    """Ticker prices could not be fetched."""

    pass
