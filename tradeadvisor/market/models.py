"""Pydantic models for market data."""

from typing import Optional

from pydantic import BaseModel


class Ticker(BaseModel):
    """Latest price of a trading pair, as the exchange reports it."""

    symbol: str
    price: str
    time: Optional[int] = None
