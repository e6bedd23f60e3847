"""Helper utilities for tradeadvisor."""

from decimal import Decimal
from typing import Optional

# Amounts on the ledger are integers with 18 implied decimals
BASE_UNIT_DECIMALS = 18
ONE_UNIT = 10**BASE_UNIT_DECIMALS


def format_price(price: Optional[str]) -> str:
    """Format a ticker price for display.

    Args:
        price: Price as returned by the exchange (decimal string)

    Returns:
        Formatted price string with thousands separators
    """
    if price is None:
        return "N/A"
    try:
        return f"${Decimal(price):,.2f}"
    except ArithmeticError:
        return "N/A"


def format_units(amount: Optional[int], precision: int = 4) -> str:
    """Format a base-unit integer amount as whole units.

    Args:
        amount: Amount in 18-decimal base units
        precision: Decimal places to show

    Returns:
        Formatted amount string
    """
    if amount is None:
        return "N/A"
    value = Decimal(amount) / Decimal(ONE_UNIT)
    return f"{value:.{precision}f}"


def validate_symbol(symbol: str) -> str:
    """Validate and normalize a trading pair symbol.

    Args:
        symbol: Symbol string such as "btcusdt"

    Returns:
        Upper-cased symbol

    Raises:
        ValueError: If symbol is empty or not alphanumeric
    """
    normalized = (symbol or "").strip().upper()
    if not normalized or not normalized.isalnum():
        raise ValueError(f"Invalid symbol: {symbol!r}. Must be alphanumeric, e.g. BTCUSDT.")
    return normalized
