"""Prompt template for trading analysis requests."""

from typing import Optional

from tradeadvisor.inference.models import ChatMessage

PRICE_UNAVAILABLE = "N/A"

ANALYSIS_PROMPT_TEMPLATE = """作为一个专业的加密货币交易分析师，请分析 {symbol} 交易对的当前情况。

当前价格: {price} USDT

请提供：
1. 技术分析观点（支撑位、阻力位）
2. 短期交易建议（做多/做空/观望）
3. 风险提示

请用简洁专业的语言回答，不超过200字。"""


def build_analysis_prompt(symbol: str, price: Optional[str]) -> str:
    """Fill the analysis template.

    Args:
        symbol: Trading pair, e.g. "BTCUSDT"
        price: Latest known price, or None when unavailable

    Returns:
        Prompt text
    """
    return ANALYSIS_PROMPT_TEMPLATE.format(
        symbol=symbol,
        price=price if price else PRICE_UNAVAILABLE,
    )


def build_user_message(symbol: str, price: Optional[str]) -> ChatMessage:
    """Build the single user message sent to the provider."""
    return ChatMessage(role="user", content=build_analysis_prompt(symbol, price))
