"""Money formatting utilities"""

from cardpay_gateway.config import settings


def format_amount(amount_cents: int, symbol: str | None = None) -> str:
    """Format minor units for display, e.g. 123456 → ₹1,234.56"""
    symbol = settings.currency_symbol if symbol is None else symbol
    sign = "-" if amount_cents < 0 else ""
    major, minor = divmod(abs(amount_cents), 100)
    return f"{sign}{symbol}{major:,}.{minor:02d}"
