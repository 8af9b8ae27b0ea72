"""Currency, number and percentile formatting for CLI output."""

from typing import Optional


def format_currency(amount: Optional[float], decimals: int = 2) -> str:
    """Format as USD with $ and commas (e.g., $12,345.67); '-' for None."""
    if amount is None:
        return "-"
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.{decimals}f}"


def format_currency_compact(amount: float) -> str:
    """Compact currency (e.g., $500k, $1.2M)."""
    sign = "-" if amount < 0 else ""
    value = abs(amount)
    if value >= 1_000_000:
        return f"{sign}${value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{sign}${round(value / 1_000)}k"
    return f"{sign}${round(value)}"


def format_number(value: Optional[float], decimals: int = 0) -> str:
    """Number with thousands separators; '-' for None."""
    if value is None:
        return "-"
    return f"{value:,.{decimals}f}"


def format_ordinal(n: Optional[float]) -> str:
    """Percentile as ordinal (44 -> '44th', 21 -> '21st'); '-' for None."""
    if n is None:
        return "-"
    value = int(round(n))
    if 11 <= value % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(value % 10, "th")
    return f"{value}{suffix}"
