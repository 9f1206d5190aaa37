"""
Common helpers for the arbitrage scanner.

Timestamp handling, human/raw amount conversion, percentage math and
logger lookup.
"""

import logging
import time
from decimal import ROUND_FLOOR, Decimal, getcontext
from typing import Any, Union

# amounts are u64 raw units scaled by up to 10**18
getcontext().prec = 50

Number = Union[Decimal, int, float, str]


# Timestamp utilities
def get_current_timestamp() -> float:
    """Get current Unix timestamp as float."""
    return time.time()


def monotonic_ms() -> float:
    """Milliseconds from a monotonic clock, for cache ages."""
    return time.monotonic() * 1000.0


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


# Amount utilities
def d(value: Number) -> Decimal:
    """Coerce a number to Decimal through its string form."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_raw_amount(amount: Number, decimals: int) -> int:
    """
    Convert a human-readable amount to integer ledger units.

    Truncates toward zero so the raw amount never carries more value than
    the human amount it came from.

    Args:
        amount: Non-negative human-readable amount
        decimals: Mint precision

    Returns:
        floor(amount * 10**decimals)

    Raises:
        ValueError: If amount is negative
    """
    value = d(amount)
    if value < 0:
        raise ValueError(f"amount must be non-negative: {amount}")
    scaled = value.scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def from_raw_amount(raw: int, decimals: int) -> Decimal:
    """Convert integer ledger units back to a human-readable amount."""
    return Decimal(int(raw)).scaleb(-decimals)


def slippage_to_bps(slippage: Number) -> int:
    """Scale a slippage tolerance the way the bin-model venue expects it."""
    return int((d(slippage) * 100).to_integral_value(rounding=ROUND_FLOOR))


# Math utilities
def calculate_percentage(value: Decimal, total: Decimal) -> Decimal:
    """Calculate percentage with zero-division protection."""
    if total == 0:
        return Decimal(0)
    return value / total * 100


def format_amount(value: Any, places: int = 9) -> str:
    """Format an amount without scientific notation."""
    text = f"{d(value):.{places}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def format_profit(profit_pct: Number) -> str:
    """Format a percentage value with a sign prefix.

    Examples:
        >>> format_profit(Decimal("1.234"))
        '+1.23%'
        >>> format_profit(-0.456)
        '-0.46%'
    """
    percentage = d(profit_pct)
    if percentage >= 0:
        return f"+{percentage:.2f}%"
    return f"{percentage:.2f}%"


# Logging utilities
def get_logger(name: str, level: Union[str, int, None] = None) -> logging.Logger:
    """
    Get a module logger.

    Formatting and handlers are owned by logging_config.setup(); loggers
    returned here propagate to the root handler.
    """
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger
