"""
Lenient parsing helpers for storefront and POS payload values.

Numbers arrive as strings ("12.50", "3 pcs", None) and must never make a
translation or a reconciliation pass raise.
"""
import re
from typing import Any

_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_float(value: Any, default: float = 0.0) -> float:
    """Parse the leading numeric part of ``value``; trailing characters are ignored."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return default
    try:
        return float(match.group(1))
    except ValueError:
        return default


def parse_int(value: Any, default: int = 0) -> int:
    return int(parse_float(value, default=float(default)))


def truncate(value: Any, length: int) -> str:
    return str(value or "")[:length]
