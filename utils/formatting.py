"""Common formatting helpers for rating reports."""

from typing import Optional


def format_usd(number: float) -> str:
    """Format number to readable USD string with K, M, B suffixes."""
    if number >= 1_000_000_000:
        return f"${number / 1_000_000_000:.2f}B"
    if number >= 1_000_000:
        return f"${number / 1_000_000:.2f}M"
    if number >= 1_000:
        return f"${number / 1_000:.2f}K"
    return f"${number:.2f}"


def format_pct(ratio: Optional[float], digits: int = 2) -> str:
    """Format a decimal ratio (0.05) as a percent string (5.00%), or n/a when missing."""
    if ratio is None:
        return "n/a"
    return f"{ratio * 100:.{digits}f}%"
