"""
Display formatting helpers for dashboard values
"""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives"""
    return int(math.floor(value + 0.5))


def format_minutes(minutes: float) -> str:
    """Format a duration as '1h 5m' or '45m'"""
    total = max(0, round_half_up(minutes))
    hours, mins = divmod(total, 60)
    return f"{hours}h {mins}m" if hours > 0 else f"{mins}m"


def format_distance(meters: float) -> str:
    """Format a distance as '2.3 km' or '850 m'"""
    km = meters / 1000
    return f"{km:.1f} km" if km >= 1 else f"{round_half_up(meters)} m"


def parse_hhmm(value: str) -> int:
    """Convert 'HH:MM' to minutes after midnight"""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def to_hhmm(minutes_after_midnight: int) -> str:
    """Convert minutes after midnight to 'HH:MM' (wraps past midnight)"""
    minutes_after_midnight %= 24 * 60
    return f"{minutes_after_midnight // 60:02d}:{minutes_after_midnight % 60:02d}"
