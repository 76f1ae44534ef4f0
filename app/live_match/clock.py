"""
Match clock reducer.

Both the per-minute ticker and the manual minute control go through these
functions; whichever write reaches the store last wins.
"""
from typing import Optional

MIN_MINUTE = 0
MAX_MINUTE = 120
AUTO_MINUTE_CAP = 90


def set_minute(value: int, maximum: int = MAX_MINUTE) -> int:
    """Clamp a requested minute to [0, maximum]."""
    return max(MIN_MINUTE, min(maximum, int(value)))


def apply_minute_delta(current: Optional[int], delta: int, maximum: int = MAX_MINUTE) -> int:
    """Shift the clock by `delta` minutes, clamped."""
    return set_minute((current or 0) + delta, maximum=maximum)


def next_tick(current: Optional[int], cap: int = AUTO_MINUTE_CAP) -> Optional[int]:
    """
    Minute after one automatic tick, or None once the cap is reached.

    The ticker never pushes past the cap; added time is set by hand.
    """
    current = current or 0
    if current >= cap:
        return None
    return current + 1
