"""
Datetime utility functions.
Match and event times are epoch milliseconds; row metadata uses aware UTC datetimes.
"""

from datetime import datetime
from typing import Optional
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(utcnow().timestamp() * 1000)


def ms_to_datetime(value: Optional[int]) -> Optional[datetime]:
    """
    Convert epoch milliseconds to an aware UTC datetime.

    Args:
        value: Epoch milliseconds, or None

    Returns:
        UTC datetime, or None when value is None
    """
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=pytz.UTC)
