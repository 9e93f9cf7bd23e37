"""
values.py — Scalar coercion shared by the core modules.

Numbers and timestamps arrive as strings, numpy scalars or None. Every module
reads them through these helpers so one record is judged the same way by
grading, ranking, statistics, consistency and reports.
"""

import math
from typing import Any, Optional

import pandas as pd


def to_number(value: Any) -> Optional[float]:
    """Convert to a finite float or return None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_timestamp(value: Any) -> Optional[pd.Timestamp]:
    """
    Parse one timestamp to a UTC pandas Timestamp, None when unparseable.

    Values are parsed one at a time so a date-only value next to a full ISO
    timestamp cannot change how the other is read.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    stamp = pd.to_datetime(value, errors="coerce", utc=True)
    return None if pd.isna(stamp) else stamp
