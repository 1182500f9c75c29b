"""
Infrastructure time utilities
=============================

ISO8601 timestamps for the database layer, kept free of relay imports.
"""
from datetime import datetime, timezone


def iso_now() -> str:
    """Current UTC time as a timezone-aware ISO8601 string (microsecond precision).

    Fixed precision keeps lexical ordering of ``created_at`` columns correct.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")
