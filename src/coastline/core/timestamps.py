"""
UTC timestamp helpers (stdlib-only).

Every row the data service writes is stamped with ``created_at`` /
``updated_at`` in UTC, and date filters compare against today's UTC
date.  Values stay ``datetime``/``date`` objects here: the relational
driver binds them natively and the platform adapter serializes them to
ISO-8601 on the way out.
"""

from datetime import UTC, date, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def utc_today() -> date:
    """Today's date in UTC."""
    return utc_now().date()


__all__ = [
    "utc_now",
    "utc_today",
]
