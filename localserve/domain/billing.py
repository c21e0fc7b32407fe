"""Billing interval arithmetic.

Intervals map to fixed day counts; "monthly" is always 30 days and "yearly"
always 365, never calendar months or years.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, TypeVar

DateLike = TypeVar("DateLike", bound=date)

INTERVAL_DAYS: Dict[str, int] = {
    "weekly": 7,
    "bi-weekly": 14,
    "monthly": 30,
    "quarterly": 90,
    "yearly": 365,
}

DEFAULT_INTERVAL_DAYS = 30


def interval_days(interval: str) -> int:
    """Return the day count for ``interval``, falling back to 30 for unknown names."""
    return INTERVAL_DAYS.get(interval, DEFAULT_INTERVAL_DAYS)


def next_billing_date(interval: str, reference: DateLike) -> DateLike:
    return reference + timedelta(days=interval_days(interval))
