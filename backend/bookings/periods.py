"""Calendar arithmetic for lease periods.

Months are added on the calendar, clamping to the last valid day, so one month
after January 31 is the end of February rather than early March.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from properties.models import LeaseType

_MONTHS_PER_PERIOD = {
    LeaseType.MONTHLY: 1,
    LeaseType.QUARTERLY: 3,
    LeaseType.YEARLY: 12,
}
_DAYS_PER_PERIOD = {
    LeaseType.DAILY: 1,
    LeaseType.WEEKLY: 7,
}


def add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(value.day, last_day))


def add_period(value: date, lease_type: str) -> date:
    """Advance ``value`` by exactly one calendar unit of ``lease_type``."""
    if lease_type in _DAYS_PER_PERIOD:
        return value + timedelta(days=_DAYS_PER_PERIOD[lease_type])
    if lease_type in _MONTHS_PER_PERIOD:
        return add_months(value, _MONTHS_PER_PERIOD[lease_type])
    raise ValueError(f"Unknown lease type: {lease_type!r}")


def add_periods(value: date, lease_type: str, periods: int) -> date:
    """Apply one-period steps ``periods`` times.

    Steps are applied one after another (Jan 31 + 2 months goes through the end
    of February), never as a fixed-length duration.
    """
    if periods < 0:
        raise ValueError("periods must be non-negative")
    result = value
    for _ in range(periods):
        result = add_period(result, lease_type)
    return result


def periods_between(start: date, end: date | None, lease_type: str) -> int:
    """Whole periods needed to cover ``start``..``end``; one for open-ended stays."""
    if end is None:
        return 1
    if end <= start:
        raise ValueError("end must be after start")
    if lease_type in _DAYS_PER_PERIOD:
        step = _DAYS_PER_PERIOD[lease_type]
        return -(-(end - start).days // step)
    periods = 1
    cursor = add_period(start, lease_type)
    while cursor < end:
        cursor = add_period(cursor, lease_type)
        periods += 1
    return periods
