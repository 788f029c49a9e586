"""Calendar arithmetic for report timestamps."""

from __future__ import annotations

SECONDS_PER_DAY = 86400

_MONTH_DAYS = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def is_leap_year(year: int) -> bool:
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


def days_in_month(year: int, month: int) -> int:
    if month == 2 and is_leap_year(year):
        return 29
    return _MONTH_DAYS[month - 1]


def format_timestamp(timestamp: int) -> str:
    """Render Unix seconds as ``YYYY-MM-DDTHH:MM:SSZ``.

    Days are peeled off year by year and then month by month using the
    Gregorian leap rule, so the result does not depend on the local time
    zone or the platform's calendar support.

    >>> format_timestamp(1705315800)
    '2024-01-15T10:50:00Z'
    """
    days, time_of_day = divmod(timestamp, SECONDS_PER_DAY)
    hours, rem = divmod(time_of_day, 3600)
    minutes, seconds = divmod(rem, 60)

    year = 1970
    while True:
        year_days = 366 if is_leap_year(year) else 365
        if days < year_days:
            break
        days -= year_days
        year += 1

    month = 1
    while days >= days_in_month(year, month):
        days -= days_in_month(year, month)
        month += 1

    return f"{year:04d}-{month:02d}-{days + 1:02d}T{hours:02d}:{minutes:02d}:{seconds:02d}Z"
