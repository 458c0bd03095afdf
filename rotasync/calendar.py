"""
Calendar arithmetic used by the retention policies.

Days and weeks come from ``datetime.timedelta``, months from
``dateutil.relativedelta`` which clamps to the last day of a shorter month
(Mar 31 minus one month is Feb 28/29). Months are applied before days, so
``shift(d, months=-1, days=-2)`` reads as "one month and two days ago".
"""

from datetime import date as Date

from dateutil.relativedelta import relativedelta

# python's weekday() is 0 for Monday
WEEK_START = 0


def shift(d: Date, days: int = 0, weeks: int = 0, months: int = 0) -> Date:
    return d + relativedelta(months=months, weeks=weeks, days=days)


def weekday(d: Date) -> int:
    """
    Day of the week numbered like ``date +%w``: 0 is Sunday, 1 is Monday.
    """
    return d.isoweekday() % 7


def day_of_month(d: Date) -> int:
    return d.day


def is_week_start(d: Date) -> bool:
    return d.weekday() == WEEK_START


def is_month_start(d: Date) -> bool:
    return d.day == 1
