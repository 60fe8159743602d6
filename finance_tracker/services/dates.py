"""Calendar arithmetic for budgets, subscriptions and recurring transactions."""

import calendar
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

FREQUENCY_STEPS = {
    "daily": relativedelta(days=+1),
    "weekly": relativedelta(weeks=+1),
    "monthly": relativedelta(months=+1),
    "quarterly": relativedelta(months=+3),
    "yearly": relativedelta(years=+1),
}


def today() -> date:
    return date.today()


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of `month` (1-12) in `year`."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def current_month_bounds(reference: Optional[date] = None) -> tuple[date, date]:
    reference = reference or today()
    return month_bounds(reference.year, reference.month)


def months_back(count: int, reference: Optional[date] = None) -> list[tuple[date, date]]:
    """Bounds of the last `count` months, oldest first, ending with the current month."""
    reference = reference or today()
    first = reference.replace(day=1)
    bounds = []
    for offset in range(count - 1, -1, -1):
        start = first - relativedelta(months=offset)
        bounds.append(month_bounds(start.year, start.month))
    return bounds


def next_due_date(current: date, frequency: str, custom_days: Optional[int] = None) -> date:
    """Advance `current` by one billing step; unknown frequencies step monthly."""
    if frequency == "custom" and custom_days:
        return current + timedelta(days=custom_days)
    return current + FREQUENCY_STEPS.get(frequency, FREQUENCY_STEPS["monthly"])


def renewal_period(previous_end: date, period: str) -> Optional[tuple[date, date]]:
    """
    Start and end of the budget period following one that ended on `previous_end`.

    Returns None for periods that do not renew automatically (custom).
    """
    start = previous_end + timedelta(days=1)
    if period == "weekly":
        return start, start + timedelta(days=6)
    if period == "monthly":
        return start, month_bounds(start.year, start.month)[1]
    if period == "quarterly":
        end = (start + relativedelta(months=+3)).replace(day=1) - timedelta(days=1)
        return start, end
    if period == "yearly":
        return start, date(start.year, 12, 31)
    return None


def days_until(target: date, reference: Optional[date] = None) -> int:
    return (target - (reference or today())).days
