import calendar
from datetime import date, timedelta

DAYS_PER_MONTH = 30.44


def add_months(d: date, months: int) -> date:
    """Shift by whole calendar months, clamping to the last day of shorter months."""
    total = d.year * 12 + (d.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def iter_months(start: date, end: date):
    """Yield (first_day, last_day) for every calendar month touching [start, end]."""
    current = month_start(start)
    while current <= end:
        yield current, month_end(current)
        current = add_months(current, 1)


def advance_by_frequency(d: date, frequency: str, custom_days: int | None = None) -> date:
    if frequency == "monthly":
        return add_months(d, 1)
    if frequency == "quarterly":
        return add_months(d, 3)
    if frequency == "annually":
        return add_months(d, 12)
    if frequency == "custom" and custom_days:
        return d + timedelta(days=custom_days)
    return add_months(d, 1)


def effective_period(
    start_date: date, end_date: date | None, period: str, today: date | None = None
) -> tuple[date, date]:
    """Window a budget is measured over.

    A budget without an end date is indefinite and is always measured over
    the current calendar month (monthly) or calendar year (yearly).
    """
    if end_date is not None:
        return start_date, end_date
    today = today or date.today()
    if period == "yearly":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    return month_start(today), month_end(today)


def inclusive_days(start: date, end: date) -> int:
    return (end - start).days + 1
