from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class CalendarMonth:
    start_date: datetime
    end_date: datetime
    label: str
    days_in_month: int


@dataclass(frozen=True)
class BillingPeriod:
    label: str
    start_date: datetime
    end_date: datetime


def local_now() -> datetime:
    """Wall-clock time in the configured zone, as a naive local datetime."""
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    tz = ZoneInfo(get_settings().timezone)
    return value.astimezone(tz).replace(tzinfo=None)


def shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    """Move (year, month) by ``offset`` months; ``month`` may be outside 1..12."""
    month_index = (year * 12) + (month - 1) + offset
    return month_index // 12, (month_index % 12) + 1


def rolled_datetime(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0,
) -> datetime:
    """
    Build a datetime letting out-of-range days spill into the neighbouring month.

    ``day=0`` is the last day of the previous month and ``day=31`` in a 30-day
    month is the 1st of the next one.
    """
    year, month = shift_month(year, month, 0)
    first = datetime(year, month, 1, hour, minute, second)
    return first + timedelta(days=day - 1)


def month_label(value: datetime) -> str:
    return value.strftime("%B %Y")


def get_calendar_month(
    month_offset: int = 0, *, now: Optional[datetime] = None
) -> CalendarMonth:
    now = now or local_now()
    year, month = shift_month(now.year, now.month, month_offset)

    start_date = datetime(year, month, 1, 0, 0, 0)
    days_in_month = rolled_datetime(year, month + 1, 0).day
    end_date = datetime(year, month, days_in_month, 23, 59, 59)

    return CalendarMonth(
        start_date=start_date,
        end_date=end_date,
        label=month_label(start_date),
        days_in_month=days_in_month,
    )


def day_progress(period: CalendarMonth, now: datetime) -> tuple[int, int]:
    """(days elapsed, days remaining) of ``period`` as of ``now``, today counted as elapsed."""
    if now < period.start_date:
        return 0, period.days_in_month
    if now > period.end_date:
        return period.days_in_month, 0
    elapsed = (now - period.start_date).days + 1
    return elapsed, period.days_in_month - elapsed


def months_before(value: datetime, months: int) -> datetime:
    year, month = shift_month(value.year, value.month, -months)
    return datetime(year, month, 1)


def get_billing_period(
    statement_day: int,
    month_offset: int = 0,
    reference_date: Optional[datetime] = None,
) -> BillingPeriod:
    """
    Statement cycle running from ``statement_day`` to the day before the next one.

    On the statement day itself the just-closed cycle is still the active one.
    The label names the month the cycle closes in, so Dec 21 - Jan 20 is
    "January".
    """
    reference = reference_date or local_now()
    year, month = reference.year, reference.month
    if reference.day <= statement_day:
        month -= 1

    year, month = shift_month(year, month, month_offset)

    start_date = rolled_datetime(year, month, statement_day)
    end_date = rolled_datetime(year, month + 1, statement_day - 1, 23, 59, 59)

    return BillingPeriod(
        label=month_label(end_date),
        start_date=start_date,
        end_date=end_date,
    )
