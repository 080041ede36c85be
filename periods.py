from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import InvalidInputError


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    first = month_start(d)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def month_period(year: int, month: int) -> Period:
    first = date(year, month, 1)
    return Period("month", first, month_end(first))


def previous_month(d: date) -> Period:
    """Calendar month immediately before the month containing ``d``."""
    last_month_end = month_start(d) - date.resolution
    return Period("last_month", month_start(last_month_end), last_month_end)


def current_month(*, today: Optional[date] = None) -> Period:
    if today is None:
        today = datetime.now(ZoneInfo(get_settings().timezone)).date()
    return Period("this_month", month_start(today), month_end(today))


def resolve_period(
    start: Optional[date],
    end: Optional[date],
    *,
    required: bool = False,
) -> Optional[Period]:
    """Build a custom period from optional bounds.

    A range only applies when both bounds are given. Otherwise the result is
    ``None`` (callers decide the fallback), or an error when ``required``.
    """
    if start is None or end is None:
        if required:
            raise InvalidInputError("Both startDate and endDate are required")
        return None
    if start > end:
        raise InvalidInputError("Start date must be before end date")
    return Period("custom", start, end)
