"""Resolve date-range selections into concrete inclusive intervals."""
import calendar
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Iterable, Optional

import dateparser

from .errors import InvalidRange
from .models import Application, DateRange

logger = logging.getLogger(__name__)

SELECTIONS = ("1d", "7d", "1m", "3m", "all", "custom")

_DAYS_BACK = {"1d": 1, "7d": 7}
_MONTHS_BACK = {"1m": 1, "3m": 3}


def months_back(day: date, months: int) -> date:
    """Same day-of-month `months` earlier, clamped to the end of shorter months."""
    total = day.year * 12 + (day.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def parse_day(value: Any, today: Optional[date] = None) -> Optional[date]:
    """Coerce a date, datetime or free-form string to a calendar date.

    Returns None when the value is empty or cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    # only a time part may follow the date, e.g. "2024-03-01T12:00:00Z"
    if len(text) == 10 or text[10:11] in ("T", " "):
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    settings = {"PREFER_DATES_FROM": "past"}
    if today is not None:
        settings["RELATIVE_BASE"] = datetime.combine(today, time())
    parsed = dateparser.parse(text, settings=settings)
    return parsed.date() if parsed else None


class DateRangeResolver:
    """Turns a preset or custom selection into a `DateRange`.

    `all` starts at the earliest `date_applied` of the applications passed in,
    or today when there are none, so "all time" never spans empty decades.
    """

    def __init__(self, clock: Callable[[], date]):
        self.clock = clock

    def today(self) -> date:
        return self.clock()

    def resolve(
        self,
        selection: str,
        custom_from: Any = None,
        custom_to: Any = None,
        applications: Iterable[Application] = (),
    ) -> DateRange:
        today = self.today()

        if selection in _DAYS_BACK:
            return DateRange(today - timedelta(days=_DAYS_BACK[selection]), today)
        if selection in _MONTHS_BACK:
            return DateRange(months_back(today, _MONTHS_BACK[selection]), today)
        if selection == "all":
            earliest = min((a.date_applied for a in applications), default=today)
            return DateRange(min(earliest, today), today)
        if selection == "custom":
            return self._custom(custom_from, custom_to, today)

        raise InvalidRange(f"Unknown date range selection: {selection!r}")

    def _custom(self, custom_from: Any, custom_to: Any, today: date) -> DateRange:
        if custom_from is None or custom_to is None:
            raise InvalidRange("Custom range needs both a start and an end date")
        start = parse_day(custom_from, today)
        end = parse_day(custom_to, today)
        if start is None or end is None:
            raise InvalidRange(f"Could not parse custom range {custom_from!r} .. {custom_to!r}")
        if start > end:
            raise InvalidRange(f"Range start {start} is after end {end}")
        logger.debug(f"Resolved custom range {start} .. {end}")
        return DateRange(start, end)
