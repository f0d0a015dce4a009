"""Business-shift time arithmetic.

A shift date D is the operating period that opens at D 18:00 local time and
closes at D+1 03:00 local time, at a fixed UTC+7 offset. Windows are
half-open ``[start_utc, end_utc)`` and always nine hours long; the 15 hour
gap between two consecutive shifts belongs to no window.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterable, Optional, TypeVar

from shiftledger.errors import AmbiguousShiftMatch, InvalidDateFormat

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_shift_date(value) -> date:
    if isinstance(value, datetime):
        raise InvalidDateFormat(value)
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value.strip()):
        raise InvalidDateFormat(value)
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise InvalidDateFormat(value) from None


def as_utc(instant: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


@dataclass(frozen=True)
class ShiftWindow:
    shift_date: date
    start_utc: datetime
    end_utc: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start_utc <= as_utc(instant) < self.end_utc

    @property
    def duration(self) -> timedelta:
        return self.end_utc - self.start_utc


@dataclass(frozen=True)
class ShiftCalendar:
    utc_offset_hours: int = 7
    start_hour: int = 18
    end_hour: int = 3

    def __post_init__(self):
        if not 0 <= self.end_hour < self.start_hour <= 23:
            raise ValueError("shift must open in the evening and close after local midnight")

    @property
    def tz(self) -> timezone:
        return timezone(timedelta(hours=self.utc_offset_hours))

    def resolve(self, shift_date) -> ShiftWindow:
        d = parse_shift_date(shift_date)
        start = datetime.combine(d, time(self.start_hour), tzinfo=self.tz)
        end = datetime.combine(d + timedelta(days=1), time(self.end_hour), tzinfo=self.tz)
        return ShiftWindow(d, start.astimezone(timezone.utc), end.astimezone(timezone.utc))

    def shift_date_containing(self, instant: datetime) -> date:
        literal = as_utc(instant).astimezone(self.tz).date()
        for candidate in (literal, literal - timedelta(days=1), literal + timedelta(days=1)):
            if self.resolve(candidate).contains(instant):
                return candidate
        # between close and open: attribute to the shift about to open
        reason = f"{as_utc(instant).isoformat()} is outside every shift window"
        logger.warning("AmbiguousShiftMatch: %s", AmbiguousShiftMatch(literal, reason))
        return literal

    def select_candidate(
        self,
        candidates: Iterable[T],
        shift_date,
        key: Callable[[T], date],
        stamp: Callable[[T], datetime],
    ) -> Optional[T]:
        """Pick the stored row that represents shift ``shift_date``.

        ``candidates`` are rows filed under D-1, D or D+1; ``key`` returns the
        date a row was filed under and ``stamp`` its creation instant. The
        newest row created inside the window wins whatever date it was filed
        under; with none inside, the newest row overall is taken.
        """
        d = parse_shift_date(shift_date)
        window = self.resolve(d)
        filed = (d - timedelta(days=1), d, d + timedelta(days=1))
        newest_first = sorted((c for c in candidates if key(c) in filed),
                              key=lambda c: as_utc(stamp(c)), reverse=True)
        if not newest_first:
            return None

        chosen = next((c for c in newest_first if window.contains(stamp(c))), None)
        if chosen is None:
            chosen = newest_first[0]
            reason = f"no row created inside window, took newest (filed under {key(chosen)})"
            logger.warning("AmbiguousShiftMatch: %s", AmbiguousShiftMatch(d, reason))
        elif key(chosen) != d:
            reason = f"took row filed under {key(chosen)} created inside window"
            logger.warning("AmbiguousShiftMatch: %s", AmbiguousShiftMatch(d, reason))
        return chosen


DEFAULT_CALENDAR = ShiftCalendar()


def resolve(shift_date) -> ShiftWindow:
    return DEFAULT_CALENDAR.resolve(shift_date)


def shift_date_containing(instant: datetime) -> date:
    return DEFAULT_CALENDAR.shift_date_containing(instant)


def iter_dates(start: date, end: date):
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)
