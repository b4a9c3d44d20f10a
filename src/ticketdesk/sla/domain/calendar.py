"""
Working Calendar
================

Answers "how much working time elapses between A and B" and its inverse
"when has D of working time elapsed after A".

A calendar without a weekly schedule is calendar-naive: time is continuous,
so the working duration between two instants is simply their difference.
This is the default for departments that do not configure working hours.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, FrozenSet, Iterator, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ticketdesk.core import ConfigurationException


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Upper bound on the day walk in add_working_time; a schedule with one
# working hour a week still places a ten-year budget well inside this.
MAX_DAYS_SCANNED = 366 * 20

ZERO = timedelta(0)


@dataclass(frozen=True)
class DaySchedule:
    """Working window for one weekday. ``end`` may not precede ``start``."""
    start: time
    end: time

    def __post_init__(self):
        if self.end <= self.start:
            raise ConfigurationException(
                f"Working window end {self.end} must be after start {self.start}"
            )


@dataclass(frozen=True)
class WorkingCalendar:
    """
    Weekly working hours plus holiday dates, evaluated in ``timezone``.

    ``schedule`` maps weekday index (0 = Monday) to a DaySchedule; weekdays
    missing from the map are non-working. An empty schedule means
    calendar-naive mode.
    """

    schedule: Dict[int, DaySchedule] = field(default_factory=dict)
    holidays: FrozenSet[date] = frozenset()
    timezone: str = "UTC"

    def __post_init__(self):
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationException(f"Unknown calendar timezone '{self.timezone}'") from e
        for weekday in self.schedule:
            if weekday not in range(7):
                raise ConfigurationException(f"Invalid weekday index {weekday}")

    @classmethod
    def naive(cls) -> "WorkingCalendar":
        return cls()

    @property
    def is_naive(self) -> bool:
        return not self.schedule

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def working_duration_between(self, start: datetime, end: datetime) -> timedelta:
        """
        Working time between two instants.

        Never negative: returns zero when ``start`` is after ``end``.
        """
        if start >= end:
            return ZERO
        if self.is_naive:
            return end - start

        total = ZERO
        for window_start, window_end in self._windows(start, end.astimezone(self.tz).date()):
            overlap_start = max(start, window_start)
            overlap_end = min(end, window_end)
            if overlap_end > overlap_start:
                total += overlap_end - overlap_start
        return total

    def add_working_time(self, start: datetime, duration: timedelta) -> datetime:
        """
        The instant at which ``duration`` of working time has elapsed after ``start``.

        A start outside working hours rolls forward to the next window.
        """
        if duration <= ZERO:
            return start
        if self.is_naive:
            return start + duration

        start = start.astimezone(timezone.utc)
        remaining = duration
        last_day = start.astimezone(self.tz).date() + timedelta(days=MAX_DAYS_SCANNED)
        for window_start, window_end in self._windows(start, last_day):
            begin = max(start, window_start)
            if begin >= window_end:
                continue
            available = window_end - begin
            if remaining <= available:
                return begin + remaining
            remaining -= available

        raise ConfigurationException(
            "Working calendar has no working time left within the scan horizon",
            {"timezone": self.timezone, "days_scanned": MAX_DAYS_SCANNED}
        )

    def is_working_day(self, day: date) -> bool:
        return day not in self.holidays and day.weekday() in self.schedule

    def _windows(self, start: datetime, last_day: date) -> Iterator[Tuple[datetime, datetime]]:
        """
        Yield (start, end) of each working window from start's local day to last_day.

        Bounds are built on the local wall clock and returned in UTC, so a
        window spanning a DST change has its real length.
        """
        tz = self.tz
        day = start.astimezone(tz).date()
        while day <= last_day:
            if self.is_working_day(day):
                hours = self.schedule[day.weekday()]
                yield (
                    datetime.combine(day, hours.start, tzinfo=tz).astimezone(timezone.utc),
                    datetime.combine(day, hours.end, tzinfo=tz).astimezone(timezone.utc),
                )
            day += timedelta(days=1)


def parse_clock_time(value: str) -> time:
    """Parse an ``HH:MM`` string."""
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except ValueError as e:
        raise ConfigurationException(f"Invalid time of day '{value}', expected HH:MM") from e


def build_calendar(
    working_hours: Optional[Dict[str, Optional[Tuple[str, str]]]],
    holidays: Optional[list] = None,
    tz_name: str = "UTC",
) -> WorkingCalendar:
    """
    Build a calendar from weekday names to ``(start, end)`` HH:MM pairs.

    ``None`` or an empty mapping yields a calendar-naive instance.
    """
    if not working_hours:
        return WorkingCalendar(holidays=frozenset(holidays or ()), timezone=tz_name)

    schedule = {}
    for name, window in working_hours.items():
        key = name.lower()
        if key not in WEEKDAYS:
            raise ConfigurationException(f"Unknown weekday '{name}'")
        if window is None:
            continue
        start, end = window
        schedule[WEEKDAYS.index(key)] = DaySchedule(parse_clock_time(start), parse_clock_time(end))

    if not schedule:
        raise ConfigurationException("Working hours configured without any working day")

    return WorkingCalendar(
        schedule=schedule,
        holidays=frozenset(holidays or ()),
        timezone=tz_name,
    )
