'''
Time and calendar helpers shared by slot validation, availability matching
and session materialization.

Day of week convention: 0 = Sunday ... 6 = Saturday.
Weeks start on Monday 00:00.
'''
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..common.config import settings
from ..common.logger import log

HHMM_PATTERN = re.compile(r'^([0-1][0-9]|2[0-3]):[0-5][0-9]$')

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def is_valid_hhmm(value: str) -> bool:
    return bool(HHMM_PATTERN.match(value or ''))


def parse_hhmm(value: str) -> time:
    """Parses a strict 'HH:MM' string. Raises ValueError on anything else."""
    if not is_valid_hhmm(value):
        raise ValueError(f"Invalid time format '{value}'. Use HH:MM format (e.g., 14:00)")
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


def format_hhmm(value: time) -> str:
    return value.strftime('%H:%M')


def get_day_name(day_of_week: int) -> str:
    if 0 <= day_of_week <= 6:
        return DAY_NAMES[day_of_week]
    return "Unknown"


def day_of_week_of(moment: datetime | date) -> int:
    """Sunday-based day index (0-6) of a date, from Python's Monday-based weekday()."""
    return (moment.weekday() + 1) % 7


def get_week_start(moment: datetime | date) -> date:
    """Monday of the ISO week containing `moment`."""
    day = moment.date() if isinstance(moment, datetime) else moment
    return day - timedelta(days=day.weekday())


def get_date_for_day_of_week(week_start: date, day_of_week: int) -> date:
    """
    Date of `day_of_week` inside the week starting on `week_start` (a Monday).
    Sunday is the last day of the week, six days after Monday.
    """
    days_to_add = 6 if day_of_week == 0 else day_of_week - 1
    return week_start + timedelta(days=days_to_add)


def week_bounds(week_start: date) -> tuple[datetime, datetime]:
    """[Monday 00:00, next Monday 00:00) of the given week."""
    start = datetime.combine(week_start, time.min)
    return start, start + timedelta(days=7)


def schedule_now() -> datetime:
    """
    Current wall-clock time in the schedule timezone, as a naive datetime
    comparable with stored session times.
    """
    try:
        tz = ZoneInfo(settings.SCHEDULE_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning(f"Invalid timezone '{settings.SCHEDULE_TIMEZONE}', defaulting to UTC.")
        tz = ZoneInfo("UTC")
    return datetime.now(tz).replace(tzinfo=None)


@dataclass(frozen=True, order=True)
class TimeInterval:
    """
    A half-open [start, end) window inside a single day.
    Adjacent intervals (one ends when the other starts) do not overlap.
    """
    start: time
    end: time

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError("Start time must be before end time")

    @classmethod
    def from_hhmm(cls, start: str, end: str) -> 'TimeInterval':
        return cls(parse_hhmm(start), parse_hhmm(end))

    @property
    def duration(self) -> timedelta:
        today = date.today()
        return datetime.combine(today, self.end) - datetime.combine(today, self.start)

    def overlaps(self, other: 'TimeInterval') -> bool:
        return self.start < other.end and self.end > other.start

    def contains(self, other: 'TimeInterval') -> bool:
        return self.start <= other.start and other.end <= self.end

    def on(self, day: date) -> tuple[datetime, datetime]:
        """Concrete start/end datetimes of this interval on a given date."""
        return datetime.combine(day, self.start), datetime.combine(day, self.end)

    def __str__(self) -> str:
        return f"{format_hhmm(self.start)}-{format_hhmm(self.end)}"


@dataclass(frozen=True)
class WeeklyInterval:
    """A TimeInterval recurring on one day of the week."""
    day_of_week: int
    interval: TimeInterval

    def overlaps(self, other: 'WeeklyInterval') -> bool:
        return self.day_of_week == other.day_of_week and self.interval.overlaps(other.interval)

    def contains(self, other: 'WeeklyInterval') -> bool:
        return self.day_of_week == other.day_of_week and self.interval.contains(other.interval)

    def __str__(self) -> str:
        return f"{get_day_name(self.day_of_week)} {self.interval}"
