"""
days.py — Calendar-day helpers.
All habit days are calendar-local: an aware timestamp is converted to the
local zone before taking its date, a naive one is taken as local already.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta


def local_day(ts: datetime) -> date:
    if ts.tzinfo is not None:
        ts = ts.astimezone()
    return ts.date()


def start_of_day(d: date) -> datetime:
    """Local midnight, as an aware datetime."""
    return datetime.combine(d, time.min).astimezone()


def today() -> date:
    return datetime.now().date()


def day_key(d: date) -> str:
    return d.isoformat()


@dataclass(frozen=True)
class DayWindow:
    """Inclusive range of calendar days."""

    start: date
    end: date

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Window end {self.end} is before start {self.start}")

    @classmethod
    def single(cls, d: date) -> "DayWindow":
        return cls(d, d)

    @classmethod
    def ending(cls, end: date, day_count: int) -> "DayWindow":
        """The day_count days ending on (and including) end."""
        return cls(end - timedelta(days=max(day_count, 1) - 1), end)

    def __len__(self) -> int:
        return (self.end - self.start).days + 1

    def __contains__(self, d: date) -> bool:
        return self.start <= d <= self.end

    def days(self):
        """Oldest to newest."""
        d = self.start
        while d <= self.end:
            yield d
            d += timedelta(days=1)

    @property
    def start_at(self) -> datetime:
        return start_of_day(self.start)

    @property
    def end_at(self) -> datetime:
        """Exclusive upper bound: midnight after the last day."""
        return start_of_day(self.end + timedelta(days=1))
