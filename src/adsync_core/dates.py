"""Calendar date ranges and the injectable clock."""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Iterator
from zoneinfo import ZoneInfo


logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_timezone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except Exception:
        logger.warning("Invalid timezone '%s', using UTC", tz_name)
        return ZoneInfo("UTC")


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar dates with start <= end."""

    start: date
    end: date

    @classmethod
    def normalized(cls, start: date | datetime, end: date | datetime) -> "DateRange":
        """Build a range from caller-supplied endpoints.

        Time components are dropped and reversed endpoints are swapped, so a
        reversed range never fails the caller.
        """
        if isinstance(start, datetime):
            start = start.date()
        if isinstance(end, datetime):
            end = end.date()
        if end < start:
            logger.debug("Swapping reversed date range %s..%s", start, end)
            start, end = end, start
        return cls(start=start, end=end)

    @classmethod
    def single(cls, day: date) -> "DateRange":
        return cls(start=day, end=day)

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def dates(self) -> Iterator[date]:
        for offset in range(self.days):
            yield self.start + timedelta(days=offset)

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day <= self.end

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


def default_date_range(clock: Clock, tz: tzinfo, days: int = 7) -> DateRange:
    """Range of `days` calendar days ending yesterday in tz."""
    if days < 1:
        raise ValueError("days must be positive")
    today = clock().astimezone(tz).date()
    end = today - timedelta(days=1)
    return DateRange(start=end - timedelta(days=days - 1), end=end)
