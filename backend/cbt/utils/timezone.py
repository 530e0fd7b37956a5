"""
Time helpers. Everything is stored and compared as naive UTC;
only rendering for people converts to the display timezone.
"""
from dataclasses import dataclass
from datetime import datetime
import pytz

from ..core.config import settings


def get_utc_now() -> datetime:
    """Current UTC time without tzinfo, the form every model column uses."""
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.UTC).replace(tzinfo=None)


def format_exam_time(dt: datetime, tz_name: str = None, format_str: str = None) -> str:
    tz = pytz.timezone(tz_name or settings.display_timezone)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(tz).strftime(format_str or settings.display_time_format)


@dataclass
class TimeRemaining:
    expired: bool
    total_seconds: int
    minutes: int
    seconds: int
    end_time: datetime

    def to_dict(self) -> dict:
        return {
            "expired": self.expired,
            "total_seconds": self.total_seconds,
            "minutes": self.minutes,
            "seconds": self.seconds,
            "end_time": self.end_time.isoformat(),
        }


def time_remaining(end_time: datetime, now: datetime) -> TimeRemaining:
    diff = int((to_naive_utc(end_time) - to_naive_utc(now)).total_seconds())
    if diff <= 0:
        return TimeRemaining(expired=True, total_seconds=0, minutes=0, seconds=0, end_time=end_time)
    return TimeRemaining(
        expired=False,
        total_seconds=diff,
        minutes=diff // 60,
        seconds=diff % 60,
        end_time=end_time,
    )


def seconds_between(start: datetime, end: datetime) -> int:
    return max(int((to_naive_utc(end) - to_naive_utc(start)).total_seconds()), 0)
