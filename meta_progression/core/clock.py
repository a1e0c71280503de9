"""
Injected wall clock and calendar-day arithmetic.

Daily challenges roll over at midnight in the clock's timezone. With no
timezone configured the device's local time is used, which is ambiguous when
the device changes timezone or crosses a DST transition; that limitation is
kept as-is rather than normalised to UTC.
"""
from datetime import datetime, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from meta_progression.core.config import ConfigurationError, Settings

DAY_MS = 24 * 60 * 60 * 1000


class Clock:
    """Wall clock bound to the timezone that defines calendar days"""

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz

    def now(self) -> datetime:
        """Current time as an aware datetime"""
        return self.localize(datetime.now().astimezone())

    def localize(self, moment: datetime) -> datetime:
        """Express an aware datetime in the clock's timezone"""
        if moment.tzinfo is None:
            moment = moment.astimezone()
        return moment.astimezone(self.tz) if self.tz else moment.astimezone()

    def day_start(self, moment: Optional[datetime] = None) -> datetime:
        """Midnight that opens the calendar day containing ``moment``"""
        local = self.localize(moment or self.now())
        return local.replace(hour=0, minute=0, second=0, microsecond=0)

    def day_start_ms(self, moment: Optional[datetime] = None) -> int:
        return to_millis(self.day_start(moment))

    def from_millis(self, millis: int) -> datetime:
        return self.localize(datetime.fromtimestamp(millis / 1000).astimezone())

    def calendar_days_between(self, earlier_ms: int, later: datetime) -> int:
        """Whole calendar days from the day of ``earlier_ms`` to the day of ``later``"""
        earlier_day = self.from_millis(earlier_ms).date()
        later_day = self.localize(later).date()
        return (later_day - earlier_day).days

    def next_day_start(self, moment: Optional[datetime] = None) -> datetime:
        start = self.day_start(moment)
        return self.day_start(start + timedelta(hours=36))


def to_millis(moment: datetime) -> int:
    """Epoch milliseconds for an aware datetime"""
    return int(moment.timestamp() * 1000)


def build_clock(config: Settings) -> Clock:
    """Create the clock described by settings"""
    if not config.CHALLENGE_TIMEZONE:
        return Clock()
    try:
        return Clock(ZoneInfo(config.CHALLENGE_TIMEZONE))
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone {config.CHALLENGE_TIMEZONE!r}") from e
