"""
Business hours for sales handoffs.

A handoff requested outside business hours still reaches Slack and the CRM,
but nobody is expected to pick it up live, so the prospect is told to
expect a follow-up instead.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

WEEKDAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def parse_time(value: str) -> time:
    """Parse a 24h ``HH:MM`` string."""
    hours, _, minutes = value.strip().partition(":")
    return time(int(hours), int(minutes or 0))


@dataclass
class DayHours:
    start: time
    end: time

    def contains(self, moment: time) -> bool:
        return self.start <= moment <= self.end


class BusinessHours:
    """
    Weekly opening hours in a fixed UTC offset.

    Args:
        days: Opening hours per weekday (``mon`` .. ``sun``); missing days are closed
        utc_offset_minutes: Offset of the sales team's clock from UTC
        clock: Callable returning the current aware datetime
    """

    def __init__(
        self,
        days: Dict[str, DayHours],
        utc_offset_minutes: int = 0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        unknown = set(days) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekdays: {sorted(unknown)}")
        self.days = dict(days)
        self.tz = timezone(timedelta(minutes=utc_offset_minutes))
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def weekly(
        cls,
        start: str = "09:00",
        end: str = "17:00",
        weekdays: Iterable[str] = ("mon", "tue", "wed", "thu", "fri"),
        utc_offset_minutes: int = 0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "BusinessHours":
        """Same hours on every listed weekday."""
        hours = DayHours(parse_time(start), parse_time(end))
        return cls(
            {day.strip().lower()[:3]: hours for day in weekdays if day.strip()},
            utc_offset_minutes=utc_offset_minutes,
            clock=clock,
        )

    def is_open(self, at: Optional[datetime] = None) -> bool:
        local = (at or self._clock()).astimezone(self.tz)
        hours = self.days.get(WEEKDAYS[local.weekday()])
        if hours is None:
            return False
        return hours.contains(local.time().replace(second=0, microsecond=0))
