"""
This module provides the `DateUtility` class which converts between absolute time
indices (epoch milliseconds) and local wall-clock information for the configured
time zone.

Every conversion returns a `DateInfo` which carries the calendar texts used for
display and for the SolisCloud API, the local midnight (`date_index`) of the day and
the boundaries of the half hour slot the time falls into.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import time
import pytz

from .constants import SLOT_MS

logger = logging.getLogger("__main__")
logger.info("[DATE] loading module ")


@dataclass(frozen=True)
class DateInfo:
    """Local calendar view of one absolute time index."""

    time_index: int
    date_index: int
    time_text: str
    full_time_text: str
    slot_time_text: str
    day_text: str
    month_text: str
    year: int
    daylight_saving: bool
    minute: int
    slot_time_index: int
    slot_end_time_index: int
    previous_slot_time_index: int

    @property
    def date_text(self):
        """Date as DD/MM/YYYY."""
        return f"{self.day_text}/{self.month_text}/{self.year}"

    @property
    def iso_date_text(self):
        """Date as YYYY-MM-DD, the format used by the SolisCloud day API."""
        return f"{self.year}-{self.month_text}-{self.day_text}"


def _to_index(dt):
    return int(round(dt.timestamp() * 1000))


class DateUtility:
    """
    Time zone aware date helper.

    Args:
        tz_name (str): Olson time zone name, e.g. "Europe/London".
        clock (callable): returns the current time as epoch milliseconds.
            Defaults to the system clock; tests pass a fixed clock.
    """

    def __init__(self, tz_name="Europe/London", clock=None):
        try:
            self.time_zone = pytz.timezone(tz_name)
        except pytz.UnknownTimeZoneError:
            logger.warning("[DATE] Unknown time zone '%s', using UTC", tz_name)
            self.time_zone = pytz.utc
        self.clock = clock or (lambda: int(time.time() * 1000))

    def _localize(self, naive):
        return self.time_zone.normalize(self.time_zone.localize(naive, is_dst=False))

    def _midnight_index(self, local_dt):
        midnight = self._localize(
            datetime(local_dt.year, local_dt.month, local_dt.day)
        )
        return _to_index(midnight)

    def now(self):
        """DateInfo for the current time."""
        return self.at(self.clock())

    def at(self, time_index):
        """DateInfo for an absolute time index."""
        time_index = int(time_index)
        local_dt = datetime.fromtimestamp(time_index / 1000, self.time_zone)
        date_index = self._midnight_index(local_dt)
        slot_time_index = time_index - ((time_index - date_index) % SLOT_MS)
        slot_dt = datetime.fromtimestamp(slot_time_index / 1000, self.time_zone)
        return DateInfo(
            time_index=time_index,
            date_index=date_index,
            time_text=local_dt.strftime("%H:%M"),
            full_time_text=local_dt.strftime("%H:%M:%S"),
            slot_time_text=slot_dt.strftime("%H:%M"),
            day_text=local_dt.strftime("%d"),
            month_text=local_dt.strftime("%m"),
            year=local_dt.year,
            daylight_saving=bool(local_dt.dst()),
            minute=local_dt.minute,
            slot_time_index=slot_time_index,
            slot_end_time_index=slot_time_index + SLOT_MS,
            previous_slot_time_index=slot_time_index - SLOT_MS,
        )

    def at_midnight(self, day_offset=0):
        """DateInfo for local midnight `day_offset` days from today (negative = past)."""
        today = datetime.fromtimestamp(self.clock() / 1000, self.time_zone).date()
        day = today + timedelta(days=day_offset)
        return self.at(_to_index(self._localize(datetime(day.year, day.month, day.day))))

    def at_time(self, time_text, date_index):
        """DateInfo for wall-clock `HH:MM` on the day starting at `date_index`."""
        hours, minutes = (int(part) for part in time_text.split(":")[:2])
        day = datetime.fromtimestamp(int(date_index) / 1000, self.time_zone).date()
        local_dt = self._localize(
            datetime(day.year, day.month, day.day, hours, minutes)
        )
        return self.at(_to_index(local_dt))
