"""
Unit tests for the DateUtility class in src.interfaces.date_utility.
"""

from src.interfaces.constants import SLOT_MS
from src.interfaces.date_utility import DateUtility


def test_now_in_winter(date_utility, local_ms):
    """12:10 GMT falls into the 12:00 slot of 15/01/2024."""
    now = date_utility.now()
    assert now.time_text == "12:10"
    assert now.full_time_text == "12:10:00"
    assert now.slot_time_text == "12:00"
    assert now.date_text == "15/01/2024"
    assert now.iso_date_text == "2024-01-15"
    assert now.daylight_saving is False
    assert now.minute == 10
    assert now.date_index == local_ms(2024, 1, 15)
    assert now.slot_time_index == local_ms(2024, 1, 15, 12, 0)
    assert now.slot_end_time_index == now.slot_time_index + SLOT_MS
    assert now.previous_slot_time_index == local_ms(2024, 1, 15, 11, 30)


def test_summer_time(clock, local_ms):
    """In July local midnight is 23:00 UTC the day before and DST is flagged."""
    clock.now_ms = local_ms(2024, 7, 1, 9, 45)
    utility = DateUtility("Europe/London", clock=clock)
    now = utility.now()
    assert now.time_text == "09:45"
    assert now.slot_time_text == "09:30"
    assert now.daylight_saving is True
    assert now.date_index == 1719788400000


def test_at_midnight_offsets(date_utility, local_ms):
    """Negative offsets go back whole calendar days."""
    assert date_utility.at_midnight(0).date_index == local_ms(2024, 1, 15)
    assert date_utility.at_midnight(-1).iso_date_text == "2024-01-14"
    assert date_utility.at_midnight(-7).time_index == local_ms(2024, 1, 8)


def test_at_time(date_utility, local_ms):
    """at_time places a wall-clock time on a given day."""
    day = local_ms(2024, 1, 10)
    assert date_utility.at_time("22:30", day).time_index == local_ms(2024, 1, 10, 22, 30)


def test_unknown_time_zone_falls_back_to_utc(clock):
    """An unknown zone name is logged and UTC is used."""
    utility = DateUtility("Mars/Olympus", clock=clock)
    assert utility.time_zone.zone == "UTC"
