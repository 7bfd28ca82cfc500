"""Fixtures for the Solis agility tests."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest
import pytz

from src.interfaces.date_utility import DateUtility
from src.interfaces.hierarchical_store import MemoryStore
from src.interfaces.results import ActionResult
from src.interfaces.solis_cloud import SolisCloudSettings

LONDON = pytz.timezone("Europe/London")


def local_ms(year, month, day, hour=0, minute=0, second=0):
    """Epoch milliseconds of a Europe/London wall-clock time."""
    dt = LONDON.localize(datetime(year, month, day, hour, minute, second))
    return int(dt.timestamp() * 1000)


class FixedClock:
    """Settable clock returning epoch milliseconds."""

    def __init__(self, now_ms):
        self.now_ms = now_ms

    def __call__(self):
        return self.now_ms


@pytest.fixture(name="local_ms")
def local_ms_fixture():
    """Helper converting a London wall-clock time to epoch milliseconds."""
    return local_ms


@pytest.fixture
def clock():
    """A clock fixed at 15 January 2024 12:10 London time (GMT)."""
    return FixedClock(local_ms(2024, 1, 15, 12, 10))


@pytest.fixture
def date_utility(clock):
    """DateUtility for Europe/London driven by the fixed clock."""
    return DateUtility("Europe/London", clock=clock)


@pytest.fixture
def memory_store():
    """Empty in-memory hierarchical store."""
    return MemoryStore()


@pytest.fixture
def solis_settings():
    """Complete SolisCloud settings."""
    return SolisCloudSettings(
        inverter_sn="SN123",
        key="1300386381676",
        secret="6680182547",
        endpoint="https://www.soliscloud.com:13333",
    )


@pytest.fixture
def mock_client(solis_settings):
    """SolisCloudClient double whose calls succeed unless told otherwise."""
    client = MagicMock()
    client.settings = solis_settings
    client.control.return_value = ActionResult.success("ok", data={"data": True})
    client.at_read.return_value = ActionResult.success(
        "ok",
        data={
            "data": {
                "msg": "50,50,00:00-00:00,00:00-00:00,00:00-00:00,00:00-00:00,"
                "00:00-00:00,00:00-00:00,00:00-00:00,00:00-00:00,00:00-00:00",
                "yuanzhi": "ok",
            }
        },
    )
    return client
