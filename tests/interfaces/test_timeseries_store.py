"""
Unit tests for the TimeSeriesStore and Snapshot classes in
src.interfaces.timeseries_store.
"""

import pytest

from src.interfaces.constants import DAY_MS
from src.interfaces.timeseries_store import Snapshot, TimeSeriesStore

DAY = 1705276800000  # 15/01/2024 00:00 GMT


@pytest.fixture
def timeseries(memory_store):
    """TimeSeriesStore on an empty memory store."""
    return TimeSeriesStore(memory_store)


def snapshot(load=1.0, **values):
    """Snapshot with a non-zero house load total."""
    return Snapshot(house_load_total=load, **values)


class TestSnapshot:
    """Tests for the vendor record mapping."""

    def test_from_vendor_record_maps_units(self, date_utility):
        """Instantaneous powers are converted from W to kW; totals are kept."""
        record = {
            "pac": 500,
            "eToday": "2.0",
            "familyLoadPower": 300,
            "homeLoadTodayEnergy": 1.5,
            "pSum": -1200,
            "gridPurchasedTodayEnergy": 0.8,
            "gridSellTodayEnergy": 0.1,
            "batteryCapacitySoc": 64,
            "batteryPower": -0.4,
        }
        snap = Snapshot.from_vendor_record(record, date_utility.at(DAY + 3600000))
        assert snap.pv_output_now == 0.5
        assert snap.pv_output_total == 2.0
        assert snap.house_load_now == 0.3
        assert snap.house_load_total == 1.5
        assert snap.grid_import_now == 1.2
        assert snap.grid_import_total == 0.8
        assert snap.grid_export_total == 0.1
        assert snap.battery_level == 64
        assert snap.battery_charge_power == -0.4
        assert snap.time == "01:00"
        assert snap.at == "15/01/2024: 01:00"

    def test_from_vendor_record_missing_values_are_zero(self):
        """Missing or empty vendor values map to zero."""
        snap = Snapshot.from_vendor_record({"pac": "", "eToday": None})
        assert snap.pv_output_now == 0
        assert snap.pv_output_total == 0
        assert snap.at == ""

    def test_dict_round_trip_ignores_unknown_keys(self):
        """from_dict tolerates extra stored keys."""
        data = snapshot(load=2.5, battery_level=40).to_dict()
        data["legacy"] = "ignored"
        assert Snapshot.from_dict(data) == snapshot(load=2.5, battery_level=40)


class TestTimeSeriesStore:
    """Tests for the append-only snapshot store."""

    def test_append_is_idempotent(self, timeseries):
        """A second append for the same key leaves the first snapshot in place."""
        assert timeseries.append(DAY, DAY + 300000, snapshot(load=1.0))
        assert not timeseries.append(DAY, DAY + 300000, snapshot(load=9.0))
        assert timeseries.snapshot_at(DAY, DAY + 300000).house_load_total == 1.0

    def test_append_skips_zero_house_load(self, timeseries):
        """Samples whose house load total is still zero are not stored."""
        assert not timeseries.append(DAY, DAY + 300000, snapshot(load=0))
        assert not timeseries.has_day(DAY)

    def test_nearest_before_and_after(self, timeseries):
        """Neighbour lookups stay inside the day and are strict."""
        for minutes in (10, 20, 30):
            timeseries.append(DAY, DAY + minutes * 60000, snapshot())
        assert timeseries.nearest_before(DAY, DAY + 20 * 60000) == DAY + 10 * 60000
        assert timeseries.nearest_after(DAY, DAY + 20 * 60000) == DAY + 30 * 60000
        assert timeseries.nearest_before(DAY, DAY + 10 * 60000) is None
        assert timeseries.nearest_after(DAY, DAY + 30 * 60000) is None
        assert timeseries.latest_snapshot(DAY) == snapshot()

    def test_days_and_previous_to_last(self, timeseries):
        """Days are most recent first; previous_to_last is the second one."""
        assert timeseries.last_day() is None
        assert timeseries.previous_to_last() is None
        for offset in range(3):
            day = DAY - offset * DAY_MS
            timeseries.append(day, day + 300000, snapshot())
        assert timeseries.days() == [DAY, DAY - DAY_MS, DAY - 2 * DAY_MS]
        assert timeseries.last_day() == DAY
        assert timeseries.previous_to_last() == DAY - DAY_MS

    def test_prune_keeps_most_recent_days(self, timeseries):
        """Pruning ten days down to seven removes the three oldest."""
        for offset in range(10):
            day = DAY - offset * DAY_MS
            timeseries.append(day, day + 300000, snapshot())
        assert timeseries.prune_older_than(7) == 3
        days = timeseries.days()
        assert len(days) == 7
        assert days[0] == DAY
        assert days[-1] == DAY - 6 * DAY_MS

    def test_clear(self, timeseries):
        """clear removes every day."""
        timeseries.append(DAY, DAY + 300000, snapshot())
        timeseries.clear()
        assert timeseries.days() == []
