"""
Unit tests for the SchedulingOperations class in src.interfaces.scheduling.

The inverter adapter and the SolisCloud client are mocks; stores, statistics, charge
history and control state are the real classes on a memory store. The clock sits at
15/01/2024 12:10 GMT, so the current slot is 12:00 - 12:30.
"""

from unittest.mock import MagicMock, patch

import pytest

from src.interfaces.charge_history import ChargeHistory
from src.interfaces.constants import DAY_MS, SLOT_MS
from src.interfaces.control_state import AgilityState
from src.interfaces.price_lookup import PriceLookup
from src.interfaces.results import ActionResult
from src.interfaces.scheduling import SchedulingOperations
from src.interfaces.statistics import StatisticsEngine
from src.interfaces.timeseries_store import Snapshot, TimeSeriesStore

TODAY = 1705276800000  # 15/01/2024 00:00 GMT
SLOT_12_00 = TODAY + 24 * SLOT_MS
SLOT_11_30 = TODAY + 23 * SLOT_MS


@pytest.fixture
def inverter():
    """Inverter adapter double whose commands succeed."""
    mock_inverter = MagicMock()
    for name in (
        "charge_between",
        "discharge_between",
        "grid_only_between",
        "reset_now",
        "reset_scheduled",
        "sync_clock",
    ):
        getattr(mock_inverter, name).return_value = ActionResult.success(name)
    return mock_inverter


@pytest.fixture
def client():
    """SolisCloud client double."""
    return MagicMock()


@pytest.fixture
def state():
    """Default agility state (both logics enabled, 7 day average)."""
    return AgilityState()


@pytest.fixture
def timeseries(memory_store):
    """TimeSeriesStore on the memory store."""
    return TimeSeriesStore(memory_store)


@pytest.fixture
def charge_history(memory_store):
    """ChargeHistory on the memory store."""
    return ChargeHistory(memory_store)


@pytest.fixture
def operations(
    inverter, client, timeseries, charge_history, state, memory_store, date_utility
):
    """SchedulingOperations wired to the doubles."""
    statistics = StatisticsEngine(timeseries, PriceLookup(memory_store), date_utility)
    return SchedulingOperations(
        inverter, client, timeseries, statistics, charge_history, state, date_utility
    )


def store_current_level(timeseries, level=55):
    """A sample at 12:05 so the current battery level is known."""
    timeseries.append(
        TODAY,
        SLOT_12_00 + 300000,
        Snapshot(house_load_total=5.0, battery_level=level),
    )


class TestSlotActions:
    """Tests for the gated slot actions."""

    def test_charge_slot_commands_until_slot_end(self, operations, inverter):
        """The charge runs from now to the end of the slot."""
        resp = operations.charge_slot()
        assert resp.status == "charge_between"
        inverter.charge_between.assert_called_once_with("12:10", "12:30")

    def test_charge_slot_disabled(self, operations, inverter, state):
        """With charging disabled the task is ignored without inverter traffic."""
        state.set_charging_enabled(False)
        resp = operations.charge_slot()
        assert resp.status == "Inverter Charge task ignored"
        inverter.charge_between.assert_not_called()

    def test_charge_slot_override(self, operations, inverter, state):
        """override runs the charge even when disabled."""
        state.set_charging_enabled(False)
        operations.charge_slot(override=True)
        inverter.charge_between.assert_called_once()

    def test_charge_slot_records_history(self, operations, timeseries, charge_history):
        """The previous record is closed and a new one opened."""
        store_current_level(timeseries, level=55)
        charge_history.start_record(SLOT_11_30, 40, 30)
        operations.charge_slot()
        assert charge_history.record(SLOT_11_30) == {
            "start": 40,
            "startMinute": 30,
            "end": 55,
        }
        assert charge_history.record(SLOT_12_00) == {"start": 55, "startMinute": 10}

    def test_charge_slot_unknown_level(self, operations, charge_history):
        """Without telemetry no history record is written."""
        operations.charge_slot()
        assert charge_history.records() == {}

    def test_discharge_slot_clears_request_flag(self, operations, inverter, state):
        """A successful discharge clears the battery's discharge request."""
        state.set_discharge_control_flag()
        resp = operations.discharge_slot()
        assert resp.ok
        inverter.discharge_between.assert_called_once_with("12:10", "12:30")
        assert state.discharge_requested is False

    def test_discharge_slot_failure_keeps_flag(self, operations, inverter, state):
        """A failed discharge leaves the request pending."""
        inverter.discharge_between.return_value = ActionResult.failure("down")
        state.set_discharge_control_flag()
        assert operations.discharge_slot().is_error
        assert state.discharge_requested is True

    def test_discharge_slot_closes_charge_record(
        self, operations, timeseries, charge_history
    ):
        """Any action closes the record of the previous slot."""
        store_current_level(timeseries, level=80)
        charge_history.start_record(SLOT_11_30, 40, 30)
        operations.discharge_slot()
        assert charge_history.record(SLOT_11_30)["end"] == 80
        assert charge_history.record(SLOT_12_00) is None

    def test_discharge_slot_disabled(self, operations, inverter, state):
        """With discharging disabled the task is ignored."""
        state.set_discharging_enabled(False)
        assert operations.discharge_slot().status == "Inverter Discharge task ignored"
        inverter.discharge_between.assert_not_called()

    def test_grid_only_slot_gated_by_charging(self, operations, inverter, state):
        """Grid only follows the charging flag."""
        state.set_charging_enabled(False)
        assert operations.grid_only_slot().status == "Inverter Grid Only task ignored"
        state.set_charging_enabled(True)
        operations.grid_only_slot()
        inverter.grid_only_between.assert_called_once_with("12:10", "12:30")

    def test_bounded_commands_ignore_flags(self, operations, inverter, state):
        """Manual between commands are never gated."""
        state.set_charging_enabled(False)
        state.set_discharging_enabled(False)
        operations.charge_between("02:00", "04:00")
        operations.discharge_between("17:00", "18:00")
        operations.grid_only_between("18:00", "19:00")
        inverter.charge_between.assert_called_once_with("02:00", "04:00")
        inverter.discharge_between.assert_called_once_with("17:00", "18:00")
        inverter.grid_only_between.assert_called_once_with("18:00", "19:00")


class TestResetAndTime:
    """Tests for reset and time sync."""

    def test_reset(self, operations, inverter, state):
        """Reset is gated by the charging flag unless overridden."""
        state.set_charging_enabled(False)
        assert operations.reset().status == "Inverter reset task ignored"
        inverter.reset_now.assert_not_called()
        operations.reset(override=True)
        inverter.reset_now.assert_called_once()

    def test_reset_scheduled_and_sync(self, operations, inverter):
        """The scheduled variants delegate to the inverter."""
        operations.reset_scheduled()
        operations.sync_time()
        inverter.reset_scheduled.assert_called_once()
        inverter.sync_clock.assert_called_once()


class TestTelemetry:
    """Tests for refresh, rebuild and trim of the stored telemetry."""

    def test_refresh_maps_and_stores(self, operations, client, timeseries):
        """A vendor record is stored under its day and timestamp."""
        client.inverter_day.return_value = ActionResult.success(
            "ok",
            data={
                "data": [
                    {
                        "dataTimestamp": str(TODAY + 300000),
                        "pac": 500,
                        "eToday": 2.0,
                        "familyLoadPower": 300,
                        "homeLoadTodayEnergy": 1.5,
                        "batteryCapacitySoc": 64,
                    }
                ]
            },
        )
        resp = operations.refresh_telemetry()
        assert resp.status == "Solis Data updated successfully"
        assert resp.details["added"] == 1
        assert client.inverter_day.call_args.args[0].date_index == TODAY
        snap = timeseries.snapshot_at(TODAY, TODAY + 300000)
        assert snap.pv_output_now == 0.5
        assert snap.pv_output_total == 2.0
        assert snap.house_load_now == 0.3
        assert snap.house_load_total == 1.5
        assert snap.time == "00:05"

    def test_refresh_is_idempotent(self, operations, client):
        """Refreshing the same records twice adds nothing the second time."""
        client.inverter_day.return_value = ActionResult.success(
            "ok",
            data={
                "data": [
                    {"dataTimestamp": TODAY + 300000, "homeLoadTodayEnergy": 1.0},
                    {"dataTimestamp": TODAY + 600000, "homeLoadTodayEnergy": 0},
                    {"pac": 1},
                ]
            },
        )
        assert operations.refresh_telemetry().details["added"] == 1
        assert operations.refresh_telemetry().details["added"] == 0

    def test_refresh_skips_malformed_record(self, operations, client, timeseries):
        """A record with a non numeric reading is skipped; the others are stored."""
        client.inverter_day.return_value = ActionResult.success(
            "ok",
            data={
                "data": [
                    {
                        "dataTimestamp": TODAY + 300000,
                        "pac": "N/A",
                        "homeLoadTodayEnergy": 1.0,
                    },
                    {"dataTimestamp": TODAY + 600000, "homeLoadTodayEnergy": 1.2},
                ]
            },
        )
        resp = operations.refresh_telemetry()
        assert resp.ok
        assert resp.details["added"] == 1
        assert timeseries.snapshot_at(TODAY, TODAY + 300000) is None
        assert timeseries.snapshot_at(TODAY, TODAY + 600000).house_load_total == 1.2

    def test_refresh_persists_once(self, operations, client, memory_store):
        """All samples of one refresh are handed to the store in one write."""
        client.inverter_day.return_value = ActionResult.success(
            "ok",
            data={
                "data": [
                    {"dataTimestamp": TODAY + i * 300000, "homeLoadTodayEnergy": 1.0}
                    for i in range(1, 4)
                ]
            },
        )
        with patch.object(memory_store, "_changed") as changed:
            assert operations.refresh_telemetry().details["added"] == 3
        changed.assert_called_once()

    def test_refresh_failure_is_returned(self, operations, client):
        """A failed vendor call is passed back."""
        client.inverter_day.return_value = ActionResult.failure(
            "solis.inverterDay API failed"
        )
        assert operations.refresh_telemetry(-1).error == "solis.inverterDay API failed"

    def test_rebuild_continues_after_failed_day(self, operations, client, timeseries):
        """Every day of the window is requested even if one fails."""
        timeseries.append(
            TODAY - 20 * DAY_MS, TODAY - 20 * DAY_MS + 1, Snapshot(house_load_total=1.0)
        )

        def inverter_day(day):
            if day.iso_date_text == "2024-01-13":
                return ActionResult.failure("solis.request failed")
            return ActionResult.success(
                "ok",
                data={
                    "data": [
                        {
                            "dataTimestamp": day.date_index + SLOT_MS,
                            "homeLoadTodayEnergy": 1.0,
                        }
                    ]
                },
            )

        client.inverter_day.side_effect = inverter_day
        resp = operations.rebuild_history()
        assert client.inverter_day.call_count == 8
        assert resp.status == "Solis history rebuilt with missing days"
        assert resp.details["failed_offsets"] == [-2]
        days = timeseries.days()
        assert len(days) == 7
        assert TODAY - 20 * DAY_MS not in days
        assert TODAY - 2 * DAY_MS not in days

    def test_rebuild_survives_malformed_day(self, operations, client, timeseries):
        """A day with an unreadable record does not stop the rebuild."""

        def inverter_day(day):
            record = {
                "dataTimestamp": day.date_index + SLOT_MS,
                "homeLoadTodayEnergy": 1.0,
            }
            if day.iso_date_text == "2024-01-13":
                record["pac"] = "N/A"
            return ActionResult.success("ok", data={"data": [record]})

        client.inverter_day.side_effect = inverter_day
        resp = operations.rebuild_history()
        assert client.inverter_day.call_count == 8
        assert resp.status == "Solis history rebuilt"
        assert len(timeseries.days()) == 7
        assert TODAY - 2 * DAY_MS not in timeseries.days()

    def test_trim_history(self, operations, timeseries):
        """Trimming keeps the averaging period plus today."""
        for offset in range(10):
            day = TODAY - offset * DAY_MS
            timeseries.append(day, day + SLOT_MS, Snapshot(house_load_total=1.0))
        resp = operations.trim_history()
        assert resp.status == "Solis data cleared down to most recent 8 days"
        assert resp.details["removed"] == 2
        assert len(timeseries.days()) == 8

    def test_trim_history_window_of_seven(self, operations, timeseries, state):
        """A six day average keeps exactly the seven most recent days."""
        state.moving_average_period = 6
        for offset in range(12):
            day = TODAY - offset * DAY_MS
            timeseries.append(day, day + SLOT_MS, Snapshot(house_load_total=1.0))
        operations.trim_history()
        assert timeseries.days() == [TODAY - offset * DAY_MS for offset in range(7)]
