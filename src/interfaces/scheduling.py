"""
This module provides the `SchedulingOperations` class: the actions an external
scheduler runs at slot boundaries (charge, discharge, grid only, reset, time sync) and
the telemetry maintenance tasks (refresh, rebuild and trim of the stored history).

Slot actions respect the enable flags of `AgilityState` unless overridden; the
bounded `*_between` variants are manual commands and are never gated. All operations
return an `ActionResult`.

No locking is done here: inverter commands must be serialised by the caller (one
control loop).
"""

import logging

from .results import ActionResult
from .timeseries_store import Snapshot

logger = logging.getLogger("__main__")
logger.info("[SCHED] loading module ")


class SchedulingOperations:
    """
    Orchestrates inverter actions and telemetry maintenance.

    Args:
        inverter (SolisInverter): inverter control adapter.
        client (SolisCloudClient): API transport, used for telemetry.
        timeseries (TimeSeriesStore): snapshot store.
        statistics (StatisticsEngine): used for the current battery level.
        charge_history (ChargeHistory): charge history log.
        state (AgilityState): enable flags and retained window.
        date_utility (DateUtility): local time helper.
        battery: collaborator with `unset_discharge_control_flag()`;
            defaults to `state`.
    """

    def __init__(
        self,
        inverter,
        client,
        timeseries,
        statistics,
        charge_history,
        state,
        date_utility,
        battery=None,
    ):
        self.inverter = inverter
        self.client = client
        self.timeseries = timeseries
        self.statistics = statistics
        self.charge_history = charge_history
        self.state = state
        self.date = date_utility
        self.battery = battery if battery is not None else state

    def _log_result(self, action, result):
        if result.is_error:
            logger.error("[SCHED] %s failed: %s", action, result.error)
        else:
            logger.info("[SCHED] %s: %s", action, result.status)
        return result

    def _current_slot(self):
        from_d = self.date.now()
        to_d = self.date.at(from_d.slot_end_time_index)
        return from_d, to_d

    def _close_previous_charge_record(self, now):
        level = self.statistics.battery_level_now()
        if level is not None:
            self.charge_history.end_record(now.previous_slot_time_index, level)

    def _start_charge_record(self, now):
        level = self.statistics.battery_level_now()
        if level is not None:
            self.charge_history.start_record(now.slot_time_index, level, now.minute)

    # slot actions

    def charge_slot(self, override=False):
        """Charge from now until the end of the current slot."""
        if not override and not self.state.charging_enabled:
            logger.info("[SCHED] Charging logic is currently disabled")
            return ActionResult.success("Inverter Charge task ignored")
        from_d, to_d = self._current_slot()
        self._close_previous_charge_record(from_d)
        self._start_charge_record(from_d)
        result = self.inverter.charge_between(from_d.time_text, to_d.time_text)
        return self._log_result("charge slot", result)

    def discharge_slot(self, override=False):
        """Discharge from now until the end of the current slot."""
        if not override and not self.state.discharging_enabled:
            logger.info("[SCHED] Discharging logic is currently disabled")
            return ActionResult.success("Inverter Discharge task ignored")
        from_d, to_d = self._current_slot()
        self._close_previous_charge_record(from_d)
        result = self.inverter.discharge_between(from_d.time_text, to_d.time_text)
        if result.ok:
            self.battery.unset_discharge_control_flag()
        return self._log_result("discharge slot", result)

    def grid_only_slot(self, override=False):
        """Run the house from the grid until the end of the current slot."""
        if not override and not self.state.charging_enabled:
            logger.info("[SCHED] Charging logic is currently disabled")
            return ActionResult.success("Inverter Grid Only task ignored")
        from_d, to_d = self._current_slot()
        self._close_previous_charge_record(from_d)
        result = self.inverter.grid_only_between(from_d.time_text, to_d.time_text)
        return self._log_result("grid only slot", result)

    # manual bounded commands

    def charge_between(self, from_time_text, to_time_text):
        """Manual charge between two times; not gated by the enable flags."""
        return self._log_result(
            "charge between", self.inverter.charge_between(from_time_text, to_time_text)
        )

    def discharge_between(self, from_time_text, to_time_text):
        """Manual discharge between two times; not gated by the enable flags."""
        return self._log_result(
            "discharge between",
            self.inverter.discharge_between(from_time_text, to_time_text),
        )

    def grid_only_between(self, from_time_text, to_time_text):
        """Manual grid only period between two times; not gated by the enable flags."""
        return self._log_result(
            "grid only between",
            self.inverter.grid_only_between(from_time_text, to_time_text),
        )

    # reset and clock

    def reset(self, override=False):
        """Clear all inverter charge/discharge windows now."""
        if not override and not self.state.charging_enabled:
            logger.info(
                "[SCHED] Charging logic is currently disabled, so no reset command sent"
            )
            return ActionResult.success("Inverter reset task ignored")
        return self._log_result("reset", self.inverter.reset_now())

    def reset_scheduled(self):
        """Reset at midnight; a no-op at any other time."""
        if not self.state.charging_enabled:
            return ActionResult.success("Inverter reset task ignored")
        return self._log_result("scheduled reset", self.inverter.reset_scheduled())

    def sync_time(self):
        """Synchronise the inverter clock if configured."""
        return self._log_result("time sync", self.inverter.sync_clock())

    # telemetry

    def refresh_telemetry(self, day_offset=0):
        """
        Pull one day of telemetry (`day_offset` 0 = today, -1 = yesterday, …) and
        append the samples that are not stored yet.
        """
        day = self.date.at_midnight(day_offset)
        resp = self.client.inverter_day(day)
        if resp.is_error:
            return self._log_result(f"telemetry refresh ({day.date_text})", resp)
        added = 0
        with self.timeseries.batch():
            for record in resp.data["data"]:
                try:
                    time_index = int(record["dataTimestamp"])
                except (KeyError, TypeError, ValueError):
                    logger.warning("[SCHED] Skipping record without dataTimestamp")
                    continue
                try:
                    snapshot = Snapshot.from_vendor_record(
                        record, self.date.at(time_index)
                    )
                except (TypeError, ValueError) as e:
                    logger.warning(
                        "[SCHED] Skipping malformed record at %s: %s", time_index, e
                    )
                    continue
                if self.timeseries.append(day.date_index, time_index, snapshot):
                    added += 1
        logger.debug("[SCHED] %s new samples stored for %s", added, day.date_text)
        return ActionResult.success(
            "Solis Data updated successfully", date=day.date_text, added=added
        )

    def rebuild_history(self):
        """
        Clear the stored telemetry and pull today plus every past day of the
        retained window again. A failed day is logged and skipped.
        """
        self.timeseries.clear()
        failed = []
        for offset in range(0, -self.state.retained_days, -1):
            result = self.refresh_telemetry(offset)
            if result.is_error:
                failed.append(offset)
                logger.warning(
                    "[SCHED] History rebuild: day offset %s failed: %s",
                    offset,
                    result.error,
                )
        if failed:
            return ActionResult.success(
                "Solis history rebuilt with missing days", failed_offsets=failed
            )
        return ActionResult.success("Solis history rebuilt")

    def trim_history(self):
        """Keep only the most recent `retained_days` days of telemetry."""
        keep = self.state.retained_days
        removed = self.timeseries.prune_older_than(keep)
        logger.info(
            "[SCHED] Solis data cleared down to most recent %s days (%s removed)",
            keep,
            removed,
        )
        return ActionResult.success(
            f"Solis data cleared down to most recent {keep} days", removed=removed
        )
