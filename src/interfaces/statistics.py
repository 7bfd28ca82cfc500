"""
This module provides the `StatisticsEngine` class, which derives consumption and
production statistics from the snapshots of the `TimeSeriesStore`.

The cumulative `*_total` counters reset every day, so statistics are built from the
difference between two samples of the same day:

- history(): per slot deltas of one day joined with the tariff price
- power_at(): the sample nearest to a time within a day
- average_between(): average consumption/production between two times of day over
  all complete days
- daily_profile(): the typical consumption of each half hour slot

The most recent stored day is normally still in progress. It is never used as a
complete day; averages start at the day before it.
"""

from dataclasses import dataclass
import logging

from .constants import SLOT_MS, SLOTS_PER_DAY

logger = logging.getLogger("__main__")
logger.info("[STATS] loading module ")


class NoHistoricalDataError(LookupError):
    """Raised when there is no complete day of telemetry to average over."""


@dataclass(frozen=True)
class PowerAverage:
    """Average energy (kWh) consumed by the house and produced by PV."""

    load: float
    pv: float

    def __add__(self, other):
        return PowerAverage(load=self.load + other.load, pv=self.pv + other.pv)


class StatisticsEngine:
    """
    Read-only statistics over the stored telemetry.

    Args:
        timeseries (TimeSeriesStore): snapshot store.
        prices (PriceLookup): tariff price lookup.
        date_utility (DateUtility): local time helper.
    """

    def __init__(self, timeseries, prices, date_utility):
        self.timeseries = timeseries
        self.prices = prices
        self.date = date_utility

    def available_dates(self):
        """Stored days, most recent first, as `{date_index, date}` dicts."""
        return [
            {"date_index": date_index, "date": self.date.at(date_index).date_text}
            for date_index in self.timeseries.days()
        ]

    def power_at(self, date_index, time_index):
        """
        The snapshot at `time_index`, or else the nearer of the samples before and
        after it (the earlier one on a tie). None if the day has no samples.
        """
        snapshot = self.timeseries.snapshot_at(date_index, time_index)
        if snapshot is not None:
            return snapshot
        before = self.timeseries.nearest_before(date_index, time_index)
        after = self.timeseries.nearest_after(date_index, time_index)
        if before is None and after is None:
            return None
        if before is None:
            selected = after
        elif after is None:
            selected = before
        elif after - time_index < time_index - before:
            selected = after
        else:
            selected = before
        return self.timeseries.snapshot_at(date_index, selected)

    def history(self, date_index):
        """
        Per slot records of one day up to now: the delta of every cumulative counter
        since the previous slot boundary, the battery level and the tariff price.

        The first slot's delta is taken against the day's first sample.
        Returns None if the day has no samples.
        """
        sample_times = self.timeseries.time_indices(date_index)
        if not sample_times:
            return None
        first = self.timeseries.snapshot_at(date_index, sample_times[0])
        baseline = {name: getattr(first, name) for name in first.CUMULATIVE_FIELDS}
        # deltas are taken against what was already emitted, so the rounding of one
        # slot is carried into the next and the deltas add up to last minus first
        emitted = dict.fromkeys(first.CUMULATIVE_FIELDS, 0.0)
        now = self.date.now()
        history = []
        time_index = int(date_index)
        for _ in range(SLOTS_PER_DAY):
            time_index += SLOT_MS
            if time_index > now.time_index:
                break
            snapshot = self.power_at(date_index, time_index)
            record = {
                "time": self.date.at(time_index).time_text,
                "time_index": time_index,
                "battery_level": snapshot.battery_level,
                "price": self.prices.price_at(date_index, time_index),
            }
            for name in snapshot.CUMULATIVE_FIELDS:
                value = getattr(snapshot, name)
                delta = round(value - baseline[name] - emitted[name], 3)
                record[name] = delta
                emitted[name] = round(emitted[name] + delta, 3)
            history.append(record)
        return history

    def data_at(self, time_text, date_index):
        """
        The sample at wall-clock `time_text` on the given day, or else the next later
        sample, or else the latest earlier one. None if the day has no samples.
        """
        time_index = self.date.at_time(time_text, date_index).time_index
        snapshot = self.timeseries.snapshot_at(date_index, time_index)
        if snapshot is not None:
            return snapshot
        selected = self.timeseries.nearest_after(date_index, time_index)
        if selected is None:
            selected = self.timeseries.nearest_before(date_index, time_index)
        if selected is None:
            return None
        return self.timeseries.snapshot_at(date_index, selected)

    def data_now(self):
        """
        The latest sample at or before now. Just after midnight, before today's first
        sample has arrived, the last sample of yesterday.
        """
        now = self.date.now()
        snapshot = self.timeseries.snapshot_at(now.date_index, now.time_index)
        if snapshot is not None:
            return snapshot
        before = self.timeseries.nearest_before(now.date_index, now.time_index)
        if before is not None:
            return self.timeseries.snapshot_at(now.date_index, before)
        if now.slot_time_text == "00:00":
            yesterday = self.date.at(now.date_index - 1).date_index
            return self.timeseries.latest_snapshot(yesterday)
        return None

    def battery_level_now(self):
        """Current battery level in %, or None if unknown."""
        snapshot = self.data_now()
        if snapshot is None:
            return None
        return snapshot.battery_level

    def complete_days(self):
        """Date indices of the complete days, most recent first."""
        return self.timeseries.days()[1:]

    def _average_same_day(self, from_time_text, to_time_text):
        total_load = 0.0
        total_pv = 0.0
        count = 0
        for date_index in self.complete_days():
            start = self.data_at(from_time_text, date_index)
            end = self.data_at(to_time_text, date_index)
            if start is None or end is None:
                continue
            total_load += end.house_load_total - start.house_load_total
            total_pv += end.pv_output_total - start.pv_output_total
            count += 1
        if count == 0:
            raise NoHistoricalDataError("No historical Solis data is available yet")
        return PowerAverage(load=total_load / count, pv=total_pv / count)

    def average_between(self, from_time_text="00:00", to_time_text="23:59"):
        """
        Average house load and PV production between two times of day over all
        complete days. A window crossing midnight (e.g. 22:00 -> 06:00) is computed
        as `from -> 23:30` plus `00:00 -> to`.

        Raises:
            NoHistoricalDataError: if there is no complete day to average over.
        """
        if from_time_text > to_time_text:
            return self._average_same_day(
                from_time_text, "23:30"
            ) + self._average_same_day("00:00", to_time_text)
        return self._average_same_day(from_time_text, to_time_text)

    def average_between_time_indices(self, from_time_index, to_time_index, log=True):
        """
        `average_between` for two absolute times. When they fall on different
        calendar days the window is split at midnight.

        Raises:
            NoHistoricalDataError: if there is no complete day to average over.
        """
        from_d = self.date.at(from_time_index)
        to_d = self.date.at(to_time_index)
        if from_d.date_index == to_d.date_index:
            power = self._average_same_day(from_d.time_text, to_d.time_text)
        else:
            power = self._average_same_day(
                from_d.time_text, "23:30"
            ) + self._average_same_day("00:00", to_d.time_text)
        if log:
            logger.info(
                "[STATS] Average power between %s and %s: load %.2f kWh, pv %.2f kWh",
                from_d.time_text,
                to_d.time_text,
                power.load,
                power.pv,
            )
        return power

    def daily_profile(self):
        """
        Typical house load (kWh) of each of the 47 half hour slots, averaged over
        all complete days. A reading lower than the running total counts as no
        consumption, so every slot value is non-negative.

        Raises:
            NoHistoricalDataError: if there is no complete day yet.
        """
        totals = [0.0] * SLOTS_PER_DAY
        count = 0
        for date_index in self.complete_days():
            slots = []
            for i in range(SLOTS_PER_DAY):
                snapshot = self.power_at(date_index, date_index + (i + 1) * SLOT_MS)
                if snapshot is None:
                    break
                slots.append(snapshot.house_load_total)
            if len(slots) < SLOTS_PER_DAY:
                continue
            running = 0.0
            for i, value in enumerate(slots):
                if value < running:
                    value = running
                totals[i] += round(value - running, 2)
                running = value
            count += 1
        if count == 0:
            raise NoHistoricalDataError("No historical Solis data is available yet")
        return [round(total / count, 2) for total in totals]
