"""
This module provides the `TimeSeriesStore` class which keeps the half hourly power
snapshots pulled from SolisCloud.

Snapshots live in the `solis` sub-tree of the shared store, keyed by calendar day
(`date_index`, local midnight in epoch ms) and then by sample time (`time_index`).
A snapshot is written once and never modified; days are removed in bulk when they
fall out of the retained window.
"""

from dataclasses import asdict, dataclass, fields
import logging

from .constants import STORE_ROOT_SOLIS

logger = logging.getLogger("__main__")
logger.info("[TS-STORE] loading module ")


def _number(value):
    if value is None or value == "":
        return 0.0
    return float(value)


@dataclass(frozen=True)
class Snapshot:
    """
    One telemetry sample. `*_total` fields are cumulative for the calendar day (kWh),
    `*_now` fields are instantaneous (kW).
    """

    pv_output_now: float = 0.0
    pv_output_total: float = 0.0
    house_load_now: float = 0.0
    house_load_total: float = 0.0
    grid_import_now: float = 0.0
    grid_import_total: float = 0.0
    grid_export_total: float = 0.0
    battery_level: float = 0.0
    battery_charge_power: float = 0.0
    at: str = ""
    time: str = ""

    CUMULATIVE_FIELDS = (
        "house_load_total",
        "grid_export_total",
        "grid_import_total",
        "pv_output_total",
    )

    @classmethod
    def from_vendor_record(cls, record, date_info=None):
        """
        Map one record of the SolisCloud `inverterDay` response.

        Args:
            record (dict): vendor record (numbers may be strings).
            date_info (DateInfo): local view of the record's `dataTimestamp`,
                used for the display fields.
        """
        return cls(
            pv_output_now=_number(record.get("pac")) / 1000,
            pv_output_total=_number(record.get("eToday")),
            house_load_now=_number(record.get("familyLoadPower")) / 1000,
            house_load_total=_number(record.get("homeLoadTodayEnergy")),
            grid_import_now=(0 - _number(record.get("pSum"))) / 1000,
            grid_import_total=_number(record.get("gridPurchasedTodayEnergy")),
            grid_export_total=_number(record.get("gridSellTodayEnergy")),
            battery_level=_number(record.get("batteryCapacitySoc")),
            battery_charge_power=_number(record.get("batteryPower")),
            at=f"{date_info.date_text}: {date_info.time_text}" if date_info else "",
            time=date_info.time_text if date_info else "",
        )

    @classmethod
    def from_dict(cls, data):
        """Rebuild a snapshot from its stored form, ignoring unknown keys."""
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in names})

    def to_dict(self):
        """Stored form of the snapshot."""
        return asdict(self)


class TimeSeriesStore:
    """
    Append-only store of snapshots keyed by (date_index, time_index).

    Args:
        store (HierarchicalStore): the shared persistent store.
        root (str): name of the sub-tree holding the snapshots.
    """

    def __init__(self, store, root=STORE_ROOT_SOLIS):
        self.data = store.handle(root)

    def append(self, date_index, time_index, snapshot):
        """
        Store `snapshot` unless the key already exists or the day's house load total
        is still zero. Returns True if a write happened.
        """
        date_index = int(date_index)
        time_index = int(time_index)
        if self.data.exists((date_index, time_index)):
            return False
        if snapshot.house_load_total == 0:
            logger.debug(
                "[TS-STORE] Skipping sample %s/%s: house load total is zero",
                date_index,
                time_index,
            )
            return False
        self.data.set((date_index, time_index), snapshot.to_dict())
        return True

    def batch(self):
        """Context manager persisting several appends in one store write."""
        return self.data.batch()

    def snapshot_at(self, date_index, time_index):
        """Exact lookup; None if there is no sample for the key."""
        value = self.data.get((int(date_index), int(time_index)))
        if value is None:
            return None
        return Snapshot.from_dict(value)

    def has_day(self, date_index):
        """True if any sample is stored for the day."""
        return self.data.exists(int(date_index))

    def time_indices(self, date_index):
        """Sample time indices of one day, ascending."""
        return self.data.child_keys(int(date_index))

    def nearest_before(self, date_index, time_index):
        """Latest time index strictly before `time_index` within the day, or None."""
        before = [key for key in self.time_indices(date_index) if key < time_index]
        return before[-1] if before else None

    def nearest_after(self, date_index, time_index):
        """Earliest time index strictly after `time_index` within the day, or None."""
        for key in self.time_indices(date_index):
            if key > time_index:
                return key
        return None

    def latest_snapshot(self, date_index):
        """Most recent snapshot of the day, or None."""
        keys = self.time_indices(date_index)
        if not keys:
            return None
        return self.snapshot_at(date_index, keys[-1])

    def days(self):
        """Stored date indices, most recent first."""
        return list(reversed(self.data.child_keys()))

    def last_day(self):
        """Most recent stored day (usually still in progress), or None."""
        days = self.days()
        return days[0] if days else None

    def previous_to_last(self):
        """The day before the most recent stored day: the latest complete day, or None."""
        days = self.days()
        return days[1] if len(days) > 1 else None

    def prune_older_than(self, retain_days):
        """
        Delete whole days beyond the `retain_days` most recent ones.
        Returns the number of deleted days.
        """
        removed = 0
        for count, date_index in enumerate(self.days(), start=1):
            if count > retain_days:
                self.data.delete(date_index)
                removed += 1
        return removed

    def clear(self):
        """Delete every stored snapshot."""
        self.data.delete()
