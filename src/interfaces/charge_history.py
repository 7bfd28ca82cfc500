"""
Charge history log: one record per half hour slot in which a charge started,
`{start, startMinute, end}` with battery levels in %.
"""

import logging

from .constants import STORE_ROOT_CHARGE_HISTORY

logger = logging.getLogger("__main__")
logger.info("[CHARGE-HIST] loading module ")


class ChargeHistory:
    """
    Records the battery level when a charge starts and, retroactively, when the next
    action starts.
    """

    def __init__(self, store, root=STORE_ROOT_CHARGE_HISTORY):
        self.history = store.handle(root)

    def start_record(self, slot_time_index, battery_level, start_minute):
        """Open the record of the slot with the current battery level."""
        self.history.set((int(slot_time_index), "start"), battery_level)
        self.history.set((int(slot_time_index), "startMinute"), start_minute)
        logger.debug(
            "[CHARGE-HIST] started record %s at %s%%", slot_time_index, battery_level
        )

    def end_record(self, previous_slot_time_index, battery_level):
        """
        Fill in the end level of the previous slot's record, if there is one.
        Returns True if a record was updated.
        """
        if not self.history.exists(int(previous_slot_time_index)):
            return False
        self.history.set((int(previous_slot_time_index), "end"), battery_level)
        return True

    def record(self, slot_time_index):
        """The record of a slot as a dict, or None."""
        value = self.history.get(int(slot_time_index))
        return dict(value) if value is not None else None

    def records(self):
        """All records keyed by slot time index, oldest first."""
        return {key: self.record(key) for key in self.history.child_keys()}
