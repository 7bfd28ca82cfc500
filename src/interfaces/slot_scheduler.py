"""
This module provides the `AgilityScheduler` class which drives the scheduling
operations from two background threads:

- data loop: pulls today's telemetry every `update_interval` minutes. The first
  refresh of a new day also completes yesterday and trims the retained window.
- control loop: wakes at every half hour slot boundary, runs the midnight reset and
  clock sync and then the action configured for the slot.

Only the control loop sends inverter commands, so they never overlap.
"""

import logging
import threading
import time

logger = logging.getLogger("__main__")
logger.info("[SCHEDULER] loading module ")

SLOT_ACTIONS = {
    "charge": "charge_slot",
    "discharge": "discharge_slot",
    "grid_only": "grid_only_slot",
}


class AgilityScheduler:
    """
    Runs the telemetry refresh and the slot actions in background threads.

    Attributes:
        operations (SchedulingOperations): the actions to run.
        date (DateUtility): local time helper.
        schedule (dict): slot start "HH:MM" -> "charge" | "discharge" | "grid_only".
        update_interval (int): seconds between telemetry refreshes.
    """

    def __init__(self, operations, date_utility, schedule=None, update_interval=600):
        self.operations = operations
        self.date = date_utility
        self.schedule = dict(schedule or {})
        self.update_interval = update_interval
        self.current_state = {
            "last_data_update": None,
            "last_slot_action": None,
            "last_result": None,
        }
        self._last_data_day = None
        self._update_thread_data_loop = None
        self._stop_event_data_loop = threading.Event()
        self._update_thread_control_loop = None
        self._stop_event_control_loop = threading.Event()

    def get_current_state(self):
        """
        Returns the current state of the scheduler.
        """
        return self.current_state

    def start(self):
        """
        Rebuild the history if the store is empty and start both loops.
        """
        if self.operations.timeseries.last_day() is None:
            logger.info("[SCHEDULER] No telemetry stored yet - rebuilding history")
            self.operations.rebuild_history()
            self._last_data_day = self.date.now().date_index
        self.__start_update_service_data_loop()
        self.__start_update_service_control_loop()

    def run_data_update(self):
        """
        Refresh today's telemetry. On the first run of a new day yesterday is
        refreshed once more and the store is trimmed.
        """
        now = self.date.now()
        result = self.operations.refresh_telemetry(0)
        if self._last_data_day is not None and now.date_index != self._last_data_day:
            logger.info("[SCHEDULER] New day %s - completing yesterday", now.date_text)
            self.operations.refresh_telemetry(-1)
            self.operations.trim_history()
        self._last_data_day = now.date_index
        self.current_state["last_data_update"] = now.full_time_text
        return result

    def run_slot_action(self):
        """
        Run the midnight maintenance and the scheduled action of the current slot.
        Returns the result of the slot action, or None if nothing is scheduled.
        """
        now = self.date.now()
        if now.slot_time_text == "00:00":
            self.operations.reset_scheduled()
            self.operations.sync_time()
        action = self.schedule.get(now.slot_time_text)
        if action is None:
            logger.debug("[SCHEDULER] Nothing scheduled for %s", now.slot_time_text)
            return None
        if action not in SLOT_ACTIONS:
            logger.error(
                "[SCHEDULER] Unknown action '%s' for slot %s", action, now.slot_time_text
            )
            return None
        result = getattr(self.operations, SLOT_ACTIONS[action])()
        self.current_state["last_slot_action"] = f"{now.slot_time_text} {action}"
        self.current_state["last_result"] = result.as_dict()
        return result

    def seconds_until_next_slot(self):
        """Seconds from now to the start of the next slot."""
        now = self.date.now()
        return max(0.0, (now.slot_end_time_index - now.time_index) / 1000)

    def _sleep(self, stop_event, seconds):
        # sleep in 1-second chunks to allow an immediate shutdown
        while seconds > 0:
            if stop_event.is_set():
                return False
            time.sleep(min(1, seconds))
            seconds -= 1
        return not stop_event.is_set()

    def __start_update_service_data_loop(self):
        if (
            self._update_thread_data_loop is None
            or not self._update_thread_data_loop.is_alive()
        ):
            self._stop_event_data_loop.clear()
            self._update_thread_data_loop = threading.Thread(
                target=self.__update_state_loop_data_loop, daemon=True
            )
            self._update_thread_data_loop.start()
            logger.info("[SCHEDULER] Update service Data started.")

    def __update_state_loop_data_loop(self):
        while not self._stop_event_data_loop.is_set():
            try:
                self.run_data_update()
            except (KeyError, ValueError, OSError) as e:
                logger.error("[SCHEDULER] Error while running data loop: %s", e)
            if not self._sleep(self._stop_event_data_loop, self.update_interval):
                return

    def __start_update_service_control_loop(self):
        if (
            self._update_thread_control_loop is None
            or not self._update_thread_control_loop.is_alive()
        ):
            self._stop_event_control_loop.clear()
            self._update_thread_control_loop = threading.Thread(
                target=self.__update_state_loop_control_loop, daemon=True
            )
            self._update_thread_control_loop.start()
            logger.info("[SCHEDULER] Update service Control started.")

    def __update_state_loop_control_loop(self):
        while not self._stop_event_control_loop.is_set():
            wait = self.seconds_until_next_slot()
            next_slot = self.date.at(self.date.now().slot_end_time_index)
            logger.debug(
                "[SCHEDULER] Next slot at %s, sleeping %.0f seconds",
                next_slot.time_text,
                wait,
            )
            # one extra second so the wake up lands inside the new slot
            if not self._sleep(self._stop_event_control_loop, wait + 1):
                return
            try:
                self.run_slot_action()
            except (KeyError, ValueError, OSError) as e:
                logger.error("[SCHEDULER] Error while running control loop: %s", e)

    def wait(self):
        """
        Block until both loops have stopped. Joins in short steps so a
        KeyboardInterrupt still reaches the calling thread.
        """
        for thread in (self._update_thread_data_loop, self._update_thread_control_loop):
            while thread is not None and thread.is_alive():
                thread.join(1)

    def shutdown(self):
        """
        Stops the background threads.
        """
        if self._update_thread_data_loop and self._update_thread_data_loop.is_alive():
            self._stop_event_data_loop.set()
            self._update_thread_data_loop.join()
            logger.info("[SCHEDULER] Update service Data Loop stopped.")
        if (
            self._update_thread_control_loop
            and self._update_thread_control_loop.is_alive()
        ):
            self._stop_event_control_loop.set()
            self._update_thread_control_loop.join()
            logger.info("[SCHEDULER] Update service Control Loop stopped.")
        state = self.get_current_state()
        logger.info(
            "[SCHEDULER] Final state - last data update: %s, last slot action: %s (%s)",
            state["last_data_update"] or "none",
            state["last_slot_action"] or "none",
            state["last_result"] or "-",
        )

