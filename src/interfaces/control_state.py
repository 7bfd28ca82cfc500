"""
This module defines the AgilityState class, the process wide control state shared by
the scheduling operations: the charging/discharging enable flags, the moving average
period that sizes the retained history and the battery's "discharge requested" flag.
"""

import logging
import threading

logger = logging.getLogger("__main__")
logger.info("[AGILITY-STATE] loading module ")


class AgilityState:
    """
    AgilityState keeps the flags that gate the scheduled inverter actions.

    Attributes:
        charging_enabled (bool): scheduled charge, grid-only and reset actions run.
        discharging_enabled (bool): scheduled discharge actions run.
        moving_average_period (int): number of complete days used for averages.
        discharge_requested (bool): set by the battery logic to trigger a discharge,
            cleared once a discharge has been sent to the inverter.
    """

    def __init__(
        self,
        charging_enabled=True,
        discharging_enabled=True,
        moving_average_period=7,
    ):
        self.charging_enabled = charging_enabled
        self.discharging_enabled = discharging_enabled
        self.moving_average_period = moving_average_period
        self.discharge_requested = False
        self.lock = threading.Lock()

    @classmethod
    def from_config(cls, config):
        """Build the state from the `agility` config section."""
        config = config or {}
        try:
            period = int(config.get("moving_average_period", 7))
        except (TypeError, ValueError):
            logger.warning(
                "[AGILITY-STATE] Invalid moving_average_period %r; defaulting to 7",
                config.get("moving_average_period"),
            )
            period = 7
        return cls(
            charging_enabled=bool(config.get("charging_enabled", True)),
            discharging_enabled=bool(config.get("discharging_enabled", True)),
            moving_average_period=max(period, 1),
        )

    @property
    def retained_days(self):
        """Days of telemetry to keep: the averaging period plus today."""
        return self.moving_average_period + 1

    def set_charging_enabled(self, value):
        """Enable or disable the scheduled charge logic."""
        with self.lock:
            self.charging_enabled = bool(value)
        logger.info("[AGILITY-STATE] charging enabled: %s", self.charging_enabled)

    def set_discharging_enabled(self, value):
        """Enable or disable the scheduled discharge logic."""
        with self.lock:
            self.discharging_enabled = bool(value)
        logger.info(
            "[AGILITY-STATE] discharging enabled: %s", self.discharging_enabled
        )

    def set_discharge_control_flag(self):
        """Request a discharge from the battery logic."""
        with self.lock:
            self.discharge_requested = True

    def unset_discharge_control_flag(self):
        """Clear a pending discharge request. Clearing a clear flag is a no-op."""
        with self.lock:
            if self.discharge_requested:
                logger.debug("[AGILITY-STATE] discharge request cleared")
            self.discharge_requested = False
