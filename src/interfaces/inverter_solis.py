"""
Solis inverter control via SolisCloud.

Solis inverters speak two incompatible control dialects depending on the firmware:

- pre-4B00: charge and discharge are driven by one comma separated settings string
  (cid 4643). The current string is read with atRead, the relevant positions are
  rewritten and the whole string is written back.

      index 0   charge current
      index 1   discharge current
      index 2   charge time window    "HH:MM-HH:MM"
      index 3   discharge time window
      index 6   second charge window  (always cleared)
      index 10  third window          (always cleared)

- post-4B00: independent numeric settings per concern, each with its own command id
  (current limit, target SOC, time window for slot 1).

The dialect is detected once from the inverter's software version (inverterDetail ->
inverterList) and cached in the configuration.
"""

import logging

from .constants import (
    CID_CHARGE_DISCHARGE_SETTINGS,
    CID_POST_4B00_CHARGE_CURRENT,
    CID_POST_4B00_CHARGE_SOC,
    CID_POST_4B00_CHARGE_TIME,
    CID_POST_4B00_DISCHARGE_CURRENT,
    CID_POST_4B00_DISCHARGE_SOC,
    CID_POST_4B00_DISCHARGE_TIME,
    CID_SET_TIME,
    EMPTY_TIME_WINDOW,
    FIRMWARE_POST_4B00,
    FIRMWARE_PRE_4B00,
    FIRMWARE_UNKNOWN,
)
from .results import ActionResult

logger = logging.getLogger("__main__")
logger.info("[SOLIS] loading module ")

SETTINGS_FIELD_COUNT = 11


def classify_firmware_version(version):
    """
    Map an inverter software version to its control dialect.

    Versions starting with "4" whose second character is "B" or later are post-4B00,
    everything else is pre-4B00.
    """
    version = str(version or "").upper()
    if len(version) > 1 and version.startswith("4") and ord(version[1]) >= 66:
        return FIRMWARE_POST_4B00
    return FIRMWARE_PRE_4B00


def rewrite_settings(
    current_setting,
    charge_current=0,
    discharge_current=0,
    charge_window=EMPTY_TIME_WINDOW,
    discharge_window=EMPTY_TIME_WINDOW,
):
    """
    Rewrite a pre-4B00 settings string. Positions not handled here are kept.

    Raises:
        ValueError: if the string has fewer than 11 fields.
    """
    pcs = str(current_setting).split(",")
    if len(pcs) < SETTINGS_FIELD_COUNT:
        raise ValueError(
            f"settings string has {len(pcs)} fields, expected {SETTINGS_FIELD_COUNT}"
        )
    pcs[0] = str(charge_current)
    pcs[1] = str(discharge_current)
    pcs[2] = charge_window
    pcs[3] = discharge_window
    pcs[6] = EMPTY_TIME_WINDOW
    pcs[10] = EMPTY_TIME_WINDOW
    return ",".join(pcs)


def time_window(from_time_text, to_time_text):
    """Vendor time window text, e.g. "02:00-02:30"."""
    return f"{from_time_text}-{to_time_text}"


class SolisInverter:
    """
    Translates charge/discharge/grid-only/reset/time-sync intents into SolisCloud
    control calls for the detected firmware dialect.

    Args:
        client (SolisCloudClient): signed API transport.
        date_utility (DateUtility): local time helper.
        charge_current (int): charge current limit in A.
        discharge_current (int): discharge current limit in A.
        on_firmware_version_detected (callable): called with the dialect once it has
            been detected, so it can be persisted.
    """

    def __init__(
        self,
        client,
        date_utility,
        charge_current=50,
        discharge_current=50,
        on_firmware_version_detected=None,
    ):
        self.client = client
        self.settings = client.settings
        self.date = date_utility
        self.charge_current = charge_current
        self.discharge_current = discharge_current
        self.on_firmware_version_detected = on_firmware_version_detected

    # firmware dialect

    def get_firmware_version(self):
        """Cached dialect; detected from SolisCloud on first use."""
        if not self.settings.firmware_version:
            if not self.detect_firmware_version():
                return FIRMWARE_UNKNOWN
        return self.settings.firmware_version

    def detect_firmware_version(self):
        """
        Resolve the inverter's station, read its software version and cache the
        resulting dialect. Returns True on success.
        """
        resp = self.client.inverter_detail()
        if resp.is_error:
            return False
        detail = resp.data.get("data") if isinstance(resp.data, dict) else None
        if not isinstance(detail, dict) or not detail.get("stationId"):
            logger.error("[SOLIS] inverterDetail returned no stationId")
            return False
        resp = self.client.inverter_list(detail["stationId"])
        if resp.is_error:
            return False
        try:
            records = resp.data["data"]["page"]["records"]
        except (KeyError, TypeError):
            logger.error("[SOLIS] inverterList returned no records")
            return False
        software_version = None
        for record in records or []:
            if isinstance(record, dict) and record.get("inverterSoftwareVersion"):
                software_version = str(record["inverterSoftwareVersion"]).upper()
                break
        if not software_version:
            logger.error("[SOLIS] No inverter software version reported")
            return False
        dialect = classify_firmware_version(software_version)
        logger.info(
            "[SOLIS] Inverter software version %s uses the %s dialect",
            software_version,
            dialect,
        )
        self.settings.firmware_version = dialect
        if self.on_firmware_version_detected:
            self.on_firmware_version_detected(dialect)
        return True

    def invalidate_firmware_version(self):
        """Forget the cached dialect; the next command detects it again."""
        logger.info("[SOLIS] Firmware version cache invalidated")
        self.settings.firmware_version = ""

    def _is_post_4b00(self):
        return self.get_firmware_version() == FIRMWARE_POST_4B00

    # post-4B00 dialect

    def _control_steps(self, steps):
        for cid, value, description in steps:
            resp = self.client.control(cid, value, description)
            if resp.is_error:
                return resp
        return None

    def post_4b00_charge(self, from_time_text, to_time_text, current=None):
        """Charge current, SOC target 100 and slot 1 charge window."""
        if current is None:
            current = self.charge_current
        failed = self._control_steps(
            [
                (
                    CID_POST_4B00_CHARGE_CURRENT,
                    current,
                    "Solis charge current setting 5948",
                ),
                (CID_POST_4B00_CHARGE_SOC, 100, "Solis charge SOC setting 5928"),
                (
                    CID_POST_4B00_CHARGE_TIME,
                    time_window(from_time_text, to_time_text),
                    "Solis charge setting 5946",
                ),
            ]
        )
        if failed:
            return failed
        return ActionResult.success(
            f"Inverter successfully set to charge between {from_time_text} and {to_time_text}"
        )

    def post_4b00_discharge(self, from_time_text, to_time_text, current=None):
        """Discharge current, SOC target 0 and slot 1 discharge window."""
        if current is None:
            current = self.discharge_current
        failed = self._control_steps(
            [
                (
                    CID_POST_4B00_DISCHARGE_CURRENT,
                    current,
                    "Solis discharge current setting 5967",
                ),
                (CID_POST_4B00_DISCHARGE_SOC, 0, "Solis discharge SOC setting 5965"),
                (
                    CID_POST_4B00_DISCHARGE_TIME,
                    time_window(from_time_text, to_time_text),
                    "Solis discharge setting 5964",
                ),
            ]
        )
        if failed:
            return failed
        return ActionResult.success(
            f"Inverter successfully set to discharge between {from_time_text} and {to_time_text}"
        )

    # pre-4B00 dialect

    def _rewrite_and_push(self, description, **fields):
        resp = self.client.at_read(CID_CHARGE_DISCHARGE_SETTINGS)
        if resp.is_error:
            return resp
        current_setting = resp.data["data"]["msg"]
        try:
            new_setting = rewrite_settings(current_setting, **fields)
        except ValueError as e:
            logger.error("[SOLIS] Cannot rewrite settings '%s': %s", current_setting, e)
            return ActionResult.failure(
                "Solis settings string malformed", setting=current_setting
            )
        logger.debug("[SOLIS] settings %s -> %s", current_setting, new_setting)
        return self.client.control(CID_CHARGE_DISCHARGE_SETTINGS, new_setting, description)

    # intents

    def charge_between(self, from_time_text, to_time_text):
        """Charge from the grid between two wall-clock times."""
        if self._is_post_4b00():
            return self.post_4b00_charge(from_time_text, to_time_text)
        resp = self._rewrite_and_push(
            "Solis charge",
            charge_current=self.charge_current,
            charge_window=time_window(from_time_text, to_time_text),
        )
        if resp.is_error:
            return resp
        return ActionResult.success(
            f"Inverter set to charge between {from_time_text} and {to_time_text}"
        )

    def discharge_between(self, from_time_text, to_time_text):
        """Discharge the battery between two wall-clock times."""
        if self._is_post_4b00():
            return self.post_4b00_discharge(from_time_text, to_time_text)
        resp = self._rewrite_and_push(
            "Solis discharge",
            discharge_current=self.discharge_current,
            discharge_window=time_window(from_time_text, to_time_text),
        )
        if resp.is_error:
            return resp
        return ActionResult.success(
            f"Inverter set to discharge between {from_time_text} and {to_time_text}"
        )

    def grid_only_between(self, from_time_text, to_time_text):
        """Neither charge nor discharge the battery: the house runs from the grid."""
        if self._is_post_4b00():
            return self.post_4b00_discharge(from_time_text, to_time_text, current=0)
        resp = self._rewrite_and_push(
            "Solis discharge",
            discharge_window=time_window(from_time_text, to_time_text),
        )
        if resp.is_error:
            return resp
        return ActionResult.success(
            "Inverter set to only use grid power between "
            f"{from_time_text} and {to_time_text}"
        )

    def _now_until(self, duration_minutes):
        from_d = self.date.now()
        if duration_minutes is None:
            to_d = self.date.at(from_d.slot_end_time_index)
        else:
            to_d = self.date.at(from_d.time_index + int(duration_minutes) * 60000)
        return from_d.time_text, to_d.time_text

    def charge_now(self, duration_minutes=5):
        """Charge from now for `duration_minutes` (a short test charge by default)."""
        return self.charge_between(*self._now_until(duration_minutes))

    def discharge_now(self, duration_minutes=None):
        """Discharge from now, by default until the end of the current slot."""
        return self.discharge_between(*self._now_until(duration_minutes))

    def grid_only_now(self, duration_minutes=None):
        """Grid only from now, by default until the end of the current slot."""
        return self.grid_only_between(*self._now_until(duration_minutes))

    def reset_now(self):
        """Clear all charge and discharge windows and currents."""
        if self._is_post_4b00():
            resp = self.post_4b00_charge("00:00", "00:00", current=0)
        else:
            resp = self._rewrite_and_push("Solis charge")
        if resp.is_error:
            return resp
        return ActionResult.success("Inverter reset successfully")

    def reset_scheduled(self):
        """Reset, but only when called at local midnight."""
        if self.date.now().time_text == "00:00":
            return self.reset_now()
        return ActionResult.success("Inverter reset only done at midnight")

    def sync_clock(self):
        """Set the inverter clock to the local time if time sync is enabled."""
        if not self.settings.keep_inverter_time_synchronised:
            return ActionResult.success(
                "Agility is configured not to update the Inverter Time"
            )
        d = self.date.now()
        value = f"{d.iso_date_text} {d.full_time_text}"
        resp = self.client.control(CID_SET_TIME, value, "Solis set time")
        if resp.is_error:
            return resp
        return ActionResult.success("Inverter time updated successfully")
