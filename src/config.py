"""
This module provides the ConfigManager class for managing configuration settings
of the application. The configuration settings are stored in a 'config.yaml' file.
"""

import os
import sys
import logging
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

logger = logging.getLogger("__main__")
logger.info("[Config] loading module ")

VALID_SCHEDULE_ACTIONS = ("charge", "discharge", "grid_only")


class ConfigManager:
    """
    Manages the configuration settings for the application.

    This class handles loading, updating, and saving configuration settings from a 'config.yaml'
    file. If the configuration file does not exist, it creates one with default values and
    prompts the user to restart the application.
    """

    def __init__(self, given_dir):
        self.current_dir = given_dir
        self.config_file = os.path.join(self.current_dir, "config.yaml")
        self.yaml = YAML()
        self.yaml.default_flow_style = False
        self.yaml.indent(mapping=2, sequence=4, offset=2)
        self.yaml.preserve_quotes = True
        self.default_config = self.create_default_config()
        self.config = self.default_config.copy()
        self.load_config()

    def create_default_config(self):
        """
        Creates the default configuration with comments.
        """
        config = CommentedMap(
            {
                "solis_cloud": CommentedMap(
                    {
                        "inverter_sn": "",
                        "key": "",
                        "secret": "",
                        "endpoint": "https://www.soliscloud.com:13333",
                        "firmware_version": "",
                        "keep_inverter_time_synchronised": False,
                    }
                ),
                "battery": CommentedMap(
                    {
                        "charge_current": 50,
                        "discharge_current": 50,
                    }
                ),
                "agility": CommentedMap(
                    {
                        "charging_enabled": True,
                        "discharging_enabled": True,
                        "moving_average_period": 7,
                        "schedule": CommentedMap(),
                    }
                ),
                "storage": CommentedMap({"path": "agility_store.json"}),
                "update_interval": 10,
                "request_timeout": 30,
                "time_zone": "Europe/London",
                "log_level": "info",
            }
        )
        # solis cloud configuration
        config.yaml_set_comment_before_after_key(
            "solis_cloud", before="SolisCloud API access (Account -> Basic Settings -> API Management)"
        )
        config["solis_cloud"].yaml_add_eol_comment(
            "Serial number of the inverter", "inverter_sn"
        )
        config["solis_cloud"].yaml_add_eol_comment("API key id", "key")
        config["solis_cloud"].yaml_add_eol_comment("API key secret", "secret")
        config["solis_cloud"].yaml_add_eol_comment(
            "SolisCloud API endpoint - default: https://www.soliscloud.com:13333",
            "endpoint",
        )
        config["solis_cloud"].yaml_add_eol_comment(
            "Detected control dialect (pre-4B00 / post-4B00)"
            + " - leave empty to detect it again",
            "firmware_version",
        )
        config["solis_cloud"].yaml_add_eol_comment(
            "Set the inverter clock at midnight - default: false",
            "keep_inverter_time_synchronised",
        )
        # battery configuration
        config.yaml_set_comment_before_after_key("battery", before="Battery settings")
        config["battery"].yaml_add_eol_comment(
            "Charge current in A - default: 50", "charge_current"
        )
        config["battery"].yaml_add_eol_comment(
            "Discharge current in A - default: 50", "discharge_current"
        )
        # agility configuration
        config.yaml_set_comment_before_after_key(
            "agility",
            before="Charge / discharge control\n"
            + 'schedule: slot start -> charge, discharge or grid_only, e.g. "02:00": charge',
        )
        config["agility"].yaml_add_eol_comment(
            "Run scheduled charge, grid only and reset actions - default: true",
            "charging_enabled",
        )
        config["agility"].yaml_add_eol_comment(
            "Run scheduled discharge actions - default: true", "discharging_enabled"
        )
        config["agility"].yaml_add_eol_comment(
            "Number of complete days used for averages - default: 7",
            "moving_average_period",
        )
        config.yaml_set_comment_before_after_key("storage", before="Local data store")
        config["storage"].yaml_add_eol_comment(
            "JSON file holding telemetry and charge history", "path"
        )
        config.yaml_add_eol_comment(
            "Minutes between telemetry refreshes - default: 10", "update_interval"
        )
        config.yaml_add_eol_comment(
            "Timeout for SolisCloud requests in seconds - default: 30",
            "request_timeout",
        )
        config.yaml_add_eol_comment(
            "Default time zone - default: Europe/London", "time_zone"
        )
        config.yaml_add_eol_comment(
            "Log level for the application : debug, info, warning, error - default: info",
            "log_level",
        )
        return config

    def load_config(self):
        """
        Reads the configuration from 'config.yaml' file located in the current directory.
        If the file exists, it loads the configuration values.
        If the file does not exist, it creates a new 'config.yaml' file with default values and
        prompts the user to restart the application after configuring the settings.
        """
        if os.path.exists(self.config_file):
            with open(self.config_file, "r", encoding="utf-8") as f:
                loaded = self.yaml.load(f) or {}
            # keys missing in a loaded section keep their default
            for key, value in loaded.items():
                default = self.default_config.get(key)
                if isinstance(value, dict) and isinstance(default, dict):
                    for sub_key, sub_value in default.items():
                        value.setdefault(sub_key, sub_value)
                self.config[key] = value
            self.check_schedule()
        else:
            self.write_config()
            print("Config file not found. Created a new one with default values.")
            print(
                "Please restart the application after configuring the settings in config.yaml"
            )
            sys.exit(0)

    def write_config(self):
        """
        Writes the configuration to 'config.yaml' file located in the current directory.
        """
        logger.info("[Config] writing config file")
        with open(self.config_file, "w", encoding="utf-8") as config_file_handle:
            self.yaml.dump(self.config, config_file_handle)

    def check_schedule(self):
        """
        Drop schedule entries with an unknown action or an invalid slot time.
        """
        schedule = self.config.get("agility", {}).get("schedule") or {}
        for slot_time in list(schedule.keys()):
            action = schedule[slot_time]
            valid_time = (
                isinstance(slot_time, str)
                and len(slot_time) == 5
                and slot_time[2] == ":"
                and slot_time[3:] in ("00", "30")
                and slot_time[:2].isdigit()
                and int(slot_time[:2]) < 24
            )
            if not valid_time or action not in VALID_SCHEDULE_ACTIONS:
                logger.error(
                    "[Config] Ignoring schedule entry %s: %s", slot_time, action
                )
                del schedule[slot_time]

    def set_firmware_version(self, value):
        """
        Persist the detected inverter control dialect.
        """
        self.config["solis_cloud"]["firmware_version"] = value
        self.write_config()
