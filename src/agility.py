"""
Solis agility daemon: keeps a rolling history of Solis inverter telemetry pulled from
SolisCloud and switches the inverter between charge, discharge and grid only at the
half hour slot boundaries configured in config.yaml.
"""

import os
import sys
from datetime import datetime
import logging
import pytz
from version import __version__
from config import ConfigManager
from log_handler import MemoryLogHandler
from interfaces.charge_history import ChargeHistory
from interfaces.control_state import AgilityState
from interfaces.date_utility import DateUtility
from interfaces.hierarchical_store import JsonFileStore
from interfaces.inverter_solis import SolisInverter
from interfaces.price_lookup import PriceLookup
from interfaces.scheduling import SchedulingOperations
from interfaces.slot_scheduler import AgilityScheduler
from interfaces.solis_cloud import SolisCloudClient, SolisCloudSettings
from interfaces.statistics import StatisticsEngine
from interfaces.timeseries_store import TimeSeriesStore

# Check Python version early
if sys.version_info < (3, 11):
    sys.stderr.write(
        f"ERROR: Python 3.11 or higher is required. "
        f"You are running Python {sys.version_info.major}.{sys.version_info.minor}\n"
    )
    sys.stderr.write("Please upgrade your Python installation.\n")
    sys.exit(1)


###################################################################################################
# Custom formatter to use the configured timezone
class TimezoneFormatter(logging.Formatter):
    """
    A custom logging formatter that formats log timestamps according to a specified timezone.
    """

    def __init__(self, fmt=None, datefmt=None, tz=None):
        super().__init__(fmt, datefmt)
        self.tz = tz

    def formatTime(self, record, datefmt=None):
        record_time = datetime.fromtimestamp(record.created, self.tz)
        return record_time.strftime(datefmt or self.default_time_format)


###################################################################################################
LOGLEVEL = logging.DEBUG  # start before reading the config file
logger = logging.getLogger(__name__)

basic_formatter = logging.Formatter(
    "%(asctime)s %(levelname)s %(message)s", "%Y-%m-%d %H:%M:%S"
)
streamhandler = logging.StreamHandler(sys.stdout)
streamhandler.setFormatter(basic_formatter)
logger.addHandler(streamhandler)
logger.setLevel(LOGLEVEL)
logger.info("[Main] Starting solis agility - version: %s", __version__)

###################################################################################################
base_path = os.path.dirname(os.path.abspath(__file__))
# get param to set a specific path
if len(sys.argv) > 1:
    current_dir = sys.argv[1]
else:
    current_dir = base_path

###################################################################################################
config_manager = ConfigManager(current_dir)
try:
    time_zone = pytz.timezone(config_manager.config["time_zone"])
except pytz.UnknownTimeZoneError:
    logger.warning(
        "[Config] Unknown time_zone %r; defaulting to Europe/London",
        config_manager.config["time_zone"],
    )
    time_zone = pytz.timezone("Europe/London")

LOGLEVEL = str(config_manager.config["log_level"]).upper()
logger.setLevel(LOGLEVEL)

timezone_formatter = TimezoneFormatter(
    "%(asctime)s %(levelname)s %(message)s", "%Y-%m-%d %H:%M:%S", tz=time_zone
)
streamhandler.setFormatter(timezone_formatter)

memory_handler = MemoryLogHandler(
    max_records=10000,  # All log entries (mixed levels)
    max_alerts=1000,  # Dedicated alert buffer (WARNING/ERROR/CRITICAL only)
)
memory_handler.setFormatter(timezone_formatter)
logger.addHandler(memory_handler)
logger.info("[Main] Memory log handler installed")

###################################################################################################
update_interval = config_manager.config["update_interval"]
try:
    update_interval = int(update_interval)
except (TypeError, ValueError):
    logger.warning(
        "[Config] Invalid update_interval (%r); defaulting to 10", update_interval
    )
    update_interval = 10
update_interval = max(update_interval, 1)

date_utility = DateUtility(time_zone.zone)

store_path = config_manager.config["storage"]["path"]
if not os.path.isabs(store_path):
    store_path = os.path.join(current_dir, store_path)
store = JsonFileStore(store_path)

solis_settings = SolisCloudSettings.from_config(config_manager.config["solis_cloud"])
solis_client = SolisCloudClient(
    solis_settings, timeout=config_manager.config["request_timeout"]
)
inverter_interface = SolisInverter(
    solis_client,
    date_utility,
    charge_current=config_manager.config["battery"]["charge_current"],
    discharge_current=config_manager.config["battery"]["discharge_current"],
    on_firmware_version_detected=config_manager.set_firmware_version,
)

agility_state = AgilityState.from_config(config_manager.config["agility"])
timeseries_store = TimeSeriesStore(store)
price_lookup = PriceLookup(store)
statistics_engine = StatisticsEngine(timeseries_store, price_lookup, date_utility)
charge_history = ChargeHistory(store)

scheduling_operations = SchedulingOperations(
    inverter_interface,
    solis_client,
    timeseries_store,
    statistics_engine,
    charge_history,
    agility_state,
    date_utility,
)

agility_scheduler = AgilityScheduler(
    scheduling_operations,
    date_utility,
    schedule=config_manager.config["agility"]["schedule"],
    update_interval=update_interval * 60,  # convert to seconds
)

###################################################################################################
if __name__ == "__main__":
    try:
        logger.info(
            "[Main] Inverter %s - firmware dialect: %s",
            solis_settings.inverter_sn or "(not configured)",
            solis_settings.firmware_version or "not detected yet",
        )
        logger.info(
            "[Main] Schedule: %s",
            ", ".join(
                f"{slot} {action}" for slot, action in agility_scheduler.schedule.items()
            )
            or "empty",
        )
        agility_scheduler.start()
        agility_scheduler.wait()

    except KeyboardInterrupt:
        logger.info("[Main] Shutting down solis agility (user requested)")
        agility_scheduler.shutdown()
        solis_client.close()
        buffer_stats = memory_handler.get_buffer_stats()
        recent_alerts = memory_handler.get_alerts(limit=10)
        logger.info(
            "[Main] %s warnings/errors recorded this run (%s log entries buffered)",
            buffer_stats["alert_buffer"]["current_size"],
            buffer_stats["main_buffer"]["current_size"],
        )
        for alert in recent_alerts:
            logger.info(
                "[Main]   %s %s %s",
                alert["timestamp"],
                alert["level"],
                alert["message"],
            )
        logger.info("[Main] Agility stopped gracefully")
    finally:
        logging.shutdown()  # This will call close() on all handlers
        sys.exit(0)
