"""
In-memory logging handler keeping the recent operator-visible log of the agility
daemon (scheduling outcomes, API failures) for later inspection.
"""

import logging
import collections
from datetime import datetime
from threading import RLock


class MemoryLogHandler(logging.Handler):
    """
    Logging handler storing formatted log entries in a ring buffer.
    WARNING and above are additionally kept in a separate alert buffer so they are
    not pushed out by routine INFO/DEBUG traffic.
    """

    alert_levels = {"WARNING", "ERROR", "CRITICAL"}

    def __init__(self, max_records=1000, max_alerts=1000):
        super().__init__()
        self.max_records = max_records
        self.max_alerts = max_alerts
        self.records = collections.deque(maxlen=max_records)
        self.alert_records = collections.deque(maxlen=max_alerts)
        self.buffer_lock = RLock()

    def emit(self, record):
        """Store the log record in memory"""
        try:
            tz = getattr(self.formatter, "tz", None) if self.formatter else None
            entry = {
                "timestamp": datetime.fromtimestamp(record.created, tz).isoformat(),
                "level": record.levelname,
                "message": record.getMessage(),
                "module": record.name,
                "funcName": record.funcName,
                "lineno": record.lineno,
            }
        except (TypeError, ValueError):
            self.handleError(record)
            return
        with self.buffer_lock:
            self.records.append(entry)
            if record.levelname in self.alert_levels:
                self.alert_records.append(entry)

    def get_alerts(self, limit=None):
        """Retrieve the WARNING/ERROR/CRITICAL entries"""
        with self.buffer_lock:
            alerts = list(self.alert_records)
        if limit and limit > 0:
            alerts = alerts[-limit:]
        return alerts

    def clear_logs(self):
        """Clear both buffers"""
        with self.buffer_lock:
            self.records.clear()
            self.alert_records.clear()

    def get_buffer_stats(self):
        """Buffer usage statistics"""
        with self.buffer_lock:
            return {
                "main_buffer": {
                    "current_size": len(self.records),
                    "max_size": self.max_records,
                },
                "alert_buffer": {
                    "current_size": len(self.alert_records),
                    "max_size": self.max_alerts,
                },
            }

    def close(self):
        """
        Close the handler (called by logging framework).
        """
        self.clear_logs()
        super().close()
