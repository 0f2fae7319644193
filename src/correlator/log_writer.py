# src/correlator/log_writer.py
"""
Logging for the correlation pipeline.

This module configures the process-wide activity log and provides the
AlertLogWriter, which reports every raised alert to the activity log and
optionally to an NDJSON alert journal for offline analysis.
"""

import json
import logging
import pathlib
import threading
from typing import Iterable, Optional

from .event import Alert

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def configure_logging(level: int = logging.INFO, filename: Optional[str] = None) -> None:
    """
    Configure the activity log.

    Args:
        level: Minimum level to record
        filename: Append to this file instead of stderr; parent directories
                  are created when missing
    """
    if filename:
        pathlib.Path(filename).parent.mkdir(parents=True, exist_ok=True)
        logging.basicConfig(level=level, filename=filename, format=LOG_FORMAT, filemode="a")
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT)


class AlertLogWriter:
    """
    Reports alerts as they are raised.

    Every alert goes to the activity log at WARNING level. When a journal
    path is given, alerts are also appended there as NDJSON records. The
    journal is an audit trail only and is never read back into the store.

    Example:
        >>> writer = AlertLogWriter("logs/alerts.jsonl")
        >>> writer.write(engine.check(log))
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self._file_lock = threading.Lock()
        if path:
            pathlib.Path(path).parent.mkdir(parents=True, exist_ok=True)

    def write(self, alerts: Iterable[Alert]) -> None:
        alerts = list(alerts)
        for alert in alerts:
            logger.warning("ALERT [%s] %.2f: %s", alert.severity.value, alert.score, alert.message)

        if not self.path or not alerts:
            return

        try:
            with self._file_lock, open(self.path, "a", encoding="utf-8") as f:
                for alert in alerts:
                    f.write(json.dumps(alert.to_dict()) + "\n")
        except OSError as e:
            logger.error("Failed to write alert journal %s: %s", self.path, e)
