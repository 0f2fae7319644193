# src/correlator/__init__.py
"""
Log Correlation Core

Normalizes raw log lines from many hosts into structured security events,
correlates them into alerts and keeps a bounded window of both in memory.
"""

from .batch import LogBatch, LogEntry, decode_batch
from .coordinator import BatchOutcome, IngestionCoordinator
from .errors import BatchDecodeError, CoordinatorClosedError, CorrelatorError
from .event import Alert, EventType, NormalizedLog, Severity
from .log_writer import AlertLogWriter, configure_logging
from .normalizer import LogNormalizer, normalize_line
from .rules import DetectionConfig, RuleEngine
from .store import EventStore

__version__ = "2.0.0"

__all__ = [
    'Alert',
    'AlertLogWriter',
    'BatchDecodeError',
    'BatchOutcome',
    'CoordinatorClosedError',
    'CorrelatorError',
    'DetectionConfig',
    'EventStore',
    'EventType',
    'IngestionCoordinator',
    'LogBatch',
    'LogEntry',
    'LogNormalizer',
    'NormalizedLog',
    'RuleEngine',
    'Severity',
    'configure_logging',
    'decode_batch',
    'normalize_line',
]
