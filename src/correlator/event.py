# src/correlator/event.py
"""
Event data structures for the log correlation system.

This module defines the NormalizedLog and Alert dataclasses that flow through
the pipeline: the normalizer produces NormalizedLog records, the rule engine
turns them into Alert records, and the event store retains both.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict


class EventType(str, Enum):
    """Closed set of event classifications produced by the normalizer."""
    SSH_FAILED = "ssh_failed"
    SSH_SUCCESS = "ssh_success"
    SUDO = "sudo"
    METRICS = "metrics"
    GENERIC = "generic"


class Severity(str, Enum):
    """Alert severity levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class NormalizedLog:
    """
    A raw log line converted into a structured security event.

    Instances are immutable: once the normalizer builds one it is shared
    between the event store, the rule engine and any alert that references it.

    Attributes:
        timestamp: When the line was normalized (timezone-aware, UTC).
        host: Host that shipped the line.
        source: Logical source on that host, for example "auth" or
               "/var/log/syslog".
        message: The line with surrounding whitespace stripped.
        raw: The line exactly as it was received.
        level: Heuristic level - "error", "warn", "security" or "info".
        event_type: Classification of the line.
        src_ip: Remote address for SSH events, empty when absent.
        dst_port: Port as a decimal string, empty when absent.
        user: Account name for SSH and sudo events, empty when absent.
        pid: Numeric tty token for sudo events, 0 when absent.

    Example:
        >>> from datetime import datetime, timezone
        >>> log = NormalizedLog(
        ...     timestamp=datetime.now(timezone.utc),
        ...     host="web-1",
        ...     source="auth",
        ...     message="Accepted publickey for alice from 10.0.0.9",
        ...     raw="Accepted publickey for alice from 10.0.0.9",
        ...     level="info",
        ...     event_type=EventType.SSH_SUCCESS,
        ...     user="alice",
        ...     src_ip="10.0.0.9",
        ... )
    """
    timestamp: datetime
    host: str
    source: str
    message: str
    raw: str
    level: str
    event_type: EventType = EventType.GENERIC
    src_ip: str = ""
    dst_port: str = ""
    user: str = ""
    pid: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Render the log in its wire shape."""
        return {
            "ts": self.timestamp.isoformat(),
            "host": self.host,
            "source": self.source,
            "msg": self.message,
            "level": self.level,
            "event_type": self.event_type.value,
            "src_ip": self.src_ip,
            "dst_port": self.dst_port,
            "user": self.user,
            "pid": self.pid,
            "raw": self.raw,
        }

    def to_legacy_dict(self) -> Dict[str, Any]:
        """Render the log in the legacy agent shape (ts, host, source, msg, level)."""
        return {
            "ts": self.timestamp.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "host": self.host,
            "source": self.source,
            "msg": self.message,
            "level": self.level,
        }


@dataclass(frozen=True)
class Alert:
    """
    Result of a correlation rule firing on a normalized log.

    Attributes:
        id: Sequence number assigned by the rule engine that raised it.
        rule: Rule name, for example "SSH_BRUTEFORCE".
        severity: LOW, MEDIUM or HIGH.
        score: Confidence score, roughly in [0, 1]. Bruteforce scores keep
               growing past 1.0 for sustained attacks.
        message: Human readable description.
        source_log: The log that triggered the rule.
        raised_at: When the rule engine raised the alert.
    """
    id: int
    rule: str
    severity: Severity
    score: float
    message: str
    source_log: NormalizedLog
    raised_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule": self.rule,
            "severity": self.severity.value,
            "score": self.score,
            "message": self.message,
            "log": self.source_log.to_dict(),
            "alert_ts": self.raised_at.isoformat(),
        }
