# src/correlator/normalizer.py
"""
Log line normalization.

Turns free-text log lines into NormalizedLog records. Classification runs
over an ordered tuple of line matchers; the first matcher whose pattern is
found in the line decides the event type and which fields are extracted.
The level heuristic is computed before classification and only ever
overridden afterwards by matchers that force a level.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from re import Match, Pattern
from typing import Any, Callable, Dict, Optional, Tuple

from .event import EventType, NormalizedLog

Clock = Callable[[], datetime]

_IPV4 = r"\d{1,3}(?:\.\d{1,3}){3}"

SSH_FAILED_PASSWORD_RE = re.compile(
    r"Failed password for (?:invalid user )?(?P<user>\S*) from (?P<src_ip>" + _IPV4 + r")"
    r"(?:(?: port |:)(?P<port>\d+))?"
)
SSH_INVALID_USER_RE = re.compile(
    r"[Ii]nvalid user (?P<user>\S*) from (?P<src_ip>" + _IPV4 + r")"
    r"(?:(?: port |:)(?P<port>\d+))?"
)
SSH_FAILED_LITERAL_RE = re.compile(r"Failed password")

SSH_ACCEPTED_RE = re.compile(
    r"Accepted (?:password|publickey) for (?P<user>\S+) from (?P<src_ip>" + _IPV4 + r")"
)
SSH_ACCEPTED_LITERAL_RE = re.compile(r"Accepted password")

SUDO_RE = re.compile(
    r"sudo: +(?P<user>\S+) : (?:[^;:]+ ; )?TTY=(?:pts/(?P<pts>\d+)|\S+) ; PWD="
)

CPU_MEM_RE = re.compile(r"CPU:(?P<cpu>[\d.]+)% MEM:(?P<mem>[\d.]+)%")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_level(line: str) -> str:
    """Heuristic level from substrings of the lowercased line."""
    lowered = line.lower()
    if "error" in lowered or "failed" in lowered:
        return "error"
    if "warn" in lowered:
        return "warn"
    if "auth" in lowered or "sudo" in lowered or "password" in lowered:
        return "security"
    return "info"


def _to_port(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return str(int(value))
    except ValueError:
        return ""


def _to_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        return 0.0
    # float() overflows long digit runs to inf instead of failing
    return number if math.isfinite(number) else 0.0


def _no_fields(match: Match) -> Dict[str, Any]:
    return {}


def _auth_fields(match: Match) -> Dict[str, Any]:
    groups = match.groupdict()
    return {
        "user": groups.get("user") or "",
        "src_ip": groups.get("src_ip") or "",
        "dst_port": _to_port(groups.get("port")),
    }


def _sudo_fields(match: Match) -> Dict[str, Any]:
    pts = match.group("pts")
    return {
        "user": match.group("user"),
        "pid": int(pts) if pts else 0,
    }


@dataclass(frozen=True)
class LineMatcher:
    """A tagged pattern: event type, regex, field extractor and optional forced level."""
    event_type: EventType
    pattern: Pattern
    extract: Callable[[Match], Dict[str, Any]]
    force_level: Optional[str] = None


# Priority order matters: failure lines also trip the level heuristic, and a
# success line may mention a failure keyword.
LINE_MATCHERS: Tuple[LineMatcher, ...] = (
    LineMatcher(EventType.SSH_FAILED, SSH_FAILED_PASSWORD_RE, _auth_fields),
    LineMatcher(EventType.SSH_FAILED, SSH_INVALID_USER_RE, _auth_fields),
    LineMatcher(EventType.SSH_FAILED, SSH_FAILED_LITERAL_RE, _no_fields),
    LineMatcher(EventType.SSH_SUCCESS, SSH_ACCEPTED_RE, _auth_fields, force_level="info"),
    LineMatcher(EventType.SSH_SUCCESS, SSH_ACCEPTED_LITERAL_RE, _no_fields, force_level="info"),
    LineMatcher(EventType.SUDO, SUDO_RE, _sudo_fields),
    LineMatcher(EventType.METRICS, CPU_MEM_RE, _no_fields, force_level="info"),
)


def extract_metrics(message: str) -> Tuple[float, float]:
    """
    Pull CPU and memory percentages out of a metrics line.

    Returns (0.0, 0.0) when the line carries no metrics; a value that does
    not parse as a finite float is reported as 0.0.
    """
    m = CPU_MEM_RE.search(message)
    if not m:
        return 0.0, 0.0
    return _to_float(m.group("cpu")), _to_float(m.group("mem"))


class LogNormalizer:
    """
    Stateless log line normalizer.

    The only dependency is the clock used to stamp records, so tests can
    inject a fixed one and get fully deterministic output.

    Example:
        >>> normalizer = LogNormalizer()
        >>> log = normalizer.normalize("auth", "web-1",
        ...     "Failed password for invalid user admin from 10.0.0.5 port 2222")
        >>> log.event_type, log.user, log.src_ip, log.dst_port
        (<EventType.SSH_FAILED: 'ssh_failed'>, 'admin', '10.0.0.5', '2222')
    """

    def __init__(self, clock: Optional[Clock] = None,
                 matchers: Tuple[LineMatcher, ...] = LINE_MATCHERS) -> None:
        self._clock = clock or _utc_now
        self._matchers = matchers

    def classify(self, line: str) -> Tuple[EventType, Dict[str, Any], Optional[str]]:
        """Return (event_type, extracted fields, forced level) for a line."""
        for matcher in self._matchers:
            m = matcher.pattern.search(line)
            if m:
                return matcher.event_type, matcher.extract(m), matcher.force_level
        return EventType.GENERIC, {}, None

    def normalize(self, source: str, host: str, raw_line: str) -> NormalizedLog:
        """
        Convert one raw line into a NormalizedLog.

        Never raises: an unrecognized line becomes a generic event carrying
        only message, raw and level.
        """
        level = parse_level(raw_line)
        event_type, fields, forced_level = self.classify(raw_line)
        if forced_level:
            level = forced_level

        return NormalizedLog(
            timestamp=self._clock(),
            host=host,
            source=source,
            message=raw_line.strip(),
            raw=raw_line,
            level=level,
            event_type=event_type,
            **fields,
        )


def normalize_line(source: str, host: str, raw_line: str,
                   clock: Optional[Clock] = None) -> NormalizedLog:
    """Convenience wrapper around LogNormalizer.normalize."""
    return LogNormalizer(clock).normalize(source, host, raw_line)
