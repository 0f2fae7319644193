# src/correlator/rules.py
"""
Correlation rules engine for normalized log events.

This module contains the detection logic that turns normalized logs into
alerts: SSH bruteforce, suspicious logins, sudo privilege escalation and
resource exhaustion. Only the bruteforce rule is stateful; it keeps a
per-source-IP failure counter bounded by a time window.
"""

import itertools
import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Dict, List, Optional

from .event import Alert, EventType, NormalizedLog, Severity
from .normalizer import extract_metrics

WINDOW_FIXED = "fixed"
WINDOW_SLIDING = "sliding"


class DetectionConfig:
    """Configuration constants for correlation rules."""

    # SSH bruteforce detection
    BRUTEFORCE_THRESHOLD = 5
    BRUTEFORCE_SCORE_DENOMINATOR = 5.0
    FAILURE_WINDOW = timedelta(minutes=5)

    # Successful logins to watched account names
    SUSPICIOUS_USERS = ("root", "admin", "test", "ubuntu", "pi")
    SUSPICIOUS_LOGIN_SCORE = 0.8

    # Sudo to a shell by a non-root user
    SUDO_SHELL_MARKERS = ("/bin/sh",)
    SUDO_PRIVESC_SCORE = 0.95

    # Resource exhaustion
    RESOURCE_LIMIT_PERCENT = 90.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RuleEngine:
    """
    Stateful correlation engine.

    Dispatches each normalized log to at most one check based on its event
    type and returns the alerts that check raised. The engine owns its
    failure counters; every call to check() runs under the engine's lock,
    so one instance can be shared by all ingestion workers.

    Two window modes are supported for the bruteforce counter:
    - "fixed" (default): all counters are dropped together once the window
      has elapsed since the last reset, regardless of per-IP activity.
    - "sliding": each failure expires FAILURE_WINDOW after it happened, and
      idle addresses are swept once per window.

    Example:
        >>> engine = RuleEngine()
        >>> alerts = engine.check(log)
        >>> for alert in alerts:
        ...     print(alert.rule, alert.score)
    """

    def __init__(self,
                 config=DetectionConfig,
                 clock: Optional[Callable[[], datetime]] = None,
                 window_mode: str = WINDOW_FIXED) -> None:
        """
        Initialize the engine.

        Args:
            config: Class (or object) exposing the DetectionConfig attributes
            clock: Callable returning the current aware datetime; injectable
                   so window behaviour can be tested without sleeping
            window_mode: "fixed" or "sliding"
        """
        if window_mode not in (WINDOW_FIXED, WINDOW_SLIDING):
            raise ValueError(f"Unknown window mode: {window_mode!r}")

        self.config = config
        self.window_mode = window_mode
        self._clock = clock or _utc_now
        self._lock = threading.Lock()
        self._alert_ids = itertools.count(1)

        self._failed_logins: Dict[str, int] = {}
        self._failure_times: Dict[str, Deque[datetime]] = defaultdict(deque)
        self._last_reset = self._clock()

        self._checks = {
            EventType.SSH_FAILED: self._check_ssh_bruteforce,
            EventType.SSH_SUCCESS: self._check_suspicious_success,
            EventType.SUDO: self._check_sudo_abuse,
            EventType.METRICS: self._check_resource_exhaustion,
        }

    # ------------------------------------------------------------------
    # Window management
    # ------------------------------------------------------------------

    @staticmethod
    def _clean_sliding_window(window: Deque[datetime], current_time: datetime,
                              max_age: timedelta) -> None:
        """Remove expired entries from a sliding time window."""
        while window and current_time - window[0] > max_age:
            window.popleft()

    def _reset_window(self, now: datetime) -> None:
        if now - self._last_reset <= self.config.FAILURE_WINDOW:
            return

        if self.window_mode == WINDOW_FIXED:
            self._failed_logins = {}
        else:
            for ip in list(self._failure_times):
                window = self._failure_times[ip]
                self._clean_sliding_window(window, now, self.config.FAILURE_WINDOW)
                if not window:
                    del self._failure_times[ip]
        self._last_reset = now

    def _record_failure(self, ip: str, now: datetime) -> int:
        if self.window_mode == WINDOW_FIXED:
            self._failed_logins[ip] = self._failed_logins.get(ip, 0) + 1
            return self._failed_logins[ip]

        window = self._failure_times[ip]
        window.append(now)
        self._clean_sliding_window(window, now, self.config.FAILURE_WINDOW)
        return len(window)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _alert(self, rule: str, severity: Severity, score: float, message: str,
               log: NormalizedLog, now: datetime) -> Alert:
        return Alert(
            id=next(self._alert_ids),
            rule=rule,
            severity=severity,
            score=score,
            message=message,
            source_log=log,
            raised_at=now,
        )

    def _check_ssh_bruteforce(self, log: NormalizedLog, now: datetime) -> Optional[Alert]:
        """Repeated authentication failures from one address."""
        if not log.src_ip:
            return None

        count = self._record_failure(log.src_ip, now)
        if count >= self.config.BRUTEFORCE_THRESHOLD:
            return self._alert(
                "SSH_BRUTEFORCE", Severity.HIGH,
                count / self.config.BRUTEFORCE_SCORE_DENOMINATOR,
                f"SSH bruteforce from {log.src_ip}: {count} attempts",
                log, now,
            )
        return None

    def _check_suspicious_success(self, log: NormalizedLog, now: datetime) -> Optional[Alert]:
        """Successful login to a commonly targeted account name."""
        user = log.user.lower()
        for watched in self.config.SUSPICIOUS_USERS:
            if watched in user:
                return self._alert(
                    "SUSPICIOUS_LOGIN", Severity.MEDIUM,
                    self.config.SUSPICIOUS_LOGIN_SCORE,
                    f"Suspicious login {log.user} from {log.src_ip}",
                    log, now,
                )
        return None

    def _check_sudo_abuse(self, log: NormalizedLog, now: datetime) -> Optional[Alert]:
        """Non-root user spawning a shell through sudo."""
        if log.user == "root":
            return None
        if any(marker in log.message for marker in self.config.SUDO_SHELL_MARKERS):
            return self._alert(
                "SUDO_PRIVESC", Severity.HIGH,
                self.config.SUDO_PRIVESC_SCORE,
                f"Sudo priv esc attempt by {log.user}",
                log, now,
            )
        return None

    def _check_resource_exhaustion(self, log: NormalizedLog, now: datetime) -> Optional[Alert]:
        """CPU or memory above the configured limit."""
        cpu, mem = extract_metrics(log.message)
        limit = self.config.RESOURCE_LIMIT_PERCENT
        if cpu > limit or mem > limit:
            return self._alert(
                "RESOURCE_EXHAUSTION", Severity.MEDIUM,
                max(cpu, mem) / 100.0,
                f"High resources: CPU {cpu:.1f}% MEM {mem:.1f}%",
                log, now,
            )
        return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check(self, log: NormalizedLog) -> List[Alert]:
        """
        Evaluate a normalized log against the rule set.

        Args:
            log: Event produced by the normalizer

        Returns:
            Alerts raised by the matching check, empty when none fired or the
            event type has no check
        """
        with self._lock:
            now = self._clock()
            self._reset_window(now)

            check = self._checks.get(log.event_type)
            if check is None:
                return []
            alert = check(log, now)
            return [alert] if alert else []

    def failure_count(self, ip: str) -> int:
        """Current failure count for an address (0 when untracked)."""
        with self._lock:
            if self.window_mode == WINDOW_FIXED:
                return self._failed_logins.get(ip, 0)
            now = self._clock()
            window = self._failure_times.get(ip, ())
            return sum(1 for seen in window if now - seen <= self.config.FAILURE_WINDOW)

    def tracked_sources(self) -> int:
        """Number of distinct source addresses currently holding a counter."""
        with self._lock:
            if self.window_mode == WINDOW_FIXED:
                return len(self._failed_logins)
            return len(self._failure_times)

    def reset(self) -> None:
        """Drop every counter and restart the window."""
        with self._lock:
            self._failed_logins = {}
            self._failure_times.clear()
            self._last_reset = self._clock()
