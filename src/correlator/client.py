# src/correlator/client.py
"""
HTTP client for the log correlation API.

Shows how an agent or a script can push batches of raw lines to the
server and read back what the correlation core made of them.

Usage:
    >>> client = IngestClient("http://localhost:8080", host="web-1")
    >>> client.send_lines("auth", ["Failed password for root from 10.0.0.5 port 22 ssh2"])
    >>> client.recent_alerts()
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)


class IngestClient:
    """Pushes log batches to /ingest and reads snapshots back."""

    def __init__(self, api_url: str = "http://localhost:8080", host: str = "",
                 session: Optional[requests.Session] = None, timeout: float = 5.0) -> None:
        """
        Initialize the client.

        Args:
            api_url: Base URL of the correlation API
            host: Host name reported for every batch
            session: HTTP session to use; any object with requests' get/post
                     interface works
            timeout: Per-request timeout in seconds
        """
        self.api_url = api_url.rstrip("/")
        self.host = host
        self.session = session or requests.Session()
        self.timeout = timeout

    def send_batch(self, entries: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
        """
        Send (source, message) entries as one batch.

        Returns:
            The server's ingest response

        Raises:
            requests.HTTPError: the server rejected the batch
        """
        body = {
            "type": "logs",
            "host": self.host,
            "batch": [{"source": source, "message": message} for source, message in entries],
        }
        response = self.session.post(f"{self.api_url}/ingest", json=body, timeout=self.timeout)
        response.raise_for_status()
        result = response.json()
        logger.debug("Sent %d lines, %d alerts", result["processed"], result["alerts"])
        return result

    def send_lines(self, source: str, lines: Iterable[str]) -> Dict[str, Any]:
        """Send raw lines that all come from the same source."""
        return self.send_batch((source, line) for line in lines)

    def recent_logs(self, limit: int = 100) -> List[Dict[str, Any]]:
        response = self.session.get(f"{self.api_url}/logs/normalized",
                                    params={"limit": limit}, timeout=self.timeout)
        response.raise_for_status()
        return response.json()["logs"]

    def recent_alerts(self, limit: int = 50) -> List[Dict[str, Any]]:
        response = self.session.get(f"{self.api_url}/alerts/v2",
                                    params={"limit": limit}, timeout=self.timeout)
        response.raise_for_status()
        return response.json()["alerts"]

    def health(self) -> Dict[str, Any]:
        response = self.session.get(f"{self.api_url}/health", timeout=self.timeout)
        response.raise_for_status()
        return response.json()
