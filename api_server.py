#!/usr/bin/env python3
"""
Launcher for the log correlation API server.

Agents stream batches to ws://<host>:8080/ws; the dashboard polls
/logs/normalized, /alerts/v2 and /health.

Usage:
    python api_server.py

Environment:
    CORRELATOR_HOST         bind address (default 0.0.0.0)
    CORRELATOR_PORT         bind port (default 8080)
    CORRELATOR_WINDOW_MODE  "fixed" or "sliding" bruteforce window (default fixed)
    CORRELATOR_ALERT_LOG    NDJSON alert journal path (default: disabled)
    CORRELATOR_LOG_FILE     activity log file (default: stderr)
"""

from correlator.api.server import main

if __name__ == "__main__":
    main()
