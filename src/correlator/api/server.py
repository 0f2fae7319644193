#!/usr/bin/env python3
"""
FastAPI server for the log correlation core.

Agents push batches of raw log lines over a WebSocket (or plain HTTP) and
the dashboard polls snapshots of normalized logs and alerts.

Key Features:
- WebSocket ingestion with a per-connection ordered queue
- HTTP batch ingestion for agents that cannot hold a socket open
- Snapshot endpoints for recent logs and alerts
- Health counters for the store and the rule engine

Usage:
    correlator-server
    uvicorn correlator.api.server:create_app --factory --port 8080
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from .. import __version__
from ..batch import LogBatch
from ..coordinator import IngestionCoordinator
from ..errors import BatchDecodeError, CoordinatorClosedError
from ..log_writer import AlertLogWriter, configure_logging
from ..rules import RuleEngine

logger = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 100
DEFAULT_ALERT_LIMIT = 50

DASHBOARD_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://localhost",
]


# =============================================================================
# Pydantic Models for API Responses
# =============================================================================

class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str = Field(..., description="Server health status")
    normalized_logs: int = Field(..., description="Normalized logs currently retained")
    alerts_v2: int = Field(..., description="Alerts currently retained")
    active_bruteforces: int = Field(..., description="Source IPs tracked by the bruteforce rule")
    uptime_seconds: float = Field(..., description="Server uptime in seconds")
    version: str = Field(..., description="API version")
    timestamp: str = Field(..., description="Current server timestamp")


class IngestResponse(BaseModel):
    """Response model for HTTP batch ingestion."""
    status: str = Field(..., description="Processing status")
    host: str = Field(..., description="Host the batch was attributed to")
    processed: int = Field(..., description="Entries normalized and stored")
    alerts: int = Field(..., description="Alerts raised by the batch")


# =============================================================================
# FastAPI Application Setup
# =============================================================================

def create_app(coordinator: Optional[IngestionCoordinator] = None) -> FastAPI:
    """
    Build the API around a coordinator.

    Args:
        coordinator: Pipeline to serve; a fresh one with default settings
                     is created when omitted
    """
    coordinator = coordinator or IngestionCoordinator()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, draining queued batches")
        drained = await run_in_threadpool(coordinator.shutdown, 10.0)
        if not drained:
            logger.warning("Shutdown timeout - some connection workers may still be running")

    app = FastAPI(
        title="Log Correlation API",
        description="Log normalization and correlation for SSH, sudo and host metrics",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.coordinator = coordinator
    app.state.started_at = datetime.now(timezone.utc)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=DASHBOARD_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # =========================================================================
    # API Endpoints
    # =========================================================================

    @app.get("/", response_model=Dict[str, str])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Log Correlation API",
            "version": __version__,
            "status": "running",
            "health": "/health",
            "ingest": "/ws",
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check with store and rule engine counters."""
        now = datetime.now(timezone.utc)
        return HealthResponse(
            status="healthy",
            uptime_seconds=(now - app.state.started_at).total_seconds(),
            version=__version__,
            timestamp=now.isoformat(),
            **coordinator.health(),
        )

    @app.websocket("/ws")
    async def ingest_socket(websocket: WebSocket):
        """
        Agent ingestion socket.

        Every message is one batch. The reply is "OK" once the batch has been
        processed, or "ERROR: <reason>" when it was rejected.
        """
        await websocket.accept()
        connection_id = f"ws-{uuid4().hex[:12]}"
        peer = websocket.client.host if websocket.client else "unknown"
        logger.info("Agent %s connected as %s", peer, connection_id)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                payload = message.get("text")
                if payload is None:
                    payload = message.get("bytes") or b""

                try:
                    future = coordinator.submit(connection_id, payload)
                except CoordinatorClosedError:
                    await websocket.close(code=1012)
                    break

                try:
                    await asyncio.wrap_future(future)
                except BatchDecodeError as e:
                    await websocket.send_text(f"ERROR: {e}")
                    continue
                except Exception:
                    # Already logged by the connection worker
                    await websocket.send_text("ERROR: internal error")
                    continue
                await websocket.send_text("OK")
        finally:
            coordinator.close_connection(connection_id)
            logger.info("Agent %s disconnected", connection_id)

    @app.post("/ingest", response_model=IngestResponse)
    async def ingest_batch(batch: LogBatch):
        """Process one batch delivered over plain HTTP, in a worker thread."""
        try:
            outcome = await run_in_threadpool(coordinator.process_batch, batch)
        except CoordinatorClosedError:
            raise HTTPException(status_code=503, detail="Ingestion is shutting down")

        return IngestResponse(
            status="processed",
            host=outcome.host,
            processed=outcome.processed,
            alerts=len(outcome.alerts),
        )

    @app.get("/logs/normalized")
    async def normalized_logs(limit: int = DEFAULT_LOG_LIMIT) -> Dict[str, Any]:
        """Most recent normalized logs, oldest first."""
        logs = coordinator.store.snapshot_logs(limit)
        return {"logs": [log.to_dict() for log in logs]}

    @app.get("/alerts/v2")
    async def alerts_v2(limit: int = DEFAULT_ALERT_LIMIT) -> Dict[str, Any]:
        """Most recent alerts, oldest first."""
        alerts = coordinator.store.snapshot_alerts(limit)
        return {"alerts": [alert.to_dict() for alert in alerts]}

    @app.get("/logs")
    async def legacy_logs() -> Dict[str, Any]:
        """Recent logs in the legacy agent shape."""
        logs = coordinator.store.snapshot_logs(DEFAULT_LOG_LIMIT)
        return {"logs": [log.to_legacy_dict() for log in logs]}

    @app.get("/alerts")
    async def legacy_alerts() -> Dict[str, Any]:
        """Legacy alerts endpoint, superseded by /alerts/v2."""
        return {"alerts": []}

    return app


# =============================================================================
# Server Startup
# =============================================================================

def main() -> None:
    """Run the server with settings taken from the environment."""
    configure_logging(filename=os.environ.get("CORRELATOR_LOG_FILE"))

    coordinator = IngestionCoordinator(
        rules=RuleEngine(window_mode=os.environ.get("CORRELATOR_WINDOW_MODE", "fixed")),
        alert_writer=AlertLogWriter(os.environ.get("CORRELATOR_ALERT_LOG")),
    )
    host = os.environ.get("CORRELATOR_HOST", "0.0.0.0")
    port = int(os.environ.get("CORRELATOR_PORT", "8080"))

    logger.info("Log correlation server v%s: http://%s:%d", __version__, host, port)
    uvicorn.run(
        create_app(coordinator),
        host=host,
        port=port,
        log_level="info",
        access_log=True,
    )


if __name__ == "__main__":
    main()
