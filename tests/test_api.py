# tests/test_api.py
"""
API tests for the log correlation server.

Runs the FastAPI app in-process with TestClient, covering WebSocket and
HTTP ingestion, snapshot endpoints and health counters.
"""

import json

import pytest
from fastapi.testclient import TestClient

from correlator.api import server
from correlator.api.server import create_app
from correlator.client import IngestClient
from correlator.coordinator import IngestionCoordinator
from correlator.normalizer import LogNormalizer

FAILED = "Failed password for invalid user admin from 10.0.0.5 port 2222"


@pytest.fixture
def client(coordinator):
    with TestClient(create_app(coordinator)) as test_client:
        yield test_client


def ws_batch(host, lines):
    return json.dumps({"type": "logs", "host": host,
                       "batch": [{"ts": "2024-01-01T10:00:00Z", "host": host, "source": "auth",
                                  "msg": line, "level": "info"} for line in lines]})


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"

    data = client.get("/health").json()
    assert data["status"] == "healthy"
    assert data["normalized_logs"] == 0
    assert data["alerts_v2"] == 0
    assert data["active_bruteforces"] == 0
    assert data["uptime_seconds"] >= 0


def test_websocket_ingestion(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text(ws_batch("web-1", [FAILED] * 5))
        assert ws.receive_text() == "OK"
        ws.send_text("{not json")
        assert ws.receive_text().startswith("ERROR: ")
        ws.send_bytes(ws_batch("web-1", ["CPU:95.0% MEM:40.0%"]).encode())
        assert ws.receive_text() == "OK"

    health = client.get("/health").json()
    assert health["normalized_logs"] == 6
    assert health["alerts_v2"] == 2
    assert health["active_bruteforces"] == 1

    alerts = client.get("/alerts/v2").json()["alerts"]
    assert [a["rule"] for a in alerts] == ["SSH_BRUTEFORCE", "RESOURCE_EXHAUSTION"]
    assert alerts[0]["severity"] == "HIGH"
    assert alerts[0]["log"]["src_ip"] == "10.0.0.5"
    assert alerts[1]["score"] == pytest.approx(0.95)


def test_http_ingest_and_snapshots(client):
    body = {"host": "web-1", "batch": [
        {"source": "auth", "message": "Accepted publickey for alice from 10.0.0.9"},
        {"source": "auth", "message": "Accepted password for root from 10.0.0.8 port 22 ssh2"},
    ]}
    response = client.post("/ingest", json=body)
    assert response.status_code == 200
    assert response.json() == {"status": "processed", "host": "web-1", "processed": 2, "alerts": 1}

    logs = client.get("/logs/normalized", params={"limit": 1}).json()["logs"]
    assert len(logs) == 1
    assert logs[0]["user"] == "root"
    assert logs[0]["event_type"] == "ssh_success"

    legacy = client.get("/logs").json()["logs"]
    assert legacy[0] == {"ts": "2024-01-01T10:00:00Z", "host": "web-1", "source": "auth",
                         "msg": "Accepted publickey for alice from 10.0.0.9", "level": "info"}
    assert client.get("/alerts").json() == {"alerts": []}


def test_http_ingest_rejects_invalid_batch(client):
    response = client.post("/ingest", json={"host": "web-1", "batch": [{"source": "auth"}]})
    assert response.status_code == 422
    assert client.get("/health").json()["normalized_logs"] == 0


def test_default_snapshot_limits(client, coordinator):
    coordinator.handle_batch("web-1", [("metrics", "CPU:99.0% MEM:10.0%")] * 120)
    assert len(client.get("/logs/normalized").json()["logs"]) == 100
    assert len(client.get("/alerts/v2").json()["alerts"]) == 50


def test_ingest_after_shutdown_returns_503(client, coordinator):
    coordinator.shutdown(timeout=2.0)
    response = client.post("/ingest", json={"host": "web-1", "batch": []})
    assert response.status_code == 503


def test_ingest_client(client):
    ingest = IngestClient("http://testserver", host="web-1", session=client)
    result = ingest.send_lines("auth", [FAILED] * 5)
    assert result["processed"] == 5
    assert result["alerts"] == 1

    assert ingest.recent_alerts()[0]["rule"] == "SSH_BRUTEFORCE"
    assert len(ingest.recent_logs(limit=3)) == 3
    assert ingest.health()["active_bruteforces"] == 1


def test_http_ingest_leaves_no_connection_workers(client, coordinator):
    for i in range(5):
        body = {"host": f"web-{i}", "batch": [{"source": "auth", "message": FAILED}]}
        assert client.post("/ingest", json=body).status_code == 200
    assert coordinator.active_connections() == 0
    assert coordinator.store.log_count() == 5


class ExplodingNormalizer(LogNormalizer):
    def normalize(self, source, host, raw_line):
        if "boom" in raw_line:
            raise RuntimeError("normalizer failure")
        return super().normalize(source, host, raw_line)


def test_websocket_reports_internal_errors(clock):
    coordinator = IngestionCoordinator(normalizer=ExplodingNormalizer(clock))
    with TestClient(create_app(coordinator)) as test_client:
        with test_client.websocket_connect("/ws") as ws:
            ws.send_text(ws_batch("web-1", ["boom"]))
            assert ws.receive_text() == "ERROR: internal error"
            ws.send_text(ws_batch("web-1", ["still alive"]))
            assert ws.receive_text() == "OK"
    assert coordinator.closed


def test_importing_the_server_builds_no_pipeline():
    assert not hasattr(server, "app")
