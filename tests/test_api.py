# ==============================================================================
# Tests for the HTTP API
# ==============================================================================
"""
End-to-end tests through FastAPI's TestClient.

Tests cover:
- Wire field names and the start → detect → interact → end flow
- Error envelopes and status codes (400, 404, 409, 403, 500)
- Stats, health and log browsing endpoints
- Log cleanup
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from vision_telemetry.main import create_app


def _start(client) -> str:
    response = client.post("/api/session/start")
    assert response.status_code == 200
    return response.json()["sessionId"]


def _flush(client):
    client.app.state.telemetry.event_log.flush()


# ==============================================================================
# Sessions
# ==============================================================================


class TestSessionFlow:
    """The happy path, field by field."""

    def test_start_session(self, client):
        response = client.post("/api/session/start", headers={"User-Agent": "pytest-agent"})
        body = response.json()
        assert body["success"] is True
        assert body["sessionId"].startswith("session_")
        datetime.fromisoformat(body["timestamp"].replace("Z", "+00:00"))

    def test_example_scenario(self, client):
        session_id = _start(client)

        detection = client.post("/api/detection/record", json={
            "sessionId": session_id, "faceCount": 2, "objectCount": 3,
            "confidenceLevel": 0.92, "detectionType": "mixed",
        }).json()
        assert detection["success"] is True
        assert detection["sessionStats"] == {
            "faceDetections": 2, "objectDetections": 3, "totalDetections": 5,
        }
        assert detection["globalStats"] == {"totalFaceDetections": 2, "totalDetections": 5}

        interaction = client.post("/api/interaction/record", json={
            "sessionId": session_id, "widgetName": "filterSelect",
            "action": "change", "value": "blur",
        }).json()
        assert interaction["totalInteractionsInSession"] == 1
        assert interaction["filters"] == ["blur"]

        end = client.post("/api/session/end", json={"sessionId": session_id}).json()
        stats = end["sessionStats"]
        assert stats["faceDetections"] == 2
        assert stats["objectDetections"] == 3
        assert stats["interactions"] == 1
        assert stats["filters"] == ["blur"]
        assert stats["duration"] >= 0

    def test_non_numeric_counts_become_zero(self, client):
        session_id = _start(client)
        body = client.post("/api/detection/record", json={
            "sessionId": session_id, "faceCount": "lots", "objectCount": -2,
        }).json()
        assert body["sessionStats"]["totalDetections"] == 0

    @pytest.mark.parametrize("face_count", [True, [1], {"n": 3}, None])
    def test_non_scalar_counts_become_zero(self, client, face_count):
        session_id = _start(client)
        response = client.post("/api/detection/record", json={
            "sessionId": session_id, "faceCount": face_count, "objectCount": 1,
        })
        assert response.status_code == 200
        body = response.json()
        assert body["sessionStats"] == {
            "faceDetections": 0, "objectDetections": 1, "totalDetections": 1,
        }
        assert body["globalStats"] == {"totalFaceDetections": 0, "totalDetections": 1}

    def test_repeated_filter_value_is_kept_once(self, client):
        session_id = _start(client)
        for _ in range(3):
            body = client.post("/api/interaction/record", json={
                "sessionId": session_id, "widgetName": "filterSelect", "value": "blur",
            }).json()
        assert body["filters"] == ["blur"]
        assert body["totalInteractionsInSession"] == 3


# ==============================================================================
# Errors
# ==============================================================================


class TestErrors:
    """Error taxonomy mapped to status codes and the error envelope."""

    @pytest.mark.parametrize("path", [
        "/api/detection/record",
        "/api/interaction/record",
        "/api/session/end",
    ])
    def test_missing_session_id_is_400(self, client, path):
        response = client.post(path, json={})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "sessionId is required"}

    @pytest.mark.parametrize("path", [
        "/api/detection/record",
        "/api/interaction/record",
        "/api/session/end",
    ])
    def test_no_body_is_400(self, client, path):
        response = client.post(path)
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.parametrize("path", [
        "/api/detection/record",
        "/api/interaction/record",
        "/api/session/end",
    ])
    def test_unknown_session_is_404(self, client, path):
        response = client.post(path, json={"sessionId": "session_0_deadbeef0"})
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Session not found"}

    @pytest.mark.parametrize("path", [
        "/api/detection/record",
        "/api/interaction/record",
        "/api/session/end",
    ])
    def test_numeric_session_id_is_404(self, client, path):
        response = client.post(path, json={"sessionId": 123})
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Session not found"}

    def test_event_on_closed_session_is_409(self, client):
        session_id = _start(client)
        client.post("/api/session/end", json={"sessionId": session_id})
        response = client.post("/api/detection/record", json={"sessionId": session_id, "faceCount": 1})
        assert response.status_code == 409
        assert response.json()["success"] is False

    def test_malformed_body_is_400(self, client):
        response = client.post(
            "/api/detection/record",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_unknown_route_is_404_envelope(self, client):
        response = client.get("/api/nowhere")
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_unexpected_error_is_generic_500(self, settings):
        app = create_app(settings)

        @app.get("/api/explode")
        def explode():
            raise RuntimeError("secret internals")

        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/api/explode")
            assert response.status_code == 500
            assert response.json() == {"success": False, "error": "Internal server error"}

            _flush(client)
            logs = client.get("/api/logs").json()["logs"]
            error_file = next(f["file"] for f in logs if f["file"].startswith("SERVER_ERROR_"))
            content = client.get(f"/api/logs/{error_file}").json()["content"]
            assert content[0]["payload"]["error"] == "secret internals"
            assert content[0]["payload"]["path"] == "/api/explode"


# ==============================================================================
# Stats and health
# ==============================================================================


class TestStats:
    """GET /api/stats and GET /api/health."""

    def test_stats_shape(self, client):
        open_id = _start(client)
        closed_id = _start(client)
        client.post("/api/detection/record", json={"sessionId": open_id, "faceCount": 3, "objectCount": 2})
        client.post("/api/session/end", json={"sessionId": closed_id})

        body = client.get("/api/stats").json()
        assert body["success"] is True
        assert body["status"] == "online"
        assert body["statistics"] == {
            "totalSessions": 2,
            "activeSessions": 1,
            "totalDetections": 5,
            "totalFaceDetections": 3,
            "totalInteractions": 0,
            "avgDetectionsPerSession": 3,
            "avgDuration": 0,
        }
        assert [s["sessionId"] for s in body["activeSessions"]] == [open_id]
        assert body["activeSessions"][0]["faceDetections"] == 3
        assert body["system"]["environment"] == "test"
        assert body["system"]["pid"] == os.getpid()

    def test_health(self, client):
        _start(client)
        body = client.get("/api/health").json()
        assert body["status"] == "healthy"
        assert body["sessions"] == {"total": 1, "active": 1}
        assert body["environment"] == "test"


# ==============================================================================
# Logs
# ==============================================================================


class TestLogs:
    """Log listing, reading, download and cleanup."""

    def test_list_and_read(self, client):
        session_id = _start(client)
        _flush(client)

        body = client.get("/api/logs").json()
        assert body["success"] is True
        assert body["total"] == 1
        entry = body["logs"][0]
        assert entry["file"].startswith("SESSION_START_")
        assert entry["url"] == f"/api/logs/{entry['file']}"
        assert entry["downloadUrl"] == f"/api/logs/download/{entry['file']}"

        content = client.get(entry["url"]).json()
        assert content["totalLines"] == 1
        assert content["content"][0]["eventType"] == "SESSION_START"
        assert content["content"][0]["payload"]["sessionId"] == session_id

    def test_download(self, client):
        _start(client)
        _flush(client)
        name = client.get("/api/logs").json()["logs"][0]["file"]

        response = client.get(f"/api/logs/download/{name}")
        assert response.status_code == 200
        assert b"SESSION_START" in response.content

    @pytest.mark.parametrize("path", [
        "/api/logs/..%2F..%2Fetc%2Fpasswd",
        "/api/logs/%2Fetc%2Fpasswd",
        "/api/logs/download/..%2F..%2Fetc%2Fpasswd",
    ])
    def test_traversal_is_403(self, client, path):
        response = client.get(path)
        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "Access denied"}

    def test_missing_log_is_404(self, client):
        response = client.get("/api/logs/NOPE_2025-01-01.log")
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_cleanup(self, client, logs_dir):
        old = logs_dir / "SESSION_START_2020-01-01.log"
        old.write_text("{}\n")
        stamp = (datetime.now(timezone.utc) - timedelta(days=30)).timestamp()
        os.utime(old, (stamp, stamp))
        (logs_dir / "SESSION_START_2099-01-01.log").write_text("{}\n")

        body = client.delete("/api/logs/cleanup", params={"days": 7}).json()
        assert body["success"] is True
        assert body["deleted"] == 1
        assert not old.exists()

    def test_cleanup_default_days(self, client):
        body = client.delete("/api/logs/cleanup").json()
        assert body["deleted"] == 0
        cutoff = datetime.fromisoformat(body["cutoffDate"].replace("Z", "+00:00"))
        expected = datetime.now(timezone.utc) - timedelta(days=7)
        assert abs((cutoff - expected).total_seconds()) < 60

    def test_cleanup_rejects_negative_days(self, client):
        response = client.delete("/api/logs/cleanup", params={"days": -1})
        assert response.status_code == 400
