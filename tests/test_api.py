"""Tests for the HTTP surface."""
from __future__ import annotations

from fastapi.testclient import TestClient

from replay_analyzer.api.main import app

from replay_builders import click, session

client = TestClient(app)


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_parse_session():
    resp = client.post("/sessions/parse", json={"events": session(click(1000, 10))})
    assert resp.status_code == 200
    body = resp.json()
    assert body["eventCount"] == 3
    assert body["logs"][0]["action"] == "Session Started"
    assert body["summary"]["totalClicks"] == 1


def test_parse_session_rejects_bad_body():
    assert client.post("/sessions/parse", json={"events": "nope"}).status_code == 422


def test_parse_session_strict_drops_invalid_events():
    events = session(click(1000, 10)) + [
        {"type": 99, "timestamp": 5},
        {"timestamp": 5},
        ["win-1", click(1200, 10)],
    ]
    resp = client.post("/sessions/parse", json={"events": events, "strict": True})
    assert resp.status_code == 200
    body = resp.json()
    assert body["rejected"] == 3
    assert body["summary"]["totalClicks"] == 1

    lenient = client.post("/sessions/parse", json={"events": events}).json()
    assert "rejected" not in lenient
    assert lenient["summary"]["totalClicks"] == 2


def test_parse_session_rejects_oversize(monkeypatch):
    monkeypatch.setenv("MAX_EVENTS_PER_SESSION", "2")
    resp = client.post("/sessions/parse", json={"events": session(click(1000, 10))})
    assert resp.status_code == 413


def test_parse_batch():
    resp = client.post("/sessions/parse-batch", json={"sessions": {"a": session(click(1000, 10)), "b": []}, "concurrency": 2})
    assert resp.status_code == 200
    sessions = resp.json()["sessions"]
    assert sessions["a"]["summary"]["totalClicks"] == 1
    assert sessions["b"]["eventCount"] == 0


def test_priority_queue():
    sources = [
        [{"distinctId": "u1", "signals": [{"type": "rage_click", "description": "x"}]}],
        [{"distinctId": "u1", "email": "u1@example.com", "signals": [{"type": "churn_risk", "description": "y"}]},
         {"distinctId": "u2", "signals": [{"type": "wrong_fit", "description": "z"}]}],
    ]
    resp = client.post("/priority-queue", json={"sources": sources, "minScore": 10})
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    entry = body["entries"][0]
    assert entry["distinctId"] == "u1"
    assert entry["email"] == "u1@example.com"
    assert entry["priorityScore"] == 69


def test_priority_queue_rejects_bad_profiles():
    resp = client.post("/priority-queue", json={"sources": [[{"signals": []}]]})
    assert resp.status_code == 422


def test_metrics_exposed():
    client.post("/sessions/parse", json={"events": session(click(1000, 10))})
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "replay_sessions_parsed_total" in resp.text
