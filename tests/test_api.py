from __future__ import annotations

import hashlib

import pytest
from fastapi.testclient import TestClient

import main
from qna.worker import session as session_module


@pytest.fixture()
def client(make_session, monkeypatch):
    """API client bound to a Session running the fake QnA script."""
    monkeypatch.setattr(session_module, "_session", make_session())
    with TestClient(main.app) as test_client:
        yield test_client


def test_query(client) -> None:
    response = client.post("/api/query", json={"query": "2+2"})

    assert response.status_code == 200
    data = response.json()
    assert data["query"] == "2+2"
    assert data["answers"] == ["4"]
    assert data["error"] is None
    assert data["eval_time_ms"] == 12
    assert data["fingerprint"] == hashlib.sha256(b"2+2").hexdigest()
    assert data["request_id"]
    assert data["processing_time_ms"] >= 0


def test_query_error_is_not_an_http_error(client) -> None:
    response = client.post("/api/query", json={"query": "bad one"})

    assert response.status_code == 200
    assert response.json()["error"] == "bad syntax"
    assert response.json()["answers"] == []


def test_empty_query_is_rejected(client) -> None:
    assert client.post("/api/query", json={"query": ""}).status_code == 422


def test_session_status(client) -> None:
    client.post("/api/query", json={"query": "2+2"})

    response = client.get("/api/session")

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "ready"
    assert data["alive"] is True
    assert data["busy"] is False
    assert data["spawn_count"] == 1
    assert data["version"] == "test"


def test_update_timeouts(client) -> None:
    response = client.put("/api/session/timeouts", json={"idle_timeout": 42})

    assert response.status_code == 200
    assert response.json()["idle_timeout"] == 42
    assert response.json()["evaluation_timeout"] == 60


def test_update_timeouts_rejects_non_positive(client) -> None:
    assert client.put("/api/session/timeouts", json={"evaluation_timeout": 0}).status_code == 422


def test_health_reports_session(client) -> None:
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["session"]["state"] == "ready"


def test_unavailable_qna_is_503(clean_qna_env, tmp_path) -> None:
    clean_qna_env.setattr(session_module, "_session", None)
    clean_qna_env.setenv("QnA", str(tmp_path / "missing"))

    with TestClient(main.app) as test_client:
        response = test_client.post("/api/query", json={"query": "2+2"})
        health = test_client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "QNA_UNAVAILABLE"
    assert health.json()["session"] is None
