"""Tests for the FastAPI application endpoints."""

import hashlib
import hmac
import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.issuebot import main


SECRET = "webhook-secret"


def _issue_body() -> bytes:
    return json.dumps(
        {
            "action": "opened",
            "issue": {
                "number": 42,
                "title": "Last page is empty",
                "body": "Page 3 of 3 shows nothing",
                "labels": [],
                "state": "open",
                "user": {"login": "reporter"},
            },
            "repository": {"name": "widgets", "owner": {"login": "acme"}},
        }
    ).encode()


def _sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def client(issuebot_env, monkeypatch):
    monkeypatch.setenv("ISSUEBOT_WEBHOOK_SECRET", SECRET)
    with TestClient(main.app) as test_client:
        monkeypatch.setattr(main, "orchestrator", AsyncMock())
        yield test_client


class TestProbes:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_ready_when_dependencies_healthy(self, client, monkeypatch):
        monkeypatch.setattr(main.github_client, "health_check", AsyncMock(return_value=True))

        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ready",
            "dependencies": {"database": "healthy", "github": "healthy"},
        }

    def test_not_ready_when_github_unreachable(self, client, monkeypatch):
        monkeypatch.setattr(main.github_client, "health_check", AsyncMock(return_value=False))

        response = client.get("/ready")

        assert response.status_code == 503
        assert response.json()["dependencies"]["github"] == "unhealthy"

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")


class TestWebhook:
    def test_valid_issue_event_accepted(self, client):
        body = _issue_body()

        response = client.post(
            "/webhooks/github",
            content=body,
            headers={"X-GitHub-Event": "issues", "X-Hub-Signature-256": _sign(body)},
        )

        assert response.status_code == 202
        assert response.json() == {"status": "accepted", "event": "issues"}
        event = main.orchestrator.handle_event.call_args.args[0]
        assert event.issue_id == "acme/widgets#42"

    def test_bad_signature_rejected(self, client):
        body = _issue_body()

        response = client.post(
            "/webhooks/github",
            content=body,
            headers={"X-GitHub-Event": "issues", "X-Hub-Signature-256": _sign(body, "wrong")},
        )

        assert response.status_code == 401
        main.orchestrator.handle_event.assert_not_called()

    def test_missing_signature_rejected(self, client):
        response = client.post(
            "/webhooks/github", content=_issue_body(), headers={"X-GitHub-Event": "issues"}
        )
        assert response.status_code == 401

    def test_invalid_json(self, client):
        body = b"{not json"

        response = client.post(
            "/webhooks/github",
            content=body,
            headers={"X-GitHub-Event": "issues", "X-Hub-Signature-256": _sign(body)},
        )

        assert response.status_code == 400

    @pytest.mark.parametrize("event_name", ["push", "ping", "issues"])
    def test_unsupported_events_ignored(self, client, event_name):
        body = json.dumps({"action": "deleted", "zen": "Keep it logically awesome."}).encode()

        response = client.post(
            "/webhooks/github",
            content=body,
            headers={"X-GitHub-Event": event_name, "X-Hub-Signature-256": _sign(body)},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        main.orchestrator.handle_event.assert_not_called()


class TestRedaction:
    def test_redact_secret(self):
        assert main._redact_secret("ghp_abcdef") == "ghp_******"
        assert main._redact_secret("abc") == "***"
