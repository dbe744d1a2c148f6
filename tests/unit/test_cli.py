"""
Unit tests for the examkitctl moderation CLI.
"""

import json

import pytest
import requests
from click.testing import CliRunner

from examkit.cli import cli


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body
        self.text = json.dumps(body)

    def json(self):
        return self._body


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def api(monkeypatch):
    """Record API calls and answer them from a route table."""
    calls = []
    routes = {}

    def fake_request(session, method, url, timeout=None, **kwargs):
        calls.append({
            "method": method,
            "url": url,
            "headers": dict(session.headers),
            **kwargs,
        })
        path = url.split("/api/v1", 1)[1]
        status_code, body = routes[(method, path)]
        return FakeResponse(status_code, body)

    monkeypatch.setattr(requests.Session, "request", fake_request)
    return calls, routes


class TestCli:
    """Tests for CLI commands."""

    def test_health(self, runner, api):
        """Health should print each check."""
        calls, routes = api
        routes[("GET", "/health")] = (200, {
            "status": "healthy",
            "version": "1.0.0",
            "checks": {"database": {"status": "healthy", "latency_ms": 1.2}},
        })

        result = runner.invoke(cli, ["health"])

        assert result.exit_code == 0
        assert "Status:  healthy" in result.output
        assert "1.2 ms" in result.output
        assert calls[0]["url"] == "http://localhost:8000/api/v1/health"

    def test_token_sent(self, runner, api):
        """The bearer token should be sent from the environment."""
        calls, routes = api
        routes[("GET", "/domains")] = (200, {"domains": []})

        result = runner.invoke(cli, ["domain", "list"], env={"EXAMKIT_TOKEN": "abc"})

        assert result.exit_code == 0
        assert calls[0]["headers"]["Authorization"] == "Bearer abc"

    def test_pending_json(self, runner, api):
        """JSON output should print the raw list."""
        calls, routes = api
        pending = [{"id": "t-1", "title": "Practice 1", "total_questions": 2,
                    "created_at": "2026-10-01T10:00:00+00:00"}]
        routes[("GET", "/admin/tests/review")] = (200, {"tests": pending, "total": 1})

        result = runner.invoke(cli, ["--output", "json", "test", "pending", "--domain-id", "d-1"])

        assert result.exit_code == 0
        assert json.loads(result.output) == pending
        assert calls[0]["params"] == {"domainId": "d-1"}

    def test_pending_empty(self, runner, api):
        """An empty queue should say so."""
        _, routes = api
        routes[("GET", "/admin/tests/review")] = (200, {"tests": [], "total": 0})

        result = runner.invoke(cli, ["test", "pending"])

        assert "No tests awaiting review" in result.output

    def test_approve(self, runner, api):
        """Approve should post the review action."""
        calls, routes = api
        routes[("POST", "/admin/tests/t-1/review")] = (200, {"id": "t-1", "status": "PUBLISHED"})

        result = runner.invoke(cli, ["test", "approve", "t-1", "--note", "Good"])

        assert result.exit_code == 0
        assert "PUBLISHED" in result.output
        assert calls[0]["json"] == {"action": "approve", "reviewNote": "Good"}

    def test_reject_requires_note(self, runner, api):
        """Reject without --note should be a usage error."""
        calls, _ = api

        result = runner.invoke(cli, ["test", "reject", "t-1"])

        assert result.exit_code == 2
        assert calls == []

    def test_archive_confirmation(self, runner, api):
        """Declining the prompt should not call the API."""
        calls, _ = api

        result = runner.invoke(cli, ["test", "archive", "t-1"], input="n\n")

        assert result.exit_code == 0
        assert calls == []

    def test_api_error(self, runner, api):
        """API errors should exit non-zero with the detail and errors."""
        _, routes = api
        routes[("POST", "/admin/tests/t-1/archive")] = (400, {
            "error": "VALIDATION_ERROR",
            "detail": "Cannot move test from DRAFT to ARCHIVED",
            "errors": ["Cannot move test from DRAFT to ARCHIVED"],
        })

        result = runner.invoke(cli, ["test", "archive", "t-1", "--force"])

        assert result.exit_code == 1
        assert "400: Cannot move test from DRAFT to ARCHIVED" in result.output

    def test_connection_error(self, runner, monkeypatch):
        """Network failures should be reported, not raised."""
        def refuse(session, method, url, **kwargs):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr(requests.Session, "request", refuse)

        result = runner.invoke(cli, ["health"])

        assert result.exit_code == 1
        assert "connection refused" in result.output
