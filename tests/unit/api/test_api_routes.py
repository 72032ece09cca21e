"""
Unit tests for the HTTP API.

The app is created with an injected executor (scripted planner, in-memory
registry), so no configuration files or completion service are needed.
"""

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from taskpilot.api.server import create_app
from taskpilot.application.executor import GoalExecutor
from taskpilot.application.session_registry import SessionRegistry
from taskpilot.application.templates import TemplateCatalog
from taskpilot.core.domain.events import Action
from taskpilot.core.domain.execution_loop import ExecutionLoop
from taskpilot.core.domain.models import LoopSettings


class HoldingPlanner:
    """Keeps sessions busy with echo steps until ``release()``; then completes them."""

    def __init__(self):
        self._released = False

    def release(self):
        self._released = True

    async def next_action(self, goal, context, recent_steps, capabilities, settings=None):
        await asyncio.sleep(0.01)
        if self._released:
            return Action.complete("released")
        return Action.invoke("echo", {"text": "tick"})

    async def is_goal_satisfied(self, goal, step_history, settings=None):
        return False

    async def summarize(self, goal, step_history, settings=None, outcome="completed"):
        return "recap"


@pytest.fixture
def planner():
    return HoldingPlanner()


@pytest.fixture
def executor(planner, registry):
    templates = TemplateCatalog.from_config(
        {
            "monthly-close": {
                "goal": "Execute the monthly close process for {scope}",
                "defaults": {"scope": "all artists"},
            },
            "artist-insights": "Generate insights for artist: {artist_id}",
        }
    )
    sessions = SessionRegistry(ExecutionLoop(planner, registry), default_settings=LoopSettings(max_iterations=1000))
    return GoalExecutor(registry, sessions, templates)


@pytest.fixture
def client(executor):
    with TestClient(create_app(executor=executor)) as client:
        yield client


def _wait_terminal(client, session_id, attempts=200):
    for _ in range(attempts):
        data = client.get(f"/api/v1/sessions/{session_id}").json()
        if data["status"] != "running":
            return data
        time.sleep(0.01)
    raise AssertionError(f"session {session_id} did not finish")


class TestSubmit:
    def test_submit_returns_202_with_running_session(self, client, planner):
        response = client.post(
            "/api/v1/sessions",
            json={"goal": "process pending payments", "context": {"batch": 3}, "user_id": "u-1", "user_role": "admin"},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "running"
        assert body["goal"] == "process pending payments"

        status = client.get(f"/api/v1/sessions/{body['session_id']}").json()
        assert status["context"] == {"batch": 3, "caller": {"user_id": "u-1", "role": "admin"}}

        planner.release()
        final = _wait_terminal(client, body["session_id"])
        assert final["status"] == "completed"
        assert final["final_summary"]["reason"] == "goal_complete"

    def test_overrides(self, client, planner):
        response = client.post("/api/v1/sessions", json={"goal": "g", "max_iterations": 2, "model": "fast"})

        session_id = response.json()["session_id"]
        assert client.get(f"/api/v1/sessions/{session_id}").json()["max_iterations"] == 2
        planner.release()

    @pytest.mark.parametrize(
        "payload",
        [{}, {"goal": ""}, {"goal": "g", "max_iterations": 0}, {"goal": "g", "temperature": 5}],
    )
    def test_invalid_submission(self, client, payload):
        assert client.post("/api/v1/sessions", json=payload).status_code == 422

    def test_whitespace_goal(self, client):
        assert client.post("/api/v1/sessions", json={"goal": "   "}).status_code == 422


class TestTemplates:
    def test_submit_template(self, client, planner):
        response = client.post("/api/v1/sessions/templates/monthly-close", json={})

        assert response.status_code == 202
        assert response.json()["goal"] == "Execute the monthly close process for all artists"
        planner.release()

    def test_unknown_template(self, client):
        assert client.post("/api/v1/sessions/templates/nope", json={}).status_code == 404

    def test_missing_template_parameter(self, client):
        response = client.post("/api/v1/sessions/templates/artist-insights", json={})

        assert response.status_code == 422
        assert response.json()["detail"]["violations"] == ["missing template parameter 'artist_id'"]

    def test_list_templates(self, client):
        body = client.get("/api/v1/templates").json()
        assert [t["name"] for t in body["templates"]] == ["artist-insights", "monthly-close"]


class TestLifecycle:
    def test_unknown_session_is_404(self, client):
        assert client.get("/api/v1/sessions/nope").status_code == 404
        assert client.post("/api/v1/sessions/nope/stop").status_code == 404
        assert client.delete("/api/v1/sessions/nope").status_code == 404

    def test_stop_then_evict(self, client):
        session_id = client.post("/api/v1/sessions", json={"goal": "g"}).json()["session_id"]

        assert client.delete(f"/api/v1/sessions/{session_id}").status_code == 409

        stop = client.post(f"/api/v1/sessions/{session_id}/stop")
        assert stop.status_code == 200
        assert stop.json()["stop_requested"] is True

        final = _wait_terminal(client, session_id)
        assert final["status"] == "stopped"

        evicted = client.delete(f"/api/v1/sessions/{session_id}")
        assert evicted.status_code == 200
        assert evicted.json()["status"] == "stopped"
        assert client.get(f"/api/v1/sessions/{session_id}").status_code == 404

    def test_list_sessions(self, client, planner):
        session_id = client.post("/api/v1/sessions", json={"goal": "g"}).json()["session_id"]

        running = client.get("/api/v1/sessions").json()
        assert [s["session_id"] for s in running["sessions"]] == [session_id]

        planner.release()
        _wait_terminal(client, session_id)
        assert client.get("/api/v1/sessions").json()["count"] == 0
        assert client.get("/api/v1/sessions", params={"include_terminal": True}).json()["count"] == 1


class TestCapabilities:
    def test_list(self, client):
        body = client.get("/api/v1/capabilities").json()

        assert [c["name"] for c in body["capabilities"]] == ["echo", "boom"]
        assert body["categories"] == {"general": ["echo"], "testing": ["boom"]}
        assert body["capabilities"][0]["parameters"]["required"] == ["text"]

    def test_filter(self, client):
        assert client.get("/api/v1/capabilities", params={"category": "testing"}).json()["count"] == 1
        assert client.get("/api/v1/capabilities", params={"q": "echo"}).json()["count"] == 1

    def test_get_one(self, client):
        assert client.get("/api/v1/capabilities/echo").json()["name"] == "echo"
        assert client.get("/api/v1/capabilities/send_email").status_code == 404

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["capabilities"] == 2


class TestChat:
    def test_chat_answers_with_recap(self, client, planner):
        planner.release()

        response = client.post(
            "/api/v1/chat",
            json={"message": "How many payments are pending?", "user_id": "u-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "recap"
        assert body["status"] == "completed"
        assert body["conversation_id"].startswith("conv-")
        assert body["actions"] == []
        session = client.get(f"/api/v1/sessions/{body['session_id']}").json()
        assert "How many payments are pending?" in session["goal"]
        assert session["context"]["conversation_id"] == body["conversation_id"]
        assert session["context"]["caller"] == {"user_id": "u-1"}

    def test_chat_keeps_conversation_id(self, client, planner):
        planner.release()

        body = client.post("/api/v1/chat", json={"message": "hi", "conversation_id": "conv-42"}).json()

        assert body["conversation_id"] == "conv-42"

    def test_chat_timeout_returns_running_session(self, client, planner):
        body = client.post("/api/v1/chat", json={"message": "hi", "timeout_seconds": 0.05}).json()

        assert body["status"] == "running"
        assert body["response"] is None
        planner.release()
        assert _wait_terminal(client, body["session_id"])["status"] == "completed"

    @pytest.mark.parametrize("payload", [{}, {"message": ""}, {"message": "   "}])
    def test_invalid_message(self, client, payload):
        assert client.post("/api/v1/chat", json=payload).status_code == 422
