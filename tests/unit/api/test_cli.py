"""
Unit tests for the Taskpilot CLI.

Each test writes a throwaway profile into ``tmp_path`` and points the CLI at
it with ``--config-dir``. The completion service is patched out.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
import structlog
import yaml
from typer.testing import CliRunner

from taskpilot import __version__
from taskpilot.api.cli.main import app
from taskpilot.application.factory import EngineFactory
from taskpilot.infrastructure.persistence.file_session_store import FileSessionStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def work_dir(tmp_path):
    return tmp_path / "archive"


@pytest.fixture
def config_dir(tmp_path, work_dir):
    configs = tmp_path / "configs"
    configs.mkdir()
    profile = {
        "loop": {"max_iterations": 3},
        "persistence": {"type": "file", "work_dir": str(work_dir)},
        "capabilities": [
            {
                "type": "FileReadCapability",
                "module": "taskpilot.infrastructure.capabilities.file_capabilities",
                "params": {"root_dir": str(tmp_path)},
            }
        ],
        "templates": {
            "revenue-forecast": {
                "description": "Forecast",
                "goal": "Generate revenue forecast for the next {months} months",
            }
        },
    }
    (configs / "dev.yaml").write_text(yaml.safe_dump(profile), encoding="utf-8")
    return str(configs)


def _invoke(config_dir, *args):
    return runner.invoke(app, ["--config-dir", config_dir, *args])


def _complete_provider():
    provider = AsyncMock()
    provider.complete.return_value = {
        "success": True,
        "content": json.dumps({"type": "complete", "reasoning": "nothing left to do"}),
    }
    return provider


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


class TestCapabilitiesCommands:
    def test_list(self, config_dir):
        result = _invoke(config_dir, "capabilities", "list")

        assert result.exit_code == 0
        assert "file_read" in result.stdout
        assert "files" in result.stdout

    def test_list_unknown_category_is_empty(self, config_dir):
        result = _invoke(config_dir, "capabilities", "list", "--category", "web")

        assert result.exit_code == 0
        assert "file_read" not in result.stdout

    def test_inspect(self, config_dir):
        result = _invoke(config_dir, "capabilities", "inspect", "file_read")

        assert result.exit_code == 0
        assert '"path"' in result.stdout

    def test_inspect_unknown(self, config_dir):
        result = _invoke(config_dir, "capabilities", "inspect", "send_email")

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_missing_profile(self, config_dir):
        result = _invoke(config_dir, "--profile", "staging", "capabilities", "list")

        assert result.exit_code == 1
        assert "Profile not found" in result.stdout


def test_templates_list(config_dir):
    result = _invoke(config_dir, "templates", "list")

    assert result.exit_code == 0
    assert "revenue-forecast" in result.stdout
    assert "months" in result.stdout


class TestSessionsCommands:
    def test_list_and_show_archived(self, config_dir, work_dir):
        store = FileSessionStore(work_dir=str(work_dir))
        snapshot = {
            "session_id": "abc123",
            "goal": "Process pending payments",
            "status": "completed",
            "iteration_count": 1,
            "max_iterations": 10,
            "step_history": [],
            "final_summary": {"reason": "goal_complete", "message": "Goal completed", "recap": "Paid 3 artists"},
        }
        asyncio.run(store.save("abc123", snapshot))

        listed = _invoke(config_dir, "sessions", "list")
        shown = _invoke(config_dir, "sessions", "show", "abc123")
        raw = _invoke(config_dir, "sessions", "show", "abc123", "--json")

        assert listed.exit_code == 0
        assert "abc123" in listed.stdout
        assert shown.exit_code == 0
        assert "Paid 3 artists" in shown.stdout
        assert raw.exit_code == 0
        assert '"_version"' in raw.stdout

    def test_show_unknown(self, config_dir):
        result = _invoke(config_dir, "sessions", "show", "missing")

        assert result.exit_code == 1
        assert "not found" in result.stdout


class TestRunCommands:
    def test_run_goal(self, config_dir, work_dir):
        with patch.object(EngineFactory, "_create_llm_provider", return_value=_complete_provider()):
            result = _invoke(config_dir, "run", "goal", "Say hello", "--context", '{"user": "ops"}')

        assert result.exit_code == 0
        assert "completed" in result.stdout
        assert "Say hello" in result.stdout

    def test_run_goal_rejects_bad_context(self, config_dir):
        result = _invoke(config_dir, "run", "goal", "Say hello", "--context", "[1, 2]")

        assert result.exit_code == 1
        assert "must be a JSON object" in result.stdout

    def test_run_template(self, config_dir):
        provider = _complete_provider()
        with patch.object(EngineFactory, "_create_llm_provider", return_value=provider):
            result = _invoke(config_dir, "run", "template", "revenue-forecast", "--params", '{"months": 3}')

        assert result.exit_code == 0
        prompt = provider.complete.await_args_list[0].kwargs["messages"][1]["content"]
        assert "Generate revenue forecast for the next 3 months" in prompt

    def test_run_template_missing_parameter(self, config_dir):
        with patch.object(EngineFactory, "_create_llm_provider", return_value=_complete_provider()):
            result = _invoke(config_dir, "run", "template", "revenue-forecast")

        assert result.exit_code == 1
        assert "months" in result.stdout

    def test_run_unknown_template(self, config_dir):
        with patch.object(EngineFactory, "_create_llm_provider", return_value=_complete_provider()):
            result = _invoke(config_dir, "run", "template", "nope")

        assert result.exit_code == 1
        assert "revenue-forecast" in result.stdout
