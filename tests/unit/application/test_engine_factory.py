"""
Unit tests for EngineFactory.

Profiles are written to a temporary config directory so the tests do not
depend on the repository's own configs.
"""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import yaml

from taskpilot.application.executor import GoalExecutor
from taskpilot.application.factory import EngineFactory
from taskpilot.core.domain.capabilities import FunctionCapability
from taskpilot.core.domain.errors import DuplicateCapability
from taskpilot.infrastructure.persistence.file_session_store import FileSessionStore


def _write_profile(config_dir: Path, name: str, config: dict) -> None:
    (config_dir / f"{name}.yaml").write_text(yaml.safe_dump(config), encoding="utf-8")


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / "configs"
    directory.mkdir()
    _write_profile(
        directory,
        "dev",
        {
            "loop": {"max_iterations": 4, "temperature": 0.2},
            "retention": {"max_terminal_sessions": 10},
            "persistence": {"type": "file", "work_dir": str(tmp_path / "work")},
            "capabilities": [
                {
                    "type": "FileReadCapability",
                    "module": "taskpilot.infrastructure.capabilities.file_capabilities",
                    "params": {"root_dir": str(tmp_path)},
                },
                {
                    "type": "WebFetchCapability",
                    "module": "taskpilot.infrastructure.capabilities.web_capabilities",
                },
            ],
            "templates": {"close": "Close the month for {scope}"},
        },
    )
    return directory


class TestEngineFactory:
    def test_load_profile_not_found(self, config_dir):
        factory = EngineFactory(config_dir=str(config_dir))

        with pytest.raises(FileNotFoundError, match="Profile not found"):
            factory.load_profile("nonexistent")

    def test_create_executor_wires_everything(self, config_dir, tmp_path):
        factory = EngineFactory(config_dir=str(config_dir))

        executor = factory.create_executor(profile="dev", llm_provider=AsyncMock())

        assert isinstance(executor, GoalExecutor)
        assert executor.capabilities.names() == ["file_read", "web_fetch"]
        assert executor.capabilities.sealed
        assert executor.sessions.default_settings.max_iterations == 4
        assert executor.sessions.default_settings.temperature == 0.2
        assert executor.sessions.retention.max_terminal_sessions == 10
        assert isinstance(executor.sessions.session_store, FileSessionStore)
        assert executor.sessions.session_store.sessions_dir == tmp_path / "work" / "sessions"
        assert executor.templates.names() == ["close"]

    def test_work_dir_override(self, config_dir, tmp_path):
        factory = EngineFactory(config_dir=str(config_dir))

        executor = factory.create_executor(llm_provider=AsyncMock(), work_dir=str(tmp_path / "other"))

        assert executor.sessions.session_store.sessions_dir == tmp_path / "other" / "sessions"

    def test_default_capabilities_when_none_configured(self, config_dir):
        _write_profile(config_dir, "bare", {"persistence": {"type": "none"}})
        factory = EngineFactory(config_dir=str(config_dir))

        executor = factory.create_executor(profile="bare", llm_provider=AsyncMock())

        assert executor.capabilities.names() == ["file_read", "file_write", "web_fetch"]
        assert executor.sessions.session_store is None

    def test_capabilities_override(self, config_dir):
        factory = EngineFactory(config_dir=str(config_dir))
        custom = FunctionCapability("noop", "Does nothing", lambda params: {"success": True})

        executor = factory.create_executor(llm_provider=AsyncMock(), capabilities=[custom])

        assert executor.capabilities.names() == ["noop"]

    def test_duplicate_capabilities_fail_startup(self, config_dir):
        factory = EngineFactory(config_dir=str(config_dir))
        dup = FunctionCapability("noop", "Does nothing", lambda params: {"success": True})

        with pytest.raises(DuplicateCapability):
            factory.create_executor(llm_provider=AsyncMock(), capabilities=[dup, dup])

    @pytest.mark.parametrize(
        "spec",
        [
            {"type": "FileReadCapability"},
            {"type": "Missing", "module": "taskpilot.infrastructure.capabilities.file_capabilities"},
            {"type": "FileReadCapability", "module": "taskpilot.nowhere"},
            {"type": "FileSessionStore", "module": "taskpilot.infrastructure.persistence.file_session_store",
             "params": {"work_dir": "x", "bogus": 1}},
        ],
    )
    def test_bad_capability_spec(self, config_dir, spec):
        factory = EngineFactory(config_dir=str(config_dir))

        with pytest.raises(ValueError):
            factory.create_registry({"capabilities": [spec]})

    def test_unknown_persistence_type(self, config_dir):
        factory = EngineFactory(config_dir=str(config_dir))

        with pytest.raises(ValueError, match="Unknown persistence type"):
            factory.create_session_store({"persistence": {"type": "database"}})

    def test_llm_provider_built_from_config_path(self, config_dir):
        factory = EngineFactory(config_dir=str(config_dir))

        with patch("taskpilot.infrastructure.llm.litellm_service.LiteLLMService") as service_cls:
            factory.create_executor(profile="dev")

        service_cls.assert_called_once_with(config_path=str(config_dir / "llm_config.yaml"))
