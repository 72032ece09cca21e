"""
Unit tests for LiteLLMService.

``litellm.acompletion`` is patched; no network calls are made.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import yaml

from taskpilot.infrastructure.llm.litellm_service import LiteLLMService


def _response(content: str, total_tokens: int = 42):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=total_tokens, prompt_tokens=30, completion_tokens=12),
    )


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "llm_config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "default_model": "main",
                "models": {"main": "gpt-4.1", "judge": "gpt-4.1-mini"},
                "model_params": {"gpt-4.1": {"temperature": 0.7, "max_tokens": 2000}},
                "default_params": {"temperature": 0.5},
                "retry_policy": {
                    "max_attempts": 3,
                    "backoff_multiplier": 0,
                    "timeout": 5,
                    "retry_on_errors": ["RateLimitError"],
                },
                "providers": {"openai": {"api_key_env": "TASKPILOT_TEST_MISSING_KEY"}},
            }
        ),
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def service(config_path):
    return LiteLLMService(config_path=config_path)


class RateLimitError(Exception):
    pass


class TestConfig:
    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LiteLLMService(config_path=str(tmp_path / "missing.yaml"))

    def test_config_without_models(self, tmp_path):
        path = tmp_path / "empty_models.yaml"
        path.write_text("default_model: main\n", encoding="utf-8")

        with pytest.raises(ValueError, match="at least one model"):
            LiteLLMService(config_path=str(path))

    def test_alias_resolution(self, service):
        assert service._resolve_model(None) == "gpt-4.1"
        assert service._resolve_model("judge") == "gpt-4.1-mini"
        assert service._resolve_model("claude-3-5-sonnet") == "claude-3-5-sonnet"

    def test_model_parameters_fall_back_by_prefix_then_default(self, service):
        assert service._get_model_parameters("gpt-4.1")["max_tokens"] == 2000
        assert service._get_model_parameters("gpt-4.1-mini")["max_tokens"] == 2000
        assert service._get_model_parameters("other") == {"temperature": 0.5}


class TestComplete:
    @pytest.mark.asyncio
    async def test_success(self, service):
        with patch("litellm.acompletion", new=AsyncMock(return_value=_response('{"type": "complete"}'))) as mock:
            result = await service.complete(
                [{"role": "user", "content": "hi"}],
                model="main",
                temperature=0.1,
                response_format={"type": "json_object"},
                unsupported="dropped",
            )

        assert result["success"] is True
        assert result["content"] == '{"type": "complete"}'
        assert result["usage"]["total_tokens"] == 42
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "gpt-4.1"
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 2000
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "unsupported" not in kwargs

    @pytest.mark.asyncio
    async def test_retries_configured_errors(self, service):
        mock = AsyncMock(side_effect=[RateLimitError("slow down"), _response("ok")])
        with patch("litellm.acompletion", new=mock):
            result = await service.complete([{"role": "user", "content": "hi"}])

        assert result["success"] is True
        assert mock.await_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_returned(self, service):
        mock = AsyncMock(side_effect=ValueError("bad request"))
        with patch("litellm.acompletion", new=mock):
            result = await service.complete([{"role": "user", "content": "hi"}])

        assert result == {
            "success": False,
            "error": "bad request",
            "error_type": "ValueError",
            "model": "gpt-4.1",
        }
        assert mock.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, service):
        mock = AsyncMock(side_effect=RateLimitError("slow down"))
        with patch("litellm.acompletion", new=mock):
            result = await service.complete([{"role": "user", "content": "hi"}])

        assert result["success"] is False
        assert result["error_type"] == "RateLimitError"
        assert mock.await_count == 3
