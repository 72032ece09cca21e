"""
LiteLLM-backed completion service.

Implements LLMProviderProtocol on top of ``litellm.acompletion`` with:
- model aliases (``main``, ``judge``, ...) resolved from YAML config
- per-model default parameters, overridable per call
- retry with exponential backoff for configured error types
- failures returned as ``{"success": False, ...}`` instead of raised
"""

import asyncio
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import litellm
import structlog
import yaml


@dataclass
class RetryPolicy:
    """Retry policy configuration."""

    max_attempts: int = 3
    backoff_multiplier: float = 2.0
    timeout: int = 30
    retry_on_errors: List[str] = field(default_factory=list)


# Parameters forwarded to litellm; everything else passed to complete() is dropped.
ALLOWED_PARAMS = (
    "temperature",
    "top_p",
    "max_tokens",
    "frequency_penalty",
    "presence_penalty",
    "response_format",
    "seed",
)


class LiteLLMService:
    """
    Completion service with alias resolution and retries.

    Config file layout::

        default_model: main
        models:
          main: gpt-4.1
          judge: gpt-4.1-mini
        model_params:
          gpt-4.1: {temperature: 0.7, max_tokens: 2000}
        default_params: {temperature: 0.7}
        retry_policy:
          max_attempts: 3
          backoff_multiplier: 2
          timeout: 30
          retry_on_errors: [RateLimitError, Timeout]
        providers:
          openai: {api_key_env: OPENAI_API_KEY}
        logging: {log_token_usage: true}
    """

    def __init__(self, config_path: str = "configs/llm_config.yaml"):
        """
        Raises:
            FileNotFoundError: If the config file doesn't exist
            ValueError: If the config is empty or defines no models
        """
        self.logger = structlog.get_logger().bind(component="llm_service")
        self._load_config(config_path)
        self._check_credentials()

        self.logger.info(
            "llm_service_initialized",
            default_model=self.default_model,
            model_aliases=list(self.models.keys()),
        )

    def _load_config(self, config_path: str) -> None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"LLM config not found: {config_path}")

        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if config is None:
            raise ValueError(f"Config file is empty or invalid: {config_path}")

        self.default_model = config.get("default_model", "main")
        self.models: Dict[str, str] = config.get("models", {})
        self.model_params: Dict[str, Dict[str, Any]] = config.get("model_params", {})
        self.default_params: Dict[str, Any] = config.get("default_params", {})

        if not self.models:
            raise ValueError("Config must define at least one model in 'models' section")

        retry_config = config.get("retry_policy", {})
        self.retry_policy = RetryPolicy(
            max_attempts=retry_config.get("max_attempts", 3),
            backoff_multiplier=retry_config.get("backoff_multiplier", 2.0),
            timeout=retry_config.get("timeout", 30),
            retry_on_errors=retry_config.get("retry_on_errors", []),
        )

        self.logging_config = config.get("logging", {})
        self.provider_config = config.get("providers", {})

    def _check_credentials(self) -> None:
        """Warn (don't fail) when a configured provider key is missing."""
        for provider, settings in self.provider_config.items():
            api_key_env = (settings or {}).get("api_key_env")
            if api_key_env and not os.getenv(api_key_env):
                self.logger.warning(
                    "provider_api_key_missing",
                    provider=provider,
                    env_var=api_key_env,
                    hint="Set environment variable for API access",
                )

    def _resolve_model(self, model_alias: Optional[str]) -> str:
        """Resolve an alias to a model name; unknown aliases pass through unchanged."""
        if model_alias is None:
            model_alias = self.default_model
        resolved = self.models.get(model_alias, model_alias)
        self.logger.debug("model_resolved", model_alias=model_alias, resolved_model=resolved)
        return resolved

    def _get_model_parameters(self, model: str) -> Dict[str, Any]:
        """Exact model match, then model-family prefix match, then defaults."""
        if model in self.model_params:
            return self.model_params[model].copy()

        for model_key, params in self.model_params.items():
            if model.startswith(model_key):
                return params.copy()

        return self.default_params.copy()

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Perform an LLM completion with retry logic.

        Returns:
            Dict with ``success`` and either ``content``/``usage``/``latency_ms``
            or ``error``/``error_type``.
        """
        actual_model = self._resolve_model(model)
        merged = {**self._get_model_parameters(actual_model), **kwargs}
        params = {k: v for k, v in merged.items() if k in ALLOWED_PARAMS}

        for attempt in range(self.retry_policy.max_attempts):
            try:
                start_time = time.time()
                response = await litellm.acompletion(
                    model=actual_model,
                    messages=messages,
                    timeout=self.retry_policy.timeout,
                    **params,
                )

                content = response.choices[0].message.content
                usage = getattr(response, "usage", {})
                if isinstance(usage, dict):
                    token_stats = usage
                else:
                    token_stats = {
                        "total_tokens": getattr(usage, "total_tokens", 0),
                        "prompt_tokens": getattr(usage, "prompt_tokens", 0),
                        "completion_tokens": getattr(usage, "completion_tokens", 0),
                    }
                latency_ms = int((time.time() - start_time) * 1000)

                if self.logging_config.get("log_token_usage", True):
                    self.logger.info(
                        "llm_completion_success",
                        model=actual_model,
                        tokens=token_stats.get("total_tokens", 0),
                        latency_ms=latency_ms,
                    )

                return {
                    "success": True,
                    "content": content,
                    "usage": token_stats,
                    "model": actual_model,
                    "latency_ms": latency_ms,
                }

            except Exception as e:
                error_type = type(e).__name__
                error_msg = str(e)

                should_retry = attempt < self.retry_policy.max_attempts - 1 and any(
                    err in error_type or err in error_msg
                    for err in self.retry_policy.retry_on_errors
                )
                if not should_retry:
                    self.logger.error(
                        "llm_completion_failed",
                        model=actual_model,
                        error_type=error_type,
                        error=error_msg[:200],
                        attempts=attempt + 1,
                    )
                    return {
                        "success": False,
                        "error": error_msg,
                        "error_type": error_type,
                        "model": actual_model,
                    }

                backoff_time = self.retry_policy.backoff_multiplier**attempt
                self.logger.warning(
                    "llm_completion_retry",
                    model=actual_model,
                    error_type=error_type,
                    attempt=attempt + 1,
                    backoff_seconds=backoff_time,
                )
                await asyncio.sleep(backoff_time)

        return {"success": False, "error": "Max retries exceeded", "model": actual_model}
