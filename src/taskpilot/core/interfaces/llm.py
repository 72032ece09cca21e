"""
LLM Provider Protocol

Contract for the completion service the planner talks to. Implementations
never raise for service errors; they return ``{"success": False, "error":
...}`` instead.
"""

from typing import Any, Protocol


class LLMProviderProtocol(Protocol):
    """Chat-completion style LLM access."""

    async def complete(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Perform one completion.

        Args:
            messages: Messages with 'role' and 'content'
            model: Model alias (None uses the provider default)
            **kwargs: Sampling parameters (temperature, max_tokens,
                response_format, ...)

        Returns:
            Dict with ``success`` and either ``content`` or ``error``.
        """
        ...
