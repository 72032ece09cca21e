"""
Application Layer - Goal Executor Service

Service layer used by both the CLI and the HTTP API. It owns the wired
engine (capability registry, session registry, goal templates) and adds the
caller-facing conveniences on top of the session registry:

- per-submission overrides of the profile's loop settings
- caller identity merged into the session context
- named goal templates
- submit-and-wait for synchronous callers (CLI, chat)
"""

import dataclasses
import time
import uuid
from typing import Any, Optional

import structlog

from taskpilot.application.session_registry import SessionRegistry
from taskpilot.application.templates import TemplateCatalog
from taskpilot.core.domain.capabilities import CapabilityRegistry
from taskpilot.core.domain.models import LoopSettings
from taskpilot.core.domain.session import SessionSnapshot
from taskpilot.core.prompts.orchestration_prompts import CHAT_GOAL_TEMPLATE

logger = structlog.get_logger()


class GoalExecutor:
    """Unified entry point for submitting and tracking goals."""

    def __init__(
        self,
        capabilities: CapabilityRegistry,
        sessions: SessionRegistry,
        templates: Optional[TemplateCatalog] = None,
    ):
        self.capabilities = capabilities
        self.sessions = sessions
        self.templates = templates or TemplateCatalog()
        self.logger = logger.bind(component="goal_executor")

    def resolve_settings(self, overrides: Optional[dict[str, Any]] = None) -> LoopSettings:
        """
        Apply per-submission overrides to the default loop settings.

        Unknown keys and None values are ignored.

        Raises:
            ValueError: If an override produces invalid settings
        """
        base = self.sessions.default_settings
        if not overrides:
            return base
        known = {
            k: v
            for k, v in overrides.items()
            if v is not None and k in LoopSettings.__dataclass_fields__
        }
        return dataclasses.replace(base, **known) if known else base

    async def submit_goal(
        self,
        goal: str,
        context: Optional[dict[str, Any]] = None,
        overrides: Optional[dict[str, Any]] = None,
        caller: Optional[dict[str, Any]] = None,
    ) -> str:
        """
        Submit a goal and return its session id immediately.

        Args:
            goal: Natural-language goal
            context: Caller-supplied context blob
            overrides: Loop setting overrides (max_iterations, model, temperature, ...)
            caller: Identity of the (already authorized) caller, merged into the
                context as ``caller``

        Raises:
            ValueError: If the goal is empty or the overrides are invalid
        """
        settings = self.resolve_settings(overrides)
        session_context = dict(context or {})
        if caller:
            session_context["caller"] = {k: v for k, v in caller.items() if v is not None}

        session_id = await self.sessions.submit(goal, session_context, settings)
        self.logger.info(
            "goal.submitted",
            session_id=session_id,
            goal=goal[:100],
            has_caller=bool(caller),
            overrides=sorted(overrides or {}),
        )
        return session_id

    async def submit_template(
        self,
        name: str,
        parameters: Optional[dict[str, Any]] = None,
        context: Optional[dict[str, Any]] = None,
        overrides: Optional[dict[str, Any]] = None,
        caller: Optional[dict[str, Any]] = None,
    ) -> str:
        """
        Render a named goal template and submit it.

        Raises:
            TemplateNotFound: If no template has this name
            InvalidParameters: If a template placeholder cannot be filled
        """
        template = self.templates.get(name)
        goal = template.render(parameters)
        template_context = {"template": name, "parameters": dict(parameters or {})}
        template_context.update(context or {})
        return await self.submit_goal(goal, template_context, overrides, caller)

    async def run_goal(
        self,
        goal: str,
        context: Optional[dict[str, Any]] = None,
        overrides: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
        caller: Optional[dict[str, Any]] = None,
    ) -> SessionSnapshot:
        """Submit a goal and wait for its session to finish (or ``timeout``)."""
        start_time = time.time()
        session_id = await self.submit_goal(goal, context, overrides, caller)
        snapshot = await self.sessions.wait(session_id, timeout=timeout)

        self.logger.info(
            "goal.finished" if snapshot.status.is_terminal else "goal.wait_timeout",
            session_id=session_id,
            status=snapshot.status.value,
            iterations=snapshot.iteration_count,
            duration_seconds=round(time.time() - start_time, 3),
        )
        return snapshot

    async def chat(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        overrides: Optional[dict[str, Any]] = None,
        caller: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> tuple[str, SessionSnapshot]:
        """
        Answer a chat message by running it as a goal and waiting for the outcome.

        Returns:
            ``(conversation_id, snapshot)``; a new conversation id is issued
            when none is given. The snapshot is still RUNNING if ``timeout``
            passed first.

        Raises:
            ValueError: If the message is empty or the overrides are invalid
        """
        if not message or not message.strip():
            raise ValueError("message must not be empty")

        conversation_id = conversation_id or f"conv-{uuid.uuid4().hex[:12]}"
        chat_context = dict(context or {})
        chat_context["conversation_id"] = conversation_id

        snapshot = await self.run_goal(
            CHAT_GOAL_TEMPLATE.format(message=message),
            chat_context,
            overrides,
            timeout=timeout,
            caller=caller,
        )
        return conversation_id, snapshot

    async def close(self) -> None:
        await self.sessions.shutdown()
