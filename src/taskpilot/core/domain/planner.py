"""
Completion Planner

Turns (goal, context, recent steps, capability catalog) into the next
Action by asking the completion service, and separately judges whether the
goal has been reached.

Action selection and the completion judgement are two independent requests.
The judgement runs at a lower temperature and only ever answers yes/no, so
"what next" and "should we stop" never share one ambiguous response.
"""

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Literal

import structlog
import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from taskpilot.core.domain.capabilities import CapabilityDescriptor
from taskpilot.core.domain.errors import (
    PlannerDecodeError,
    PlannerError,
    PlannerNamedUnknownCapability,
    PlannerUnavailable,
)
from taskpilot.core.domain.events import Action, ActionKind, StepRecord
from taskpilot.core.domain.models import LoopSettings
from taskpilot.core.interfaces.llm import LLMProviderProtocol
from taskpilot.core.prompts.orchestration_prompts import (
    JUDGE_PROMPT,
    JUDGE_SYSTEM_PROMPT,
    NEXT_ACTION_PROMPT,
    PLANNER_SYSTEM_PROMPT,
    SUMMARY_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class ActionPayload(BaseModel):
    """
    Wire shape of a planner decision.

    Accepts the older field names (``tool_call``, ``tool``, ``parameters``,
    ``tool_input``) as aliases.
    """

    model_config = ConfigDict(extra="ignore")

    type: Literal["invoke", "complete", "tool_call"]
    capability: str | None = Field(
        default=None, validation_alias=AliasChoices("capability", "tool")
    )
    params: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("params", "parameters", "tool_input"),
    )
    reasoning: str = ""

    @field_validator("params", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return {} if value is None else value

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning_text(cls, value):
        return "" if value is None else str(value)

    @model_validator(mode="after")
    def _invoke_needs_capability(self):
        if self.type != "complete" and not self.capability:
            raise ValueError("invoke action requires a capability name")
        return self

    def to_action(self) -> Action:
        if self.type == "complete":
            return Action.complete(reasoning=self.reasoning)
        return Action.invoke(self.capability, self.params, reasoning=self.reasoning)


class JudgementPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    complete: bool
    reason: str = ""


@dataclass(frozen=True)
class CompletionJudgement:
    complete: bool
    reason: str


def _strip_fences(content: str) -> str:
    content = content.strip()
    match = _FENCE_RE.match(content)
    return match.group(1) if match else content


def decode_action(content: str) -> Action:
    """
    Decode raw completion content into an Action.

    Raises:
        PlannerDecodeError: If the content is not JSON or not an Action shape
    """
    try:
        data = json.loads(_strip_fences(content))
    except json.JSONDecodeError as e:
        raise PlannerDecodeError(f"Planner response is not JSON: {e}", raw_content=content) from e

    if not isinstance(data, dict):
        raise PlannerDecodeError("Planner response is not a JSON object", raw_content=content)

    try:
        return ActionPayload.model_validate(data).to_action()
    except ValidationError as e:
        raise PlannerDecodeError(
            f"Planner response does not match the action shape: {e.errors()[0]['msg']}",
            raw_content=content,
        ) from e


class CompletionPlanner:
    """
    Planner backed by an LLM provider.

    Every completion service call carries its own deadline
    (``settings.request_timeout``); an expired deadline is reported as
    ``PlannerUnavailable`` like any other service failure.
    """

    MAX_STEP_RESULT_CHARS = 2000

    def __init__(
        self,
        llm_provider: LLMProviderProtocol,
        settings: LoopSettings | None = None,
        system_prompt: str | None = None,
    ):
        self.llm_provider = llm_provider
        self.settings = settings or LoopSettings()
        self.system_prompt = system_prompt or PLANNER_SYSTEM_PROMPT
        self.logger = structlog.get_logger().bind(component="planner")

    async def next_action(
        self,
        goal: str,
        context: dict[str, Any],
        recent_steps: list[StepRecord],
        capabilities: list[CapabilityDescriptor],
        settings: LoopSettings | None = None,
    ) -> Action:
        settings = settings or self.settings
        window = recent_steps[-settings.recent_window:] if recent_steps else []

        user_prompt = NEXT_ACTION_PROMPT.format(
            goal=goal,
            context=self._render_context(context),
            window=settings.recent_window,
            recent_steps=self._render_steps(window),
            capabilities=self._render_capabilities(capabilities),
        )
        messages = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        self.logger.debug("next_action_request", goal=goal[:100], recent_steps=len(window))
        content = await self._request(
            messages,
            settings,
            temperature=settings.temperature,
            response_format={"type": "json_object"},
        )

        action = decode_action(content)
        if action.kind == ActionKind.INVOKE:
            known = {c.name for c in capabilities}
            if action.capability not in known:
                self.logger.warning("planner_unknown_capability", capability=action.capability)
                raise PlannerNamedUnknownCapability(action.capability)

        self.logger.info(
            "next_action_decided",
            kind=action.kind.value,
            capability=action.capability,
            reasoning=action.reasoning[:200],
        )
        return action

    async def judge_completion(
        self,
        goal: str,
        step_history: list[StepRecord],
        settings: LoopSettings | None = None,
    ) -> CompletionJudgement:
        """
        Ask the completion service whether the goal is done.

        Raises:
            PlannerError: If the request fails or the answer does not decode
        """
        settings = settings or self.settings
        messages = [
            {"role": "system", "content": JUDGE_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": JUDGE_PROMPT.format(goal=goal, history=self._render_steps(step_history)),
            },
        ]
        content = await self._request(
            messages,
            settings,
            temperature=settings.judge_temperature,
            response_format={"type": "json_object"},
        )
        try:
            payload = JudgementPayload.model_validate(json.loads(_strip_fences(content)))
        except (json.JSONDecodeError, ValidationError) as e:
            raise PlannerDecodeError(f"Completion judgement did not decode: {e}", raw_content=content) from e
        return CompletionJudgement(complete=payload.complete, reason=payload.reason)

    async def is_goal_satisfied(
        self,
        goal: str,
        step_history: list[StepRecord],
        settings: LoopSettings | None = None,
    ) -> bool:
        """True only on an explicit positive judgement; failures count as "not yet"."""
        try:
            judgement = await self.judge_completion(goal, step_history, settings)
        except PlannerError as e:
            self.logger.warning("completion_judgement_failed", error=str(e), error_type=type(e).__name__)
            return False

        self.logger.info("completion_judged", complete=judgement.complete, reason=judgement.reason[:200])
        return judgement.complete

    async def summarize(
        self,
        goal: str,
        step_history: list[StepRecord],
        settings: LoopSettings | None = None,
        outcome: str = "completed",
    ) -> str:
        settings = settings or self.settings
        messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": SUMMARY_PROMPT.format(
                    goal=goal, outcome=outcome, history=self._render_steps(step_history)
                ),
            },
        ]
        return (await self._request(messages, settings, temperature=0.5)).strip()

    async def _request(
        self,
        messages: list[dict[str, Any]],
        settings: LoopSettings,
        **params: Any,
    ) -> str:
        try:
            result = await asyncio.wait_for(
                self.llm_provider.complete(messages=messages, model=settings.model, **params),
                timeout=settings.request_timeout,
            )
        except asyncio.TimeoutError as e:
            self.logger.warning("completion_request_timeout", timeout=settings.request_timeout)
            raise PlannerUnavailable(
                f"Completion service timed out after {settings.request_timeout}s"
            ) from e
        except Exception as e:
            self.logger.error("completion_request_failed", error=str(e), error_type=type(e).__name__)
            raise PlannerUnavailable(f"Completion service error: {e}") from e

        if not result.get("success"):
            raise PlannerUnavailable(f"Completion service error: {result.get('error', 'unknown error')}")

        content = result.get("content")
        if not content:
            raise PlannerDecodeError("Completion service returned empty content", raw_content=content)
        return content

    def _render_context(self, context: dict[str, Any]) -> str:
        if not context:
            return "(none)"
        try:
            return yaml.safe_dump(context, default_flow_style=False, sort_keys=False, allow_unicode=True).strip()
        except yaml.YAMLError:
            return json.dumps(context, indent=2, default=str)

    def _render_steps(self, steps: list[StepRecord]) -> str:
        if not steps:
            return "[]"
        rendered = []
        for step in steps:
            entry = step.to_dict()
            result_text = json.dumps(entry["result"], default=str)
            if len(result_text) > self.MAX_STEP_RESULT_CHARS:
                entry["result"] = result_text[: self.MAX_STEP_RESULT_CHARS] + "...(truncated)"
            rendered.append(entry)
        return json.dumps(rendered, indent=2, default=str)

    def _render_capabilities(self, capabilities: list[CapabilityDescriptor]) -> str:
        if not capabilities:
            return "(no capabilities registered; the only possible action is complete)"
        return json.dumps([c.to_dict() for c in capabilities], indent=2)
