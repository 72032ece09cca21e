"""Shared fixtures: a scripted planner stub and a small capability registry."""

from typing import Any

import pytest

from taskpilot.core.domain.capabilities import CapabilityRegistry, FunctionCapability
from taskpilot.core.domain.events import Action


class ScriptedPlanner:
    """
    PlannerProtocol stub.

    ``script`` entries are returned (Action) or raised (Exception) in order;
    once exhausted, ``default`` is returned forever. ``satisfied_after``
    makes ``is_goal_satisfied`` return True once that many calls have been
    made.
    """

    def __init__(
        self,
        script: list[Any] | None = None,
        default: Action | None = None,
        satisfied_after: int | None = None,
        recap: str | None = "recap",
    ):
        self.script = list(script or [])
        self.default = default or Action.complete("done")
        self.satisfied_after = satisfied_after
        self.recap = recap
        self.next_action_calls: list[dict[str, Any]] = []
        self.judge_calls = 0
        self.summarize_calls: list[str] = []

    async def next_action(self, goal, context, recent_steps, capabilities, settings=None):
        self.next_action_calls.append(
            {
                "goal": goal,
                "context": context,
                "recent_steps": list(recent_steps),
                "capabilities": [c.name for c in capabilities],
            }
        )
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, Exception):
            raise item
        return item

    async def is_goal_satisfied(self, goal, step_history, settings=None):
        self.judge_calls += 1
        return self.satisfied_after is not None and self.judge_calls >= self.satisfied_after

    async def summarize(self, goal, step_history, settings=None, outcome="completed"):
        self.summarize_calls.append(outcome)
        if self.recap is None:
            raise RuntimeError("summary unavailable")
        return self.recap


@pytest.fixture
def echo_calls():
    return []


@pytest.fixture
def registry(echo_calls):
    """Registry with ``echo`` (requires ``text``) and ``boom`` (always raises)."""

    async def echo(params):
        echo_calls.append(params)
        return {"success": True, "data": {"echo": params["text"]}}

    async def boom(params):
        raise RuntimeError("kaboom")

    reg = CapabilityRegistry()
    reg.register(
        FunctionCapability(
            "echo",
            "Echo the given text",
            echo,
            {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]},
        )
    )
    reg.register(FunctionCapability("boom", "Always fails", boom, category="testing"))
    reg.seal()
    return reg


@pytest.fixture
def scripted_planner():
    """The ScriptedPlanner class, so tests can build planners with their own scripts."""
    return ScriptedPlanner
