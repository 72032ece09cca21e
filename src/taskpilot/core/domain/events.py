"""
Domain Events for Goal Execution

Events are immutable facts about what happened during a session:
- Action: the planner's decision for one iteration
- StepRecord: one (action, result) pair appended after every iteration

Step records form the session's history. The bounded recency window handed
to the planner is built from the same records.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from taskpilot.core.domain.models import ExecutionResult


class ActionKind(str, Enum):
    """Kind of decision the planner can make."""

    INVOKE = "invoke"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Action:
    """
    A planner decision.

    Attributes:
        kind: invoke a capability, or declare the goal complete
        capability: Capability name (invoke only)
        params: Parameters for the capability (invoke only)
        reasoning: Natural-language trace explaining the decision
    """

    kind: ActionKind
    capability: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""

    @classmethod
    def complete(cls, reasoning: str = "") -> "Action":
        return cls(kind=ActionKind.COMPLETE, reasoning=reasoning)

    @classmethod
    def invoke(cls, capability: str, params: dict[str, Any] | None = None, reasoning: str = "") -> "Action":
        return cls(
            kind=ActionKind.INVOKE,
            capability=capability,
            params=dict(params or {}),
            reasoning=reasoning,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "reasoning": self.reasoning}
        if self.kind == ActionKind.INVOKE:
            data["capability"] = self.capability
            data["params"] = dict(self.params)
        return data


@dataclass(frozen=True)
class StepRecord:
    """
    One logged iteration.

    ``action`` is None when the planner itself failed and no decision was
    produced; the failure is then described by ``result.error``.
    """

    iteration: int
    action: Action | None
    result: ExecutionResult
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return self.result.success

    def to_dict(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration,
            "action": self.action.to_dict() if self.action else None,
            "result": self.result.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }
