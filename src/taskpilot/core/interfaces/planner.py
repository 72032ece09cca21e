"""
Planner Protocol

The two decision paths of the execution loop, kept as separate operations
so stubs can drive the loop's state machine in tests without a model.
"""

from typing import Any, Protocol

from taskpilot.core.domain.capabilities import CapabilityDescriptor
from taskpilot.core.domain.events import Action, StepRecord
from taskpilot.core.domain.models import LoopSettings


class PlannerProtocol(Protocol):
    async def next_action(
        self,
        goal: str,
        context: dict[str, Any],
        recent_steps: list[StepRecord],
        capabilities: list[CapabilityDescriptor],
        settings: LoopSettings | None = None,
    ) -> Action:
        """
        Decide the next action.

        Raises:
            PlannerUnavailable: completion service failed or timed out
            PlannerDecodeError: response did not decode into an Action
            PlannerNamedUnknownCapability: response named an unregistered capability
        """
        ...

    async def is_goal_satisfied(
        self,
        goal: str,
        step_history: list[StepRecord],
        settings: LoopSettings | None = None,
    ) -> bool:
        ...

    async def summarize(
        self,
        goal: str,
        step_history: list[StepRecord],
        settings: LoopSettings | None = None,
        outcome: str = "completed",
    ) -> str:
        """Natural-language recap of the session. May raise PlannerError."""
        ...
