"""
Core Domain Models

Value objects shared by the registry, the planner, the execution loop and
the session registry.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class ExecutionResult:
    """
    Normalized outcome of a capability invocation.

    Every capability result, and every failure the loop records in place of
    one, reduces to this shape.

    Attributes:
        success: Whether the invocation succeeded
        data: Result payload (success only)
        error: Error message (failure only)
        side_effects: Optional description of what the invocation changed
        details: Extra structured information (error type, violations, timing)
    """

    success: bool
    data: Any = None
    error: str | None = None
    side_effects: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None, side_effects: str | None = None) -> "ExecutionResult":
        return cls(success=True, data=data, side_effects=side_effects)

    @classmethod
    def failure(cls, error: str, **details: Any) -> "ExecutionResult":
        return cls(success=False, error=error, details=details)

    @classmethod
    def from_raw(cls, raw: Any) -> "ExecutionResult":
        """
        Normalize whatever a capability returned.

        Accepts an ExecutionResult, or a dict in the ``{"success": ...}``
        shape tools traditionally return. Anything else is a contract
        violation and becomes a failure.
        """
        if isinstance(raw, ExecutionResult):
            return raw

        if isinstance(raw, dict):
            if "success" not in raw:
                return cls.failure(
                    "Capability returned a result without a 'success' field",
                    error_type="ContractViolation",
                )
            payload = {
                k: v
                for k, v in raw.items()
                if k not in ("success", "error", "data", "side_effects")
            }
            data = raw.get("data")
            if data is None and payload:
                data = payload
            success = bool(raw["success"])
            error = raw.get("error")
            if not success and not error:
                error = "Capability reported failure without an error message"
            return cls(
                success=success,
                data=data,
                error=error,
                side_effects=raw.get("side_effects"),
            )

        return cls.failure(
            f"Capability returned invalid type: {type(raw).__name__}",
            error_type="ContractViolation",
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.success:
            data["data"] = self.data
        else:
            data["error"] = self.error
        if self.side_effects:
            data["side_effects"] = self.side_effects
        if self.details:
            data["details"] = dict(self.details)
        return data


class SessionStatus(str, Enum):
    """Lifecycle status of a session. Transitions only leave RUNNING."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.RUNNING


class TerminationReason(str, Enum):
    """Why a session left RUNNING."""

    GOAL_COMPLETE = "goal_complete"
    GOAL_SATISFIED = "goal_satisfied"
    ITERATION_BUDGET_EXHAUSTED = "iteration_budget_exhausted"
    CONSECUTIVE_PLANNER_FAILURE = "consecutive_planner_failure"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class FinalSummary:
    """
    Summary attached to every terminal session.

    Attributes:
        reason: Why the session ended
        message: Short structured explanation (always present)
        recap: Natural-language recap from the completion service, if obtainable
    """

    reason: TerminationReason
    message: str
    recap: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"reason": self.reason.value, "message": self.message, "recap": self.recap}


@dataclass(frozen=True)
class LoopSettings:
    """
    Per-session execution settings.

    Attributes:
        max_iterations: Upper bound on iterations (planner calls that produce a step)
        max_consecutive_planner_failures: Planner failures in a row tolerated; one more ends the session
        recent_window: Size of the recency window (memory ring and planner context)
        model: Completion service model alias
        temperature: Sampling temperature for action selection
        judge_temperature: Sampling temperature for the completion judgement
        request_timeout: Deadline in seconds for each completion service call
        invocation_timeout: Deadline in seconds for each capability invocation
    """

    max_iterations: int = 10
    max_consecutive_planner_failures: int = 3
    recent_window: int = 10
    model: str = "main"
    temperature: float = 0.7
    judge_temperature: float = 0.3
    request_timeout: float = 60.0
    invocation_timeout: float = 120.0

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.max_consecutive_planner_failures < 1:
            raise ValueError("max_consecutive_planner_failures must be at least 1")
        if self.recent_window < 1:
            raise ValueError("recent_window must be at least 1")

    @classmethod
    def from_config(cls, config: dict[str, Any] | None) -> "LoopSettings":
        """Build settings from a profile's ``loop`` section, ignoring unknown keys."""
        config = config or {}
        known = {k: v for k, v in config.items() if k in cls.__dataclass_fields__}
        return cls(**known)
