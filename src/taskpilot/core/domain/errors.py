"""
Domain Errors

Error taxonomy for the orchestration engine. Registry-level errors are
raised to the caller of the registry API; capability and planner errors
raised inside an iteration are recovered by the execution loop and turned
into failed step records.
"""

from typing import Any


class TaskpilotError(Exception):
    """Base class for all engine errors."""

    code = "taskpilot_error"


# ---------------------------------------------------------------------------
# Capability registry
# ---------------------------------------------------------------------------


class DuplicateCapability(TaskpilotError):
    """A capability with the same name is already registered."""

    code = "duplicate_capability"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Capability already registered: {name}")


class CapabilityNotFound(TaskpilotError):
    """No capability is registered under the requested name."""

    code = "capability_not_found"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Capability not found: {name}")


class InvalidParameters(TaskpilotError):
    """
    Parameters (or a parameter schema) failed validation.

    Attributes:
        name: Capability name the parameters were meant for
        violations: Human-readable violation messages, one per problem
    """

    code = "invalid_parameters"

    def __init__(self, name: str, violations: list[str]):
        self.name = name
        self.violations = list(violations)
        super().__init__(f"Invalid parameters for '{name}': {'; '.join(self.violations)}")


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class PlannerError(TaskpilotError):
    """A single planner request failed. Recoverable within the iteration budget."""

    code = "planner_error"


class PlannerUnavailable(PlannerError):
    """The completion service failed, timed out or returned an error payload."""

    code = "planner_unavailable"


class PlannerDecodeError(PlannerError):
    """The completion service answered, but not with a decodable action."""

    code = "planner_decode_error"

    def __init__(self, message: str, raw_content: str | None = None):
        self.raw_content = raw_content
        super().__init__(message)


class PlannerNamedUnknownCapability(PlannerError):
    """The planner proposed a capability that is not registered."""

    code = "planner_named_unknown_capability"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Planner proposed unknown capability: {name}")


# ---------------------------------------------------------------------------
# Execution loop outcomes
# ---------------------------------------------------------------------------


class IterationBudgetExhausted(TaskpilotError):
    """The iteration budget ran out. Terminal, but not a failure."""

    code = "iteration_budget_exhausted"

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(f"Iteration budget of {max_iterations} exhausted")


class ConsecutivePlannerFailure(TaskpilotError):
    """Too many planner failures in a row. Ends the session as failed."""

    code = "consecutive_planner_failure"

    def __init__(self, failures: int, last_error: str):
        self.failures = failures
        self.last_error = last_error
        super().__init__(f"{failures} consecutive planner failures, last: {last_error}")


# ---------------------------------------------------------------------------
# Session registry
# ---------------------------------------------------------------------------


class SessionNotFound(TaskpilotError):
    """Unknown or evicted session id."""

    code = "session_not_found"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionNotTerminal(TaskpilotError):
    """Eviction was requested for a session that is still running."""

    code = "session_not_terminal"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session is still running: {session_id}")


class TemplateNotFound(TaskpilotError):
    """No goal template is configured under the requested name."""

    code = "template_not_found"

    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = available or []
        super().__init__(f"Goal template not found: {name}")


def error_details(error: Exception) -> dict[str, Any]:
    """Structured description of an error, used for step records and API payloads."""
    details: dict[str, Any] = {
        "error": str(error),
        "error_type": type(error).__name__,
        "code": getattr(error, "code", "unexpected_error"),
    }
    if isinstance(error, InvalidParameters):
        details["violations"] = error.violations
    return details
