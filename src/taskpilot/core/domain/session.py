"""
Session state.

A Session is mutated only by its own execution loop. The one exception is
the stop flag, which any caller may set; it is a ``threading.Event`` so the
write is atomic. Readers get ``SessionSnapshot`` deep copies.
"""

import copy
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from taskpilot.core.domain.events import Action, StepRecord
from taskpilot.core.domain.memory import MemoryStore
from taskpilot.core.domain.models import (
    ExecutionResult,
    FinalSummary,
    LoopSettings,
    SessionStatus,
)


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only copy of a session at one point in time."""

    session_id: str
    goal: str
    status: SessionStatus
    iteration_count: int
    max_iterations: int
    context: dict[str, Any]
    step_history: tuple[StepRecord, ...]
    final_summary: FinalSummary | None
    created_at: datetime
    finished_at: datetime | None = None
    stop_requested: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "goal": self.goal,
            "status": self.status.value,
            "iteration_count": self.iteration_count,
            "max_iterations": self.max_iterations,
            "context": self.context,
            "step_history": [step.to_dict() for step in self.step_history],
            "final_summary": self.final_summary.to_dict() if self.final_summary else None,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "stop_requested": self.stop_requested,
        }


@dataclass(frozen=True)
class SessionSummary:
    """Listing entry for operator visibility."""

    session_id: str
    goal: str
    status: SessionStatus
    iteration_count: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "goal": self.goal,
            "status": self.status.value,
            "iteration_count": self.iteration_count,
            "created_at": self.created_at.isoformat(),
        }


class Session:
    """The unit of orchestration state."""

    def __init__(
        self,
        goal: str,
        context: dict[str, Any] | None = None,
        settings: LoopSettings | None = None,
        session_id: str | None = None,
    ):
        self.id = session_id or str(uuid.uuid4())
        self.goal = goal
        self.settings = settings or LoopSettings()
        self.memory = MemoryStore(capacity=self.settings.recent_window, context=context)
        self.status = SessionStatus.RUNNING
        self.iteration_count = 0
        self.final_summary: FinalSummary | None = None
        self.created_at = datetime.now(timezone.utc)
        self.finished_at: datetime | None = None
        self._stop = threading.Event()

    @property
    def context(self) -> dict[str, Any]:
        return self.memory.get_context()

    @property
    def step_history(self) -> list[StepRecord]:
        return self.memory.history

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def request_stop(self) -> None:
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def record_step(self, action: Action | None, result: ExecutionResult) -> StepRecord:
        """Append one iteration's outcome and advance the iteration counter."""
        if self.is_terminal:
            raise RuntimeError(f"Session {self.id} is {self.status.value}; history is closed")
        if self.iteration_count >= self.settings.max_iterations:
            raise RuntimeError(f"Session {self.id} has no iterations left")

        self.iteration_count += 1
        record = StepRecord(iteration=self.iteration_count, action=action, result=result)
        self.memory.append_step(record)
        return record

    def finish(self, status: SessionStatus, summary: FinalSummary) -> None:
        """Move to a terminal status. Allowed exactly once."""
        if not status.is_terminal:
            raise ValueError("finish() requires a terminal status")
        if self.is_terminal:
            raise RuntimeError(
                f"Session {self.id} already {self.status.value}; cannot become {status.value}"
            )
        self.status = status
        self.final_summary = summary
        self.finished_at = datetime.now(timezone.utc)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.id,
            goal=self.goal,
            status=self.status,
            iteration_count=self.iteration_count,
            max_iterations=self.settings.max_iterations,
            context=self.context,
            step_history=tuple(copy.deepcopy(self.memory.history)),
            final_summary=self.final_summary,
            created_at=self.created_at,
            finished_at=self.finished_at,
            stop_requested=self.stop_requested,
        )

    def summary(self) -> SessionSummary:
        return SessionSummary(
            session_id=self.id,
            goal=self.goal,
            status=self.status,
            iteration_count=self.iteration_count,
            created_at=self.created_at,
        )
