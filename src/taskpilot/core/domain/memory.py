"""
Session memory: a bounded short-term ring of recent steps, the unbounded
step history, and the caller-supplied context blob.

The ring feeds the planner its recency context and never grows past its
capacity. The history is the authoritative record and is never trimmed.
"""

import copy
from collections import deque
from typing import Any

from taskpilot.core.domain.events import StepRecord

DEFAULT_RECENT_WINDOW = 10


class MemoryStore:
    """Per-session memory. Owned exclusively by the session's execution loop."""

    def __init__(self, capacity: int = DEFAULT_RECENT_WINDOW, context: dict[str, Any] | None = None):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._recent: deque[StepRecord] = deque(maxlen=capacity)
        self._history: list[StepRecord] = []
        self._context: dict[str, Any] = dict(context or {})

    def append_step(self, record: StepRecord) -> None:
        self._recent.append(record)
        self._history.append(record)

    def recent_steps(self, k: int | None = None) -> list[StepRecord]:
        """Last ``k`` ring entries (all of them when k is None), oldest first."""
        steps = list(self._recent)
        if k is None:
            return steps
        if k <= 0:
            return []
        return steps[-k:]

    @property
    def history(self) -> list[StepRecord]:
        """Copy of the full step history."""
        return list(self._history)

    def __len__(self) -> int:
        return len(self._history)

    def get_context(self) -> dict[str, Any]:
        """Deep copy; nested values are never shared with callers."""
        return copy.deepcopy(self._context)

    def merge_context(self, patch: dict[str, Any]) -> dict[str, Any]:
        """Shallow merge; keys in ``patch`` win."""
        self._context.update(patch)
        return self.get_context()
