"""
Application Layer - Session Registry

Concurrent map from session id to the running execution task and, later,
its outcome. Submission spawns an independent ``asyncio.Task`` and returns
the id immediately; the outcome is observable only through ``status``.

Locking:
    The map is guarded by a ``threading.Lock`` that is held only for
    dictionary operations, never across an ``await``. Status polling and
    listing therefore never wait on an in-flight iteration.

Retention:
    Terminal sessions stay queryable until they are evicted explicitly or
    pruned by the RetentionPolicy (older than ``terminal_ttl_seconds``, or
    beyond ``max_terminal_sessions``, oldest first). Running sessions are
    never pruned. If a session store is configured, terminal snapshots are
    archived there before they can be pruned.
"""

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from taskpilot.core.domain.errors import SessionNotFound, SessionNotTerminal
from taskpilot.core.domain.execution_loop import ExecutionLoop
from taskpilot.core.domain.models import LoopSettings
from taskpilot.core.domain.session import Session, SessionSnapshot, SessionSummary
from taskpilot.core.interfaces.sessions import SessionStoreProtocol

logger = structlog.get_logger()


@dataclass(frozen=True)
class RetentionPolicy:
    """
    How long terminal sessions stay in memory.

    Attributes:
        max_terminal_sessions: Upper bound on terminal sessions kept (None = unbounded)
        terminal_ttl_seconds: Age after finishing at which a session is pruned (None = never)
    """

    max_terminal_sessions: int | None = 1000
    terminal_ttl_seconds: float | None = 3600.0

    @classmethod
    def from_config(cls, config: dict[str, Any] | None) -> "RetentionPolicy":
        config = config or {}
        return cls(
            max_terminal_sessions=config.get("max_terminal_sessions", 1000),
            terminal_ttl_seconds=config.get("terminal_ttl_seconds", 3600.0),
        )


@dataclass
class _SessionHandle:
    session: Session
    task: asyncio.Task | None = field(default=None, repr=False)


class SessionRegistry:
    """Lifecycle operations for sessions: submit, status, list, stop, evict."""

    def __init__(
        self,
        execution_loop: ExecutionLoop,
        default_settings: LoopSettings | None = None,
        retention: RetentionPolicy | None = None,
        session_store: SessionStoreProtocol | None = None,
    ):
        self.execution_loop = execution_loop
        self.default_settings = default_settings or LoopSettings()
        self.retention = retention or RetentionPolicy()
        self.session_store = session_store
        self._handles: dict[str, _SessionHandle] = {}
        self._lock = threading.Lock()
        self.logger = logger.bind(component="session_registry")

    async def submit(
        self,
        goal: str,
        context: dict[str, Any] | None = None,
        settings: LoopSettings | None = None,
    ) -> str:
        """
        Start a new session and return its id without waiting for it.

        Must be awaited from inside the event loop that will run the session.

        Raises:
            ValueError: If the goal is empty
        """
        if not goal or not goal.strip():
            raise ValueError("goal must not be empty")

        session = Session(goal=goal, context=context, settings=settings or self.default_settings)
        handle = _SessionHandle(session=session)

        with self._lock:
            self._prune_locked()
            self._handles[session.id] = handle
            handle.task = asyncio.create_task(self._run(session), name=f"session-{session.id}")

        self.logger.info(
            "session.submitted",
            session_id=session.id,
            goal=goal[:100],
            max_iterations=session.settings.max_iterations,
        )
        return session.id

    async def _run(self, session: Session) -> None:
        try:
            await self.execution_loop.run(session)
        finally:
            await self._archive(session.snapshot())
            with self._lock:
                self._prune_locked()

    async def _archive(self, snapshot: SessionSnapshot) -> None:
        if self.session_store is None:
            return
        saved = await self.session_store.save(snapshot.session_id, snapshot.to_dict())
        if not saved:
            self.logger.warning("session.archive_failed", session_id=snapshot.session_id)

    def _handle(self, session_id: str) -> _SessionHandle:
        with self._lock:
            handle = self._handles.get(session_id)
        if handle is None:
            raise SessionNotFound(session_id)
        return handle

    def status(self, session_id: str) -> SessionSnapshot:
        """
        Raises:
            SessionNotFound: If the id is unknown or evicted
        """
        return self._handle(session_id).session.snapshot()

    def list(self, include_terminal: bool = False) -> list[SessionSummary]:
        """Running sessions (all retained sessions with include_terminal), oldest first."""
        with self._lock:
            sessions = [h.session for h in self._handles.values()]
        summaries = [s.summary() for s in sessions if include_terminal or not s.is_terminal]
        return sorted(summaries, key=lambda s: s.created_at)

    def stop(self, session_id: str) -> bool:
        """
        Request cooperative cancellation. Returns immediately.

        Returns:
            True if the flag was set on a running session, False if the
            session had already finished.

        Raises:
            SessionNotFound: If the id is unknown or evicted
        """
        session = self._handle(session_id).session
        if session.is_terminal:
            return False
        session.request_stop()
        self.logger.info("session.stop_requested", session_id=session_id)
        return True

    def evict(self, session_id: str) -> SessionSnapshot:
        """
        Remove a terminal session from the registry.

        Raises:
            SessionNotFound: If the id is unknown or already evicted
            SessionNotTerminal: If the session is still running
        """
        with self._lock:
            handle = self._handles.get(session_id)
            if handle is None:
                raise SessionNotFound(session_id)
            if not handle.session.is_terminal:
                raise SessionNotTerminal(session_id)
            del self._handles[session_id]

        self.logger.info("session.evicted", session_id=session_id)
        return handle.session.snapshot()

    async def wait(self, session_id: str, timeout: float | None = None) -> SessionSnapshot:
        """
        Wait until the session's task finishes (or ``timeout`` passes) and
        return its snapshot. Never cancels the session.
        """
        handle = self._handle(session_id)
        if handle.task is not None and not handle.task.done():
            await asyncio.wait({handle.task}, timeout=timeout)
        return handle.session.snapshot()

    async def shutdown(self) -> None:
        """Cancel every running session task and wait for them to settle."""
        with self._lock:
            tasks = [h.task for h in self._handles.values() if h.task is not None and not h.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.logger.info("session_registry.shutdown", cancelled=len(tasks))

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def _prune_locked(self) -> None:
        """Apply the retention policy. Caller holds the lock."""
        terminal = [
            (sid, h.session) for sid, h in self._handles.items() if h.session.is_terminal
        ]
        if not terminal:
            return

        now = datetime.now(timezone.utc)
        expired: list[str] = []
        ttl = self.retention.terminal_ttl_seconds
        if ttl is not None:
            expired = [
                sid
                for sid, s in terminal
                if s.finished_at and (now - s.finished_at).total_seconds() > ttl
            ]

        remaining = [(sid, s) for sid, s in terminal if sid not in expired]
        limit = self.retention.max_terminal_sessions
        if limit is not None and len(remaining) > limit:
            remaining.sort(key=lambda item: item[1].finished_at or item[1].created_at)
            expired.extend(sid for sid, _ in remaining[: len(remaining) - limit])

        for sid in expired:
            del self._handles[sid]
        if expired:
            self.logger.debug("session.pruned", count=len(expired))
