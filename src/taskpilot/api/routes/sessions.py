"""
Session routes.

Submission returns ``202 Accepted`` with the session id as soon as the
session task is spawned; progress is observed by polling
``GET /sessions/{id}``. Authentication happens upstream: the caller
identity fields are taken as already verified and merged into the session
context.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from taskpilot.application.executor import GoalExecutor
from taskpilot.core.domain.errors import (
    InvalidParameters,
    SessionNotFound,
    SessionNotTerminal,
    TemplateNotFound,
)

router = APIRouter()


def get_executor(request: Request) -> GoalExecutor:
    return request.app.state.executor


class SubmissionOptions(BaseModel):
    """Caller identity and per-session overrides shared by all submissions."""

    # Caller identity, verified upstream
    user_id: Optional[str] = None
    user_role: Optional[str] = None
    # Per-session overrides
    max_iterations: Optional[int] = Field(default=None, ge=1)
    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=2)

    def overrides(self) -> dict[str, Any]:
        return {
            "max_iterations": self.max_iterations,
            "model": self.model,
            "temperature": self.temperature,
        }

    def caller(self) -> Optional[dict[str, Any]]:
        if self.user_id is None and self.user_role is None:
            return None
        return {"user_id": self.user_id, "role": self.user_role}


class SubmitGoalRequest(SubmissionOptions):
    """Request to start a session for a goal."""

    goal: str = Field(..., min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)


class SubmitTemplateRequest(SubmissionOptions):
    """Request to start a session from a named goal template."""

    parameters: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)


class SubmitResponse(BaseModel):
    session_id: str
    status: str
    goal: str


class StopResponse(BaseModel):
    session_id: str
    stop_requested: bool
    status: str


@router.post(
    "/sessions",
    response_model=SubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_goal(request: SubmitGoalRequest, executor: GoalExecutor = Depends(get_executor)):
    """Start a session and return its id without waiting for it."""
    try:
        session_id = await executor.submit_goal(
            request.goal,
            context=request.context,
            overrides=request.overrides(),
            caller=request.caller(),
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    snapshot = executor.sessions.status(session_id)
    return SubmitResponse(session_id=session_id, status=snapshot.status.value, goal=snapshot.goal)


@router.post(
    "/sessions/templates/{name}",
    response_model=SubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_template(
    name: str,
    request: SubmitTemplateRequest,
    executor: GoalExecutor = Depends(get_executor),
):
    """Start a session from a predefined goal template."""
    try:
        session_id = await executor.submit_template(
            name,
            parameters=request.parameters,
            context=request.context,
            overrides=request.overrides(),
            caller=request.caller(),
        )
    except TemplateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidParameters as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": str(e), "violations": e.violations},
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    snapshot = executor.sessions.status(session_id)
    return SubmitResponse(session_id=session_id, status=snapshot.status.value, goal=snapshot.goal)


@router.get("/sessions")
async def list_sessions(include_terminal: bool = False, executor: GoalExecutor = Depends(get_executor)):
    """Running sessions; all retained sessions with ``include_terminal=true``."""
    summaries = executor.sessions.list(include_terminal=include_terminal)
    return {"sessions": [s.to_dict() for s in summaries], "count": len(summaries)}


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, executor: GoalExecutor = Depends(get_executor)):
    """Status, iteration count, step history and final summary."""
    try:
        return executor.sessions.status(session_id).to_dict()
    except SessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/sessions/{session_id}/stop", response_model=StopResponse)
async def stop_session(session_id: str, executor: GoalExecutor = Depends(get_executor)):
    """Request cooperative cancellation. Does not wait for the session to stop."""
    try:
        stop_requested = executor.sessions.stop(session_id)
        snapshot = executor.sessions.status(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return StopResponse(
        session_id=session_id,
        stop_requested=stop_requested,
        status=snapshot.status.value,
    )


@router.delete("/sessions/{session_id}")
async def evict_session(session_id: str, executor: GoalExecutor = Depends(get_executor)):
    """Evict a terminal session and return its final snapshot."""
    try:
        return executor.sessions.evict(session_id).to_dict()
    except SessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SessionNotTerminal as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
