"""
Chat route.

Runs a message as a goal and answers synchronously with the session's
recap and the actions taken. A request that outlives ``timeout_seconds``
returns the still-running session id so the caller can poll it.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from taskpilot.api.routes.sessions import SubmissionOptions, get_executor
from taskpilot.application.executor import GoalExecutor

router = APIRouter()


class ChatRequest(SubmissionOptions):
    message: str = Field(..., min_length=1)
    conversation_id: Optional[str] = None
    context: dict[str, Any] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=120.0, gt=0)


class ChatResponse(BaseModel):
    response: Optional[str]
    conversation_id: str
    session_id: str
    status: str
    actions: list[dict[str, Any]]


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, executor: GoalExecutor = Depends(get_executor)):
    """Chat with the engine: the message becomes a goal and the recap is the reply."""
    try:
        conversation_id, snapshot = await executor.chat(
            request.message,
            conversation_id=request.conversation_id,
            context=request.context,
            overrides=request.overrides(),
            caller=request.caller(),
            timeout=request.timeout_seconds,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    summary = snapshot.final_summary
    reply = None
    if summary:
        reply = summary.recap or summary.message

    return ChatResponse(
        response=reply,
        conversation_id=conversation_id,
        session_id=snapshot.session_id,
        status=snapshot.status.value,
        actions=[step.to_dict() for step in snapshot.step_history],
    )
