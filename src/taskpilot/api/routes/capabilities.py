from fastapi import APIRouter, Depends, HTTPException, status

from taskpilot import __version__
from taskpilot.api.routes.sessions import get_executor
from taskpilot.application.executor import GoalExecutor
from taskpilot.core.domain.capabilities import Found

router = APIRouter()
health_router = APIRouter()


@router.get("/capabilities")
async def list_capabilities(
    category: str | None = None,
    q: str | None = None,
    executor: GoalExecutor = Depends(get_executor),
):
    """Capabilities advertised to the planner, optionally filtered."""
    registry = executor.capabilities
    descriptors = registry.search(q) if q else registry.list()
    if category:
        descriptors = [d for d in descriptors if d.category == category]
    return {
        "capabilities": [d.to_dict() for d in descriptors],
        "categories": registry.by_category(),
        "count": len(descriptors),
    }


@router.get("/capabilities/{name}")
async def get_capability(name: str, executor: GoalExecutor = Depends(get_executor)):
    result = executor.capabilities.lookup(name)
    if not isinstance(result, Found):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Capability not found: {name}",
        )
    return result.descriptor.to_dict()


@router.get("/templates")
async def list_templates(executor: GoalExecutor = Depends(get_executor)):
    templates = executor.templates.all()
    return {"templates": [t.to_dict() for t in templates], "count": len(templates)}


@health_router.get("/health")
async def health(executor: GoalExecutor = Depends(get_executor)):
    return {
        "status": "ok",
        "version": __version__,
        "capabilities": len(executor.capabilities),
        "running_sessions": len(executor.sessions.list()),
    }
