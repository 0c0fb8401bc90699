"""API dependencies."""

from fastapi import HTTPException, Request

from bpmworker.worker.registry import DispatchRegistry


def get_registry(request: Request) -> DispatchRegistry:
    """Dispatch registry created by the application lifespan."""
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Worker is not started")
    return registry
