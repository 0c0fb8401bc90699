"""HTTP API."""

from bpmworker.api.router import router

__all__ = ["router"]
