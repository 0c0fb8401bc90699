"""Remote asynchronous job models."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class JobStatus(BaseModel):
    """Status report of a remote job."""

    ticket: Optional[str] = None
    completed: bool = False
    success: bool = False
    comment: Optional[str] = None
    status: Optional[str] = None

    # Service-specific extras (e.g. output path of a protected file)
    payload: dict[str, Any] = Field(default_factory=dict)

