"""External task model - unit of work fetched from the engine."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class FetchTopic(BaseModel):
    """Topic entry of a fetch-and-lock request."""

    topic_name: str
    lock_duration_ms: int = Field(..., gt=0)


class ExternalTask(BaseModel):
    """Unit of work leased from the engine's external task queue."""

    id: str
    topic_name: str
    worker_id: Optional[str] = None
    business_key: Optional[str] = None

    # Decoded variables in the order the engine returned them
    variables: dict[str, Any] = Field(default_factory=dict)

    lock_expiration_time: Optional[datetime] = None
    process_instance_id: Optional[str] = None
    process_definition_key: Optional[str] = None
    retries: Optional[int] = None


class ProcessInstance(BaseModel):
    """Running or historic process instance reference."""

    id: str
    business_key: Optional[str] = None
    definition_id: Optional[str] = None
    ended: bool = False
