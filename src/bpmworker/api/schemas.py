"""API response schemas."""

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    worker_id: str
    dispatching: bool = Field(..., description="Whether the fetch loop is running")


class SubscriptionSchema(BaseModel):
    """Topic subscription."""

    topic: str
    lock_duration_ms: int
    tasks: dict[str, int] = Field(default_factory=dict, description="Outcome counts for the topic")


class SubscriptionsResponse(BaseModel):
    """Registered subscriptions and current load."""

    subscriptions: list[SubscriptionSchema]
    in_flight: int
    max_concurrency: int


class MetricsResponse(BaseModel):
    """In-process metrics snapshot."""

    counters: dict[str, float] = Field(default_factory=dict)
    gauges: dict[str, float] = Field(default_factory=dict)
    histograms: dict[str, dict[str, Any]] = Field(default_factory=dict)
