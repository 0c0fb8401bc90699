"""REST API router."""

from fastapi import APIRouter, Depends

from bpmworker import __version__
from bpmworker.api.deps import get_registry
from bpmworker.api.schemas import (
    HealthResponse,
    MetricsResponse,
    SubscriptionSchema,
    SubscriptionsResponse,
)
from bpmworker.config import settings
from bpmworker.observability.metrics import metrics
from bpmworker.tasks.dispatch import is_running
from bpmworker.worker.registry import DispatchRegistry

router = APIRouter(prefix="/v1")


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        worker_id=settings.worker_id,
        dispatching=is_running(),
    )


@router.get("/subscriptions", response_model=SubscriptionsResponse)
async def list_subscriptions(registry: DispatchRegistry = Depends(get_registry)):
    """Topics this worker fetches and their lock durations."""
    return SubscriptionsResponse(
        subscriptions=[
            SubscriptionSchema(
                topic=t.topic_name,
                lock_duration_ms=t.lock_duration_ms,
                tasks=metrics.topic_summary(t.topic_name),
            )
            for t in registry.topics()
        ],
        in_flight=registry.in_flight,
        max_concurrency=registry.max_concurrency,
    )


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics():
    """Counters, gauges and handler durations."""
    return MetricsResponse(**metrics.snapshot())
