"""
Tests for the worker's status API.
"""

import pytest
from starlette.testclient import TestClient

from conftest import FakeEngine

from bpmworker import __version__
from bpmworker.config import settings
from bpmworker.handlers import CancelAccountRegistrationHandler
from bpmworker.main import app
from bpmworker.observability.metrics import MetricsRegistry, metrics
from bpmworker.worker import DispatchRegistry


@pytest.fixture
def client():
    # Not used as a context manager, so the lifespan (database, fetch loop) does not run
    yield TestClient(app)
    app.state.registry = None


def test_health_reports_worker_identity(client):
    response = client.get("/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["version"] == __version__
    assert body["worker_id"] == settings.worker_id
    assert body["dispatching"] is False


def test_subscriptions_before_start(client):
    app.state.registry = None

    response = client.get("/v1/subscriptions")

    assert response.status_code == 503


def test_subscriptions_list_topics(client):
    registry = DispatchRegistry(FakeEngine(), max_concurrency=4)
    registry.register(CancelAccountRegistrationHandler(accounts=None))
    registry.subscribe("ingest", 60000, CancelAccountRegistrationHandler(accounts=None))
    app.state.registry = registry
    metrics.inc_counter("tasks.fetched", "ingest", 2)
    metrics.inc_counter("tasks.completed", "ingest")

    response = client.get("/v1/subscriptions")

    assert response.status_code == 200
    body = response.json()
    assert [s["topic"] for s in body["subscriptions"]] == ["cancelAccountRegistration", "ingest"]
    assert body["subscriptions"][0]["lock_duration_ms"] == (
        settings.cancel_account_registration_lock_duration_ms
    )
    assert body["subscriptions"][1]["lock_duration_ms"] == 60000
    assert body["subscriptions"][1]["tasks"] == {
        "fetched": 2,
        "completed": 1,
        "failed": 0,
        "business_errors": 0,
    }
    assert body["in_flight"] == 0
    assert body["max_concurrency"] == 4


def test_metrics_snapshot(client):
    metrics.inc_counter("tasks.completed", "ingest")
    metrics.observe("tasks.duration_ms", 12.0, "ingest")

    response = client.get("/v1/metrics")

    body = response.json()
    assert body["counters"] == {"tasks.completed{topic=ingest}": 1.0}
    assert body["histograms"]["tasks.duration_ms{topic=ingest}"]["count"] == 1


def test_duration_percentiles_use_recent_samples():
    registry = MetricsRegistry()
    for value in range(1, 101):
        registry.observe("tasks.duration_ms", float(value), "ingest")

    snapshot = registry.snapshot()["histograms"]["tasks.duration_ms{topic=ingest}"]

    assert snapshot["count"] == 100
    assert snapshot["min"] == 1.0
    assert snapshot["max"] == 100.0
    assert snapshot["p50"] == 51.0
    assert snapshot["p95"] == 96.0
