"""
Pytest fixtures for BPM worker tests.
"""

import os
from typing import Any, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# Ensure test config is set before importing bpmworker modules.
os.environ.setdefault("BPMWORKER_ENV", "development")
os.environ.setdefault("BPMWORKER_WORKER_ID", "test-worker")
os.environ.setdefault("BPMWORKER_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BPMWORKER_ENGINE_BASE_URL", "http://engine.test/engine-rest")

from bpmworker.db import base as db_base
from bpmworker.db.base import Base
import bpmworker.db.tables  # noqa: F401
from bpmworker.errors import LeaseLostError, NotFoundError
from bpmworker.models import (
    AccountType,
    CatalogueItem,
    DeletionContext,
    DraftRecord,
    ExternalTask,
    FetchTopic,
    IdentityUser,
    IngestionInfo,
    OAuthClient,
    Page,
    ProcessInstance,
    UserService,
)
from bpmworker.observability.metrics import metrics

pytest_plugins = ("pytest_asyncio",)


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine wired into bpmworker.db.base."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    db_base.configure(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()
    db_base.engine = None
    db_base.async_session_factory = None


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


# ============================================================================
# Engine
# ============================================================================


class FakeEngine:
    """In-memory engine recording every call."""

    def __init__(self, batches: Optional[list[list[ExternalTask]]] = None):
        self.batches = list(batches or [])
        self.fetches: list[tuple[list[FetchTopic], Optional[int]]] = []
        self.extensions: list[tuple[str, int]] = []
        self.completed: list[tuple[str, Optional[dict]]] = []
        self.failures: list[dict[str, Any]] = []
        self.bpmn_errors: list[dict[str, Any]] = []
        self.lost_leases: set[str] = set()
        self.fail_resolution = False

        # Process instances
        self.instances: dict[str, ProcessInstance] = {}
        self.historic: dict[str, ProcessInstance] = {}
        self.by_variable: list[ProcessInstance] = []
        self.historic_by_variable: list[ProcessInstance] = []
        self.deleted: list[str] = []
        self.deleted_historic: list[str] = []
        self.started: list[tuple[str, str, dict]] = []

    async def fetch_and_lock(self, topics, max_tasks=None):
        self.fetches.append((list(topics), max_tasks))
        batch = self.batches.pop(0) if self.batches else []
        if max_tasks is not None and len(batch) > max_tasks:
            self.batches.insert(0, batch[max_tasks:])
            batch = batch[:max_tasks]
        return batch

    async def extend_lock(self, task_id, new_duration_ms):
        if task_id in self.lost_leases:
            raise LeaseLostError(task_id, "Lock expired")
        self.extensions.append((task_id, new_duration_ms))

    async def complete(self, task_id, variables=None):
        if self.fail_resolution:
            raise RuntimeError("engine unavailable")
        self.completed.append((task_id, variables))

    async def handle_failure(self, task_id, error_message, error_details, retries, retry_timeout_ms):
        if self.fail_resolution:
            raise RuntimeError("engine unavailable")
        self.failures.append(
            {
                "task_id": task_id,
                "message": error_message,
                "details": error_details,
                "retries": retries,
                "retry_timeout_ms": retry_timeout_ms,
            }
        )

    async def handle_bpmn_error(self, task_id, error_code, error_message=None, variables=None):
        if self.fail_resolution:
            raise RuntimeError("engine unavailable")
        self.bpmn_errors.append(
            {
                "task_id": task_id,
                "code": error_code,
                "message": error_message,
                "variables": variables,
            }
        )

    def resolutions(self, task_id: str) -> int:
        return (
            sum(1 for t, _ in self.completed if t == task_id)
            + sum(1 for f in self.failures if f["task_id"] == task_id)
            + sum(1 for e in self.bpmn_errors if e["task_id"] == task_id)
        )

    async def find_instances_by_variable(self, name, value):
        return list(self.by_variable)

    async def find_historic_instances_by_variable(self, name, value):
        return list(self.historic_by_variable)

    async def find_instance_by_business_key(self, business_key):
        for instance in self.instances.values():
            if instance.business_key == business_key:
                return instance
        return None

    async def delete_instance(self, instance_id):
        if instance_id not in self.instances:
            raise NotFoundError(f"process-instance/{instance_id}")
        del self.instances[instance_id]
        self.deleted.append(instance_id)

    async def delete_historic_instance(self, instance_id):
        if instance_id not in self.historic:
            raise NotFoundError(f"history/process-instance/{instance_id}")
        del self.historic[instance_id]
        self.deleted_historic.append(instance_id)

    async def start_process(self, process_definition_key, business_key, variables=None):
        self.started.append((process_definition_key, business_key, dict(variables or {})))
        instance = ProcessInstance(id=str(uuid4()), business_key=business_key)
        self.instances[instance.id] = instance
        return instance


class FakeLease:
    """Keep-alive that counts extensions."""

    def __init__(self, lease_duration_ms: int = 120000):
        self.lease_duration_ms = lease_duration_ms
        self.extensions = 0

    async def extend(self, new_duration_ms=None):
        self.extensions += 1


def make_task(topic: str = "test", variables: Optional[dict] = None, task_id: Optional[str] = None):
    return ExternalTask(
        id=task_id or str(uuid4()),
        topic_name=topic,
        worker_id="test-worker",
        variables=variables or {},
    )


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def fake_lease():
    return FakeLease()


# ============================================================================
# Deletion collaborators
# ============================================================================


class FakeUserServices:
    def __init__(self, services: Optional[list[UserService]] = None, size: int = 10):
        self.services = list(services or [])
        self.calls: list[int] = []

    async def find_all(self, owner_key, parent_key, page, size):
        self.calls.append(page)
        items = self.services[page * size:(page + 1) * size]
        return Page(items=items, page_index=page, page_size=size)


class FakeIngest:
    def __init__(self, missing: Optional[set[str]] = None):
        self.missing = set(missing or ())
        self.removed: list[tuple[Optional[str], str, str]] = []

    async def remove_data_and_layer(self, shard, workspace, table_name):
        if table_name in self.missing:
            raise NotFoundError(f"ingest/{workspace}/{table_name}")
        self.removed.append((shard, workspace, table_name))


class FakeCatalogue:
    """Published items leave the result set once unpublished."""

    def __init__(self, items: Optional[list[CatalogueItem]] = None):
        self.published = list(items or [])
        self.unpublished: list[str] = []
        self.queries: list[int] = []

    async def find_all_published(self, publisher_key, page, size):
        self.queries.append(page)
        return Page(items=self.published[:size], page_index=page, page_size=size)

    async def unpublish(self, publisher_key, pid):
        item = next(i for i in self.published if i.id == pid)
        self.published.remove(item)
        self.unpublished.append(pid)
        return item


class FakeDrafts:
    def __init__(self, drafts: Optional[list[DraftRecord]] = None):
        self.drafts = list(drafts or [])

    async def find_all_by_publisher(self, publisher_key, page, size):
        items = self.drafts[page * size:(page + 1) * size]
        return Page(items=items, page_index=page, page_size=size)


class FakeSearch:
    def __init__(self, profile_exists: bool = True):
        self.statistics_calls: list[list[str]] = []
        self.removed_profiles: list[UUID] = []
        self.profile_exists = profile_exists

    async def delete_asset_statistics(self, asset_ids):
        self.statistics_calls.append(list(asset_ids))

    async def remove_profile(self, user_key):
        if not self.profile_exists:
            raise NotFoundError(f"profile/{user_key}")
        self.removed_profiles.append(user_key)


class FakeOAuthClients:
    def __init__(self, clients: Optional[list[OAuthClient]] = None):
        self.clients = list(clients or [])
        self.revoked: list[UUID] = []

    async def find_all(self, user_key, page, size):
        items = self.clients[page * size:(page + 1) * size]
        return Page(items=items, page_index=page, page_size=size)

    async def revoke(self, user_id, client_id):
        self.revoked.append(client_id)


class FakeIdentityProvider:
    def __init__(self, users: Optional[list[IdentityUser]] = None):
        self.users = list(users or [])
        self.deleted: list[str] = []

    async def find_users_by_username(self, username):
        return [u for u in self.users if u.username == username]

    async def delete_user(self, user_id):
        self.deleted.append(user_id)


class FakeAccounts:
    def __init__(self, orphans=None, accounts=None):
        self.orphans = list(orphans or [])
        self.accounts = {a.key: a for a in (accounts or [])}
        self.active_tasks: list[tuple[int, Any]] = []
        self.cancelled: list[UUID] = []

    async def find_one_by_key(self, key):
        return self.accounts.get(key)

    async def find_all_orphan_vendors(self):
        return list(self.orphans)

    async def set_active_task(self, account_id, task):
        self.active_tasks.append((account_id, task))

    async def cancel_registration(self, key):
        self.cancelled.append(key)


class FakeScriptRunner:
    def __init__(self, error: Optional[Exception] = None):
        self.runs: list[DeletionContext] = []
        self.error = error

    async def run(self, ctx):
        if self.error is not None:
            raise self.error
        self.runs.append(ctx)


def make_context(keep_alive, **overrides) -> DeletionContext:
    values = dict(
        user_id=42,
        user_key=uuid4(),
        user_parent_key=uuid4(),
        user_name="jane@example.com",
        user_type=AccountType.OPERTUSMUNDI,
        keep_alive=keep_alive,
        user_geodata_shard="s1",
        account_deleted=True,
        contracts_deleted=True,
        file_system_deleted=True,
    )
    values.update(overrides)
    return DeletionContext(**values)


def catalogue_item(pid: str, *tables: str) -> CatalogueItem:
    return CatalogueItem(id=pid, ingestion_info=[IngestionInfo(table_name=t) for t in tables])
