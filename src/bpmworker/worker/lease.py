"""Task lease - time-bounded ownership of one unit of work."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Protocol, runtime_checkable

from bpmworker.errors import LeaseLostError
from bpmworker.models import ExternalTask
from bpmworker.observability.metrics import metrics
from bpmworker.utils.time import expiry_after, utc_now

logger = logging.getLogger(__name__)


@runtime_checkable
class LeaseKeepAlive(Protocol):
    """Capability to push back the expiry of the lease currently held."""

    async def extend(self) -> None: ...


class LockExtender(Protocol):
    async def extend_lock(self, task_id: str, new_duration_ms: int) -> None: ...


class TaskLease:
    """
    Ownership of one fetched unit of work.

    Created when a task is fetched, mutated only by `extend`, and dropped
    once the task is resolved. Handlers must extend before `lease_expiry`
    whenever an operation may outlast half of `lease_duration_ms`.
    """

    def __init__(self, task: ExternalTask, extender: LockExtender, lease_duration_ms: int):
        self.task = task
        self.lease_duration_ms = lease_duration_ms
        self.lease_expiry: datetime = task.lock_expiration_time or expiry_after(lease_duration_ms)
        self.extensions = 0
        self.lost = False
        self._extender = extender

    @property
    def unit_id(self) -> str:
        return self.task.id

    @property
    def business_key(self) -> Optional[str]:
        return self.task.business_key

    @property
    def variables(self) -> dict[str, Any]:
        return self.task.variables

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the lease has expired."""
        return (now or utc_now()) >= self.lease_expiry

    async def extend(self, new_duration_ms: Optional[int] = None) -> None:
        """
        Extend the lease by `new_duration_ms` (default: the topic's duration).

        Safe to call repeatedly. When the engine refuses because the lease
        already expired or moved to another worker, the refusal is logged
        and ignored.
        """
        duration = self.lease_duration_ms if new_duration_ms is None else new_duration_ms
        try:
            await self._extender.extend_lock(self.unit_id, duration)
        except LeaseLostError as e:
            self.lost = True
            metrics.inc_counter("lease.lost", self.task.topic_name)
            logger.warning(f"Failed to extend lock. [taskId={self.unit_id}]: {e.message}")
            return

        self.lease_expiry = expiry_after(duration)
        self.extensions += 1
        metrics.inc_counter("lease.extended", self.task.topic_name)
        logger.debug(f"Extended lock. [taskId={self.unit_id}, duration={duration}]")


@asynccontextmanager
async def keep_alive(lease: LeaseKeepAlive) -> AsyncIterator[LeaseKeepAlive]:
    """Run a block and extend the lease on every exit path."""
    try:
        yield lease
    finally:
        await lease.extend()
