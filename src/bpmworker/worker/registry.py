"""Topic subscriptions and dispatch of leased tasks to handlers."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Optional, Protocol

from bpmworker.config import settings
from bpmworker.models import ExternalTask, FetchTopic
from bpmworker.observability.metrics import metrics
from bpmworker.worker.failures import DEFAULT_ERROR_MESSAGE, ErrorClassifier, FailureReporter
from bpmworker.worker.lease import TaskLease
from bpmworker.worker.variables import VariableAccessor

logger = logging.getLogger(__name__)


class TaskHandler:
    """
    Base class for topic handlers.

    Subclasses set `topic`, optionally `lock_duration_ms` and `error_code`,
    and implement `execute`. The returned mapping, if any, is sent as
    output variables when the task completes. Any exception is classified
    and reported by the registry.
    """

    topic: str = ""
    lock_duration_ms: Optional[int] = None
    error_code: Optional[str] = None

    def lease_duration(self) -> int:
        return self.lock_duration_ms or settings.default_lock_duration_ms

    def error_code_for(self, task: ExternalTask, variables: VariableAccessor) -> Optional[str]:
        """Business error code for a failed task."""
        return self.error_code

    async def execute(
        self, task: ExternalTask, lease: TaskLease, variables: VariableAccessor
    ) -> Optional[dict[str, Any]]:
        raise NotImplementedError


class TaskEngine(Protocol):
    async def fetch_and_lock(
        self, topics: list[FetchTopic], max_tasks: Optional[int] = None
    ) -> list[ExternalTask]: ...

    async def extend_lock(self, task_id: str, new_duration_ms: int) -> None: ...

    async def complete(self, task_id: str, variables: Optional[dict[str, Any]] = None) -> None: ...

    async def handle_failure(
        self,
        task_id: str,
        error_message: str,
        error_details: Optional[str],
        retries: int,
        retry_timeout_ms: int,
    ) -> None: ...

    async def handle_bpmn_error(
        self,
        task_id: str,
        error_code: str,
        error_message: Optional[str] = None,
        variables: Optional[dict] = None,
    ) -> None: ...


class _Subscription:
    def __init__(self, topic: str, lease_duration_ms: int, handler: TaskHandler):
        self.topic = topic
        self.lease_duration_ms = lease_duration_ms
        self.handler = handler


class DispatchRegistry:
    """
    Maps topics to handlers and runs fetched tasks.

    Each fetched task is resolved exactly once: it is completed, failed or
    raised as a business error. If that report itself fails the task is
    left to lease expiry and redelivery.
    """

    def __init__(
        self,
        engine: TaskEngine,
        classifier: Optional[ErrorClassifier] = None,
        reporter: Optional[FailureReporter] = None,
        max_concurrency: Optional[int] = None,
        max_tasks: Optional[int] = None,
    ):
        self.engine = engine
        self.classifier = classifier or ErrorClassifier()
        self.reporter = reporter or FailureReporter(engine)
        self.max_concurrency = max_concurrency or settings.max_concurrency
        self.max_tasks = max_tasks or settings.max_tasks
        self._subscriptions: dict[str, _Subscription] = {}
        self._in_flight: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, topic: str, lease_duration_ms: int, handler: TaskHandler) -> None:
        if topic in self._subscriptions:
            raise ValueError(f"Topic already subscribed: {topic}")
        self._subscriptions[topic] = _Subscription(topic, lease_duration_ms, handler)
        logger.info(f"Created subscription. [topic={topic}, lockDuration={lease_duration_ms}]")

    def register(self, handler: TaskHandler) -> None:
        """Subscribe a handler to its own topic and lease duration."""
        self.subscribe(handler.topic, handler.lease_duration(), handler)

    def unsubscribe(self, topic: str) -> None:
        if self._subscriptions.pop(topic, None) is not None:
            logger.info(f"Removing subscription. [topic={topic}]")

    def topics(self) -> list[FetchTopic]:
        return [
            FetchTopic(topic_name=s.topic, lock_duration_ms=s.lease_duration_ms)
            for s in self._subscriptions.values()
        ]

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def extend(self, lease: TaskLease, new_duration_ms: Optional[int] = None) -> None:
        await lease.extend(new_duration_ms)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def fetch_and_dispatch(self) -> int:
        """Fetch one batch within the free capacity and start its handlers."""
        if not self._subscriptions:
            return 0

        while len(self._in_flight) >= self.max_concurrency:
            await asyncio.wait(set(self._in_flight), return_when=asyncio.FIRST_COMPLETED)

        capacity = min(self.max_tasks, self.max_concurrency - len(self._in_flight))
        tasks = await self.engine.fetch_and_lock(self.topics(), max_tasks=capacity)

        for task in tasks:
            metrics.inc_counter("tasks.fetched", task.topic_name)
            job = asyncio.create_task(self.process(task), name=f"task-{task.id}")
            self._in_flight.add(job)
            job.add_done_callback(self._in_flight.discard)

        return len(tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight handlers to finish."""
        if not self._in_flight:
            return
        done, pending = await asyncio.wait(set(self._in_flight), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} task handlers still running after drain, cancelling")
            for job in pending:
                job.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def process(self, task: ExternalTask) -> None:
        """Run the handler for one task and resolve it."""
        subscription = self._subscriptions.get(task.topic_name)
        if subscription is None:
            logger.error(f"No handler for task. [taskId={task.id}, topic={task.topic_name}]")
            failure = self.classifier.classify(
                LookupError(f"No subscription for topic {task.topic_name}")
            )
            await self._resolve(task, "failure", self.reporter.report(task, failure))
            return

        handler = subscription.handler
        lease = TaskLease(task, self.engine, subscription.lease_duration_ms)
        variables = VariableAccessor(task.variables, task.id)

        logger.info(f"Received task. [taskId={task.id}, topic={task.topic_name}]")
        metrics.add_gauge("tasks.in_flight", 1)
        started = time.perf_counter()
        try:
            output = await handler.execute(task, lease, variables)
        except Exception as e:
            logger.error(
                f"{DEFAULT_ERROR_MESSAGE}. [taskId={task.id}, topic={task.topic_name}]",
                exc_info=True,
            )
            failure = self.classifier.classify(e, self._error_code(handler, task, variables))
            await self._resolve(task, "failure", self.reporter.report(task, failure))
            return
        finally:
            metrics.add_gauge("tasks.in_flight", -1)
            metrics.observe(
                "tasks.duration_ms", (time.perf_counter() - started) * 1000.0, task.topic_name
            )

        if await self._resolve(task, "complete", self.engine.complete(task.id, output)):
            metrics.inc_counter("tasks.completed", task.topic_name)
            logger.info(f"Completed task. [taskId={task.id}, topic={task.topic_name}]")

    @staticmethod
    def _error_code(
        handler: TaskHandler, task: ExternalTask, variables: VariableAccessor
    ) -> Optional[str]:
        try:
            return handler.error_code_for(task, variables)
        except Exception as e:
            logger.warning(f"Falling back to the default error code. [taskId={task.id}]: {e}")
            return handler.error_code

    @staticmethod
    async def _resolve(task: ExternalTask, action: str, call: Awaitable[None]) -> bool:
        try:
            await call
            return True
        except Exception:
            logger.error(
                f"Failed to {action} task; leaving it to lease expiry. [taskId={task.id}]",
                exc_info=True,
            )
            return False
