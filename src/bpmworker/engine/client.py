"""Workflow engine REST client.

Covers the external task protocol (fetch and lock, extend lock, complete,
failure, BPMN error) and the process instance operations needed by the
account deletion saga.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

import httpx

from bpmworker.config import Settings, settings as default_settings
from bpmworker.engine.variables import decode_variables, encode_variables
from bpmworker.errors import LeaseLostError, NotFoundError
from bpmworker.models import ExternalTask, FetchTopic, ProcessInstance

logger = logging.getLogger(__name__)

# The engine serializes dates as 2026-01-01T10:00:00.000+0000
ENGINE_DATE_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")


def parse_engine_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    for fmt in ENGINE_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    logger.warning(f"Unrecognized engine date. [value={value}]")
    return None


class EngineClient:
    """
    Async client for the engine's external task REST API.

    Usage:
        async with EngineClient() as engine:
            tasks = await engine.fetch_and_lock(topics)
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or default_settings
        self.worker_id = self.config.worker_id

        auth = None
        if self.config.engine_username:
            auth = httpx.BasicAuth(self.config.engine_username, self.config.engine_password or "")

        # Long polling holds the request open for engine_timeout_ms
        timeout = httpx.Timeout(self.config.engine_timeout_ms / 1000 + 10.0, connect=10.0)
        self._client = httpx.AsyncClient(
            base_url=self.config.engine_base_url.rstrip("/"),
            auth=auth,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "EngineClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # External task protocol
    # ------------------------------------------------------------------

    async def fetch_and_lock(
        self,
        topics: Iterable[FetchTopic],
        max_tasks: Optional[int] = None,
        async_response_timeout_ms: Optional[int] = None,
    ) -> list[ExternalTask]:
        """Fetch and lock a bounded batch of tasks for the given topics."""
        topics = list(topics)
        if not topics:
            return []

        body = {
            "workerId": self.worker_id,
            "maxTasks": max_tasks or self.config.max_tasks,
            "usePriority": True,
            "asyncResponseTimeout": (
                self.config.engine_timeout_ms
                if async_response_timeout_ms is None
                else async_response_timeout_ms
            ),
            "topics": [
                {"topicName": t.topic_name, "lockDuration": t.lock_duration_ms} for t in topics
            ],
        }
        response = await self._client.post("/external-task/fetchAndLock", json=body)
        response.raise_for_status()

        return [self._to_task(item) for item in response.json()]

    async def extend_lock(self, task_id: str, new_duration_ms: int) -> None:
        """Extend the lock of a task held by this worker."""
        response = await self._client.post(
            f"/external-task/{task_id}/extendLock",
            json={"workerId": self.worker_id, "newDuration": new_duration_ms},
        )
        # 404: task gone; 400/500: lock expired or held by another worker
        if response.status_code in (400, 404, 500):
            raise LeaseLostError(task_id, self._error_message(response))
        response.raise_for_status()

    async def complete(self, task_id: str, variables: Optional[dict[str, Any]] = None) -> None:
        """Complete a task, optionally setting process variables."""
        body: dict[str, Any] = {"workerId": self.worker_id}
        if variables:
            body["variables"] = encode_variables(variables)
        response = await self._client.post(f"/external-task/{task_id}/complete", json=body)
        response.raise_for_status()

    async def handle_failure(
        self,
        task_id: str,
        error_message: str,
        error_details: Optional[str],
        retries: int,
        retry_timeout_ms: int,
    ) -> None:
        """Report a failure. Zero retries creates an incident."""
        body = {
            "workerId": self.worker_id,
            "errorMessage": error_message,
            "errorDetails": error_details,
            "retries": retries,
            "retryTimeout": retry_timeout_ms,
        }
        response = await self._client.post(f"/external-task/{task_id}/failure", json=body)
        response.raise_for_status()

    async def handle_bpmn_error(
        self,
        task_id: str,
        error_code: str,
        error_message: Optional[str] = None,
        variables: Optional[dict[str, Any]] = None,
    ) -> None:
        """Report a business error to be caught by the process model."""
        body: dict[str, Any] = {"workerId": self.worker_id, "errorCode": error_code}
        if error_message:
            body["errorMessage"] = error_message
        if variables:
            body["variables"] = encode_variables(variables)
        response = await self._client.post(f"/external-task/{task_id}/bpmnError", json=body)
        response.raise_for_status()

    # ------------------------------------------------------------------
    # Process instances
    # ------------------------------------------------------------------

    async def find_instances_by_variable(self, name: str, value: Any) -> list[ProcessInstance]:
        """Find running process instances with a variable equal to `value`."""
        body = {"variables": [{"name": name, "operator": "eq", "value": str(value)}]}
        response = await self._client.post("/process-instance", json=body)
        response.raise_for_status()
        return [self._to_instance(item) for item in response.json()]

    async def find_historic_instances_by_variable(
        self, name: str, value: Any
    ) -> list[ProcessInstance]:
        """Find historic process instances with a variable equal to `value`."""
        body = {"variables": [{"name": name, "operator": "eq", "value": str(value)}]}
        response = await self._client.post("/history/process-instance", json=body)
        response.raise_for_status()
        return [self._to_instance(item, historic=True) for item in response.json()]

    async def find_instance_by_business_key(self, business_key: str) -> Optional[ProcessInstance]:
        """Return the running process instance for a business key, if any."""
        response = await self._client.get(
            "/process-instance", params={"businessKey": business_key}
        )
        response.raise_for_status()
        items = response.json()
        return self._to_instance(items[0]) if items else None

    async def delete_instance(self, instance_id: str) -> None:
        """Delete a running process instance."""
        response = await self._client.delete(
            f"/process-instance/{instance_id}",
            params={"skipCustomListeners": "true", "skipIoMappings": "true"},
        )
        if response.status_code == 404:
            raise NotFoundError(f"process-instance/{instance_id}")
        response.raise_for_status()

    async def delete_historic_instance(self, instance_id: str) -> None:
        """Delete the history of a process instance."""
        response = await self._client.delete(f"/history/process-instance/{instance_id}")
        if response.status_code == 404:
            raise NotFoundError(f"history/process-instance/{instance_id}")
        response.raise_for_status()

    async def start_process(
        self,
        process_definition_key: str,
        business_key: str,
        variables: Optional[dict[str, Any]] = None,
    ) -> ProcessInstance:
        """Start the latest version of a process definition."""
        body = {"businessKey": business_key, "variables": encode_variables(variables)}
        response = await self._client.post(
            f"/process-definition/key/{process_definition_key}/start", json=body
        )
        response.raise_for_status()
        instance = self._to_instance(response.json())

        logger.info(
            f"Started process instance. [definition={process_definition_key}, "
            f"businessKey={business_key}, id={instance.id}]"
        )
        return instance

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_task(item: dict[str, Any]) -> ExternalTask:
        return ExternalTask(
            id=item["id"],
            topic_name=item["topicName"],
            worker_id=item.get("workerId"),
            business_key=item.get("businessKey"),
            variables=decode_variables(item.get("variables")),
            lock_expiration_time=parse_engine_date(item.get("lockExpirationTime")),
            process_instance_id=item.get("processInstanceId"),
            process_definition_key=item.get("processDefinitionKey"),
            retries=item.get("retries"),
        )

    @staticmethod
    def _to_instance(item: dict[str, Any], historic: bool = False) -> ProcessInstance:
        return ProcessInstance(
            id=item["id"],
            business_key=item.get("businessKey"),
            definition_id=item.get("processDefinitionId") or item.get("definitionId"),
            ended=bool(item.get("ended")) or (historic and item.get("endTime") is not None),
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text
        return data.get("message", "") if isinstance(data, dict) else response.text
