"""Clients for remote asynchronous job services.

Each service accepts a job, answers with a ticket and exposes the job's
status and result under ``/jobs/{ticket}``.
"""

import logging
from typing import Any, Optional

import httpx

from bpmworker.config import settings
from bpmworker.errors import NotFoundError, RetryableRemoteError
from bpmworker.models import IngestResult, JobStatus

logger = logging.getLogger(__name__)


class RemoteJobClient:
    """Shared HTTP plumbing for ticket based job services."""

    service = "Remote job"

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout or settings.remote_job_timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _check(self, response: httpx.Response) -> httpx.Response:
        if response.status_code == 503:
            raise RetryableRemoteError(
                f"[{self.service}] Service unavailable: {response.request.url}"
            )
        response.raise_for_status()
        return response

    async def _submit(self, path: str, payload: dict[str, Any]) -> str:
        response = self._check(await self._client.post(path, json=payload))
        ticket = response.json()["ticket"]
        logger.debug(f"Job accepted. [service={self.service}, ticket={ticket}]")
        return ticket

    async def get_status(self, ticket: str) -> JobStatus:
        response = self._check(await self._client.get(f"/jobs/{ticket}/status"))
        return self._to_status(response.json(), ticket)

    async def get_result(self, ticket: str) -> Any:
        response = self._check(await self._client.get(f"/jobs/{ticket}/result"))
        return response.json()

    @staticmethod
    def _to_status(data: dict[str, Any], ticket: Optional[str] = None) -> JobStatus:
        known = {"ticket", "completed", "success", "comment", "status"}
        return JobStatus(
            ticket=data.get("ticket") or ticket,
            completed=bool(data.get("completed")),
            success=bool(data.get("success")),
            comment=data.get("comment"),
            status=data.get("status"),
            payload={k: v for k, v in data.items() if k not in known},
        )


class IngestClient(RemoteJobClient):
    """Geodata ingestion service."""

    service = "INGEST Service"

    async def get_ticket(self, idempotent_key: str) -> Optional[str]:
        """Ticket of a job already submitted with this key, if any."""
        response = await self._client.get("/jobs/ticket", params={"idempotentKey": idempotent_key})
        if response.status_code == 404:
            return None
        return self._check(response).json().get("ticket")

    async def ingest_async(self, idempotent_key: str, path: str, table_name: str) -> str:
        return await self._submit(
            "/ingest",
            {"idempotentKey": idempotent_key, "resource": path, "table": table_name},
        )

    async def get_result(self, ticket: str) -> IngestResult:
        return IngestResult.model_validate(await super().get_result(ticket))

    async def publish(self, idempotent_key: str, table_name: str) -> dict[str, Any]:
        response = self._check(
            await self._client.post(
                "/publish", json={"idempotentKey": idempotent_key, "table": table_name}
            )
        )
        return response.json()

    async def remove_data_and_layer(
        self, shard: Optional[str], workspace: str, table_name: str
    ) -> None:
        """Drop an ingested table and its published layer."""
        params = {"shard": shard} if shard else None
        response = await self._client.delete(f"/ingest/{workspace}/{table_name}", params=params)
        if response.status_code == 404:
            raise NotFoundError(f"ingest/{workspace}/{table_name}")
        self._check(response)


class ProfilerClient(RemoteJobClient):
    """Data profiling service."""

    service = "Data Profiler Service"

    async def profile(self, source_type: str, path: str, options: dict[str, Any]) -> str:
        payload = {"resource": path, **{k: v for k, v in options.items() if v is not None}}
        return await self._submit(f"/profile/{source_type.lower()}", payload)

    async def get_metadata(self, ticket: str) -> Any:
        return await self.get_result(ticket)


class IprClient(RemoteJobClient):
    """IP rights protection service."""

    service = "IPR Service"

    async def get_job_status(
        self, ticket: Optional[str], idempotent_key: str
    ) -> Optional[JobStatus]:
        """Status by ticket, or by idempotent key when no ticket is known yet."""
        params = {"ticket": ticket} if ticket else {"idempotentKey": idempotent_key}
        response = await self._client.get("/jobs/status", params=params)
        if response.status_code == 404:
            return None
        return self._to_status(self._check(response).json(), ticket)

    async def embed_fictitious(
        self, idempotent_key: str, path: str, options: dict[str, Any]
    ) -> str:
        payload = {
            "idempotentKey": idempotent_key,
            "original": path,
            **{k: v for k, v in options.items() if v is not None},
        }
        return await self._submit("/fictitious/embed", payload)
