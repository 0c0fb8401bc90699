"""Handler for the `ingest` topic."""

import logging
from typing import Any, Optional
from uuid import UUID, uuid4

from bpmworker.config import settings
from bpmworker.errors import RemoteJobFailed
from bpmworker.models import ErrorCodes, ExternalTask, FileResource, IngestResult, JobStatus
from bpmworker.saga.interfaces import IngestJobs, ProviderAssetService
from bpmworker.worker import AsyncJobPoller, TaskHandler, TaskLease, VariableAccessor

logger = logging.getLogger(__name__)

SERVICE_NAME = "INGEST Service"


class IngestHandler(TaskHandler):
    """
    Ingests every file resource of an asset draft into the geodata store.

    The resource id is both the target table name and the idempotent key of
    the ingestion job, so a redelivered task resumes the job it already
    submitted instead of starting another one.
    """

    topic = "ingest"
    error_code = ErrorCodes.PUBLISH_ASSET.value

    def __init__(
        self,
        assets: ProviderAssetService,
        jobs: IngestJobs,
        poller: Optional[AsyncJobPoller] = None,
    ):
        self.assets = assets
        self.jobs = jobs
        self.poller = poller or AsyncJobPoller()
        self.lock_duration_ms = settings.ingest_lock_duration_ms

    async def execute(
        self, task: ExternalTask, lease: TaskLease, variables: VariableAccessor
    ) -> Optional[dict[str, Any]]:
        draft_key = variables.get_uuid("assetKey")
        publisher_key = variables.get_uuid("publisherKey")
        published = variables.get_bool("published")

        draft = await self.assets.find_draft(publisher_key, draft_key)

        for resource in draft.file_resources():
            result = await self.ingest(lease, publisher_key, draft_key, resource)
            await self.assets.update_resource_ingestion_data(
                publisher_key, draft_key, resource.id, result.model_dump(by_alias=True)
            )

            if published:
                response = await self.jobs.publish(str(uuid4()), result.table)
                await self.assets.update_resource_ingestion_data(
                    publisher_key, draft_key, resource.id, response
                )
                logger.info(
                    f"Published ingested table. [draftKey={draft_key}, table={result.table}]"
                )

        return None

    async def ingest(
        self, lease: TaskLease, publisher_key: UUID, draft_key: UUID, resource: FileResource
    ) -> IngestResult:
        path = str(self.assets.resolve_resource_path(publisher_key, draft_key, resource.file_name))
        table_name = resource.id
        idempotent_key = table_name

        existing = await self.jobs.get_ticket(idempotent_key)
        status: Optional[JobStatus] = None
        if existing is not None:
            status = await self.jobs.get_status(existing)
            logger.info(
                f"Found existing ingestion job. [ticket={existing}, completed={status.completed}]"
            )

        if status is not None and status.completed:
            if not status.success:
                raise RemoteJobFailed(
                    SERVICE_NAME, existing, comment=status.comment, code=self.error_code
                )
            ticket = existing
        else:

            async def submit() -> str:
                if existing is not None:
                    return existing
                return await self.jobs.ingest_async(idempotent_key, path, table_name)

            outcome = await self.poller.run(
                submit,
                self.jobs.get_status,
                lease,
                settings.ingest_poll_interval_ms,
                service=SERVICE_NAME,
            )
            ticket = outcome.ticket

        return await self.jobs.get_result(ticket)
