"""Handler for the `computeAutomatedMetadata` topic."""

import logging
from typing import Any, Optional
from uuid import UUID

from bpmworker.config import settings
from bpmworker.errors import BusinessError
from bpmworker.models import DraftStatus, ExternalTask, FileResource
from bpmworker.saga.interfaces import ProfilerJobs, ProviderAssetService
from bpmworker.worker import AsyncJobPoller, TaskHandler, TaskLease, VariableAccessor

logger = logging.getLogger(__name__)

SERVICE_NAME = "Data Profiler Service"


def profiler_options() -> dict[str, Any]:
    return {
        "aspectRatio": settings.profiler_aspect_ratio,
        "height": settings.profiler_height,
        "width": settings.profiler_width,
    }


class ComputeAutomatedMetadataHandler(TaskHandler):
    """Profiles every resource of a draft and submits it for review."""

    topic = "computeAutomatedMetadata"

    def __init__(
        self,
        assets: ProviderAssetService,
        jobs: ProfilerJobs,
        poller: Optional[AsyncJobPoller] = None,
    ):
        self.assets = assets
        self.jobs = jobs
        self.poller = poller or AsyncJobPoller()
        self.lock_duration_ms = settings.data_profiler_lock_duration_ms

    async def execute(
        self, task: ExternalTask, lease: TaskLease, variables: VariableAccessor
    ) -> Optional[dict[str, Any]]:
        draft_key = variables.get_uuid("draftKey")
        publisher_key = variables.get_uuid("publisherKey")

        draft = await self.assets.find_draft(publisher_key, draft_key)
        source_type = await self.assets.source_type_for_format(draft.format)
        if source_type is None:
            raise BusinessError(f"Failed to map format [{draft.format}] to source type")

        for resource in draft.file_resources():
            metadata = await self.profile(lease, publisher_key, draft_key, source_type, resource)
            await self.assets.update_metadata(publisher_key, draft_key, resource.id, metadata)

        await self.assets.update_status(
            publisher_key, draft_key, DraftStatus.PENDING_HELPDESK_REVIEW.value
        )
        logger.info(f"Computed automated metadata. [draftKey={draft_key}]")
        return None

    async def profile(
        self,
        lease: TaskLease,
        publisher_key: UUID,
        draft_key: UUID,
        source_type: str,
        resource: FileResource,
    ) -> Any:
        path = str(self.assets.resolve_resource_path(publisher_key, draft_key, resource.file_name))

        outcome = await self.poller.run(
            lambda: self.jobs.profile(source_type, path, profiler_options()),
            self.jobs.get_status,
            lease,
            settings.profiler_poll_interval_ms,
            service=SERVICE_NAME,
        )
        return await self.jobs.get_metadata(outcome.ticket)
