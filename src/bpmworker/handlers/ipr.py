"""Handler for the `enableIprProtection` topic."""

import asyncio
import logging
import shutil
import tarfile
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from bpmworker.config import Settings, settings as default_settings
from bpmworker.errors import BusinessError, WorkerError
from bpmworker.models import (
    AssetDraft,
    DraftStatus,
    ErrorCodes,
    ExternalTask,
    FileResource,
    JobStatus,
    RequestType,
)
from bpmworker.saga.interfaces import IprJobs, ProviderAssetService
from bpmworker.worker import AsyncJobPoller, TaskHandler, TaskLease, VariableAccessor

logger = logging.getLogger(__name__)

SERVICE_NAME = "IPR Service"

ERROR_CODES: dict[RequestType, ErrorCodes] = {
    RequestType.CATALOGUE_ASSET: ErrorCodes.PUBLISH_ASSET,
    RequestType.USER_SERVICE: ErrorCodes.PUBLISH_USER_SERVICE,
}


def embed_options(resource: FileResource) -> dict[str, Any]:
    return {
        "crs": resource.crs,
        "delimiter": resource.delimiter,
        "encoding": resource.encoding,
        "geometry": resource.geometry,
        "latitude": resource.latitude,
        "longitude": resource.longitude,
    }


def copy_input(source: Path, input_dir: Path, idempotent_key: str) -> Path:
    """Copy a resource into the service's input area; return its relative path."""
    relative = Path(idempotent_key) / source.name
    target = input_dir / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)
    return relative


def unpack_output(archive: Path, target: Path) -> None:
    """Write the file inside a gzipped tar archive to `target`."""
    target.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive, "r:gz") as tar:
        for member in tar:
            if not member.isfile():
                continue
            source = tar.extractfile(member)
            if source is None:
                continue
            with source, open(target, "wb") as out:
                shutil.copyfileobj(source, out)


class EnableIprProtectionHandler(TaskHandler):
    """
    Protects the files of a publish request with fictitious records.

    The request type selects both the protection routine and the business
    error code raised on failure.
    """

    topic = "enableIprProtection"

    def __init__(
        self,
        assets: ProviderAssetService,
        jobs: IprJobs,
        poller: Optional[AsyncJobPoller] = None,
        config: Optional[Settings] = None,
    ):
        self.assets = assets
        self.jobs = jobs
        self.poller = poller or AsyncJobPoller()
        self.config = config or default_settings
        self.lock_duration_ms = self.config.ipr_lock_duration_ms
        self._routines: dict[
            RequestType,
            Callable[[TaskLease, VariableAccessor], Awaitable[Optional[dict[str, Any]]]],
        ] = {
            RequestType.CATALOGUE_ASSET: self.protect_catalogue_asset,
            RequestType.USER_SERVICE: self.protect_user_service,
        }

    def error_code_for(self, task: ExternalTask, variables: VariableAccessor) -> Optional[str]:
        request_type = variables.get_enum("requestType", RequestType)
        return ERROR_CODES.get(request_type, ErrorCodes.NONE).value

    async def execute(
        self, task: ExternalTask, lease: TaskLease, variables: VariableAccessor
    ) -> Optional[dict[str, Any]]:
        request_type = variables.get_enum("requestType", RequestType)
        return await self._routines[request_type](lease, variables)

    async def protect_user_service(
        self, lease: TaskLease, variables: VariableAccessor
    ) -> Optional[dict[str, Any]]:
        raise BusinessError("IPR protection for user services is not supported")

    async def protect_catalogue_asset(
        self, lease: TaskLease, variables: VariableAccessor
    ) -> Optional[dict[str, Any]]:
        draft_key = variables.get_uuid("draftKey")
        publisher_key = variables.get_uuid("publisherKey")

        draft = await self.assets.find_draft(publisher_key, draft_key)

        if draft.ipr_protection_enabled:
            for resource in draft.file_resources():
                await self.protect_resource(lease, draft, resource)

        ingested = draft.is_ingest_required()
        output: dict[str, Any] = {"ingested": ingested}
        if not ingested:
            status = DraftStatus.PENDING_HELPDESK_REVIEW.value
            await self.assets.update_status(publisher_key, draft_key, status)
            output["status"] = status

        logger.info(f"Enabled IPR protection. [draftKey={draft_key}, ingested={ingested}]")
        return output

    async def protect_resource(
        self, lease: TaskLease, draft: AssetDraft, resource: FileResource
    ) -> JobStatus:
        idempotent_key = resource.id
        initial = self._resolve(draft.publisher_key, draft.key, resource.file_name, False)
        protected = self._resolve(draft.publisher_key, draft.key, resource.file_name, True)

        source = await asyncio.to_thread(
            copy_input, initial, self.config.ipr_input_directory, idempotent_key
        )

        ticket: Optional[str] = None

        async def submit() -> str:
            nonlocal ticket
            existing = await self.jobs.get_job_status(None, idempotent_key)
            if existing is None:
                ticket = await self.jobs.embed_fictitious(
                    idempotent_key, str(source), embed_options(resource)
                )
            else:
                ticket = existing.ticket
            return ticket or idempotent_key

        outcome = await self.poller.run(
            submit,
            lambda _: self.jobs.get_job_status(ticket, idempotent_key),
            lease,
            self.config.ipr_poll_interval_ms,
            is_terminal=lambda s: s is not None and s.completed,
            is_success=lambda s: s is not None and s.success,
            service=SERVICE_NAME,
        )

        output_path = outcome.status.payload.get("outputPath")
        if output_path:
            archive = self.config.ipr_output_directory / output_path
            try:
                await asyncio.to_thread(unpack_output, archive, protected)
            except (OSError, tarfile.TarError) as e:
                raise WorkerError(
                    f"[{SERVICE_NAME}] Failed to decompress output file. "
                    f"[source={archive}, target={protected}]",
                    "IPR_OUTPUT_ERROR",
                ) from e
        return outcome.status

    def _resolve(
        self, publisher_key: UUID, draft_key: UUID, file_name: str, ipr_protected: bool
    ) -> Path:
        return Path(
            self.assets.resolve_resource_path(
                publisher_key, draft_key, file_name, ipr_protected=ipr_protected
            )
        )
