"""Collaborators used by the account deletion saga and the asset handlers.

Implementations raise `NotFoundError` when the requested resource does not
exist; any other exception aborts the current saga run.
"""

from pathlib import Path
from typing import Any, Optional, Protocol
from uuid import UUID

from bpmworker.models import (
    Account,
    AccountActiveTask,
    AssetDraft,
    CatalogueItem,
    DeletionContext,
    DraftRecord,
    IdentityUser,
    IngestResult,
    JobStatus,
    OAuthClient,
    Page,
    ProcessInstance,
    UserService,
)


class WorkflowInstances(Protocol):
    async def find_instances_by_variable(self, name: str, value: Any) -> list[ProcessInstance]: ...

    async def find_historic_instances_by_variable(
        self, name: str, value: Any
    ) -> list[ProcessInstance]: ...

    async def find_instance_by_business_key(
        self, business_key: str
    ) -> Optional[ProcessInstance]: ...

    async def delete_instance(self, instance_id: str) -> None: ...

    async def delete_historic_instance(self, instance_id: str) -> None: ...

    async def start_process(
        self,
        process_definition_key: str,
        business_key: str,
        variables: Optional[dict[str, Any]] = None,
    ) -> ProcessInstance: ...


class UserServiceCatalogue(Protocol):
    async def find_all(
        self, owner_key: UUID, parent_key: UUID, page: int, size: int
    ) -> Page[UserService]: ...


class IngestService(Protocol):
    async def remove_data_and_layer(
        self, shard: Optional[str], workspace: str, table_name: str
    ) -> None: ...


class CatalogueService(Protocol):
    async def find_all_published(
        self, publisher_key: UUID, page: int, size: int
    ) -> Page[CatalogueItem]: ...

    async def unpublish(self, publisher_key: UUID, pid: str) -> CatalogueItem: ...


class DraftRepository(Protocol):
    async def find_all_by_publisher(
        self, publisher_key: UUID, page: int, size: int
    ) -> Page[DraftRecord]: ...


class SearchIndex(Protocol):
    async def delete_asset_statistics(self, asset_ids: list[str]) -> None: ...

    async def remove_profile(self, user_key: UUID) -> None: ...


class AccountClientService(Protocol):
    async def find_all(self, user_key: UUID, page: int, size: int) -> Page[OAuthClient]: ...

    async def revoke(self, user_id: int, client_id: UUID) -> None: ...


class IdentityProvider(Protocol):
    async def find_users_by_username(self, username: str) -> list[IdentityUser]: ...

    async def delete_user(self, user_id: str) -> None: ...


class AccountRepository(Protocol):
    async def find_one_by_key(self, key: UUID) -> Optional[Account]: ...

    async def find_all_orphan_vendors(self) -> list[Account]: ...

    async def set_active_task(self, account_id: int, task: AccountActiveTask) -> None: ...

    async def cancel_registration(self, key: UUID) -> None: ...


class DeletionScriptRunner(Protocol):
    async def run(self, ctx: DeletionContext) -> None: ...


class ProviderAssetService(Protocol):
    async def find_draft(self, publisher_key: UUID, draft_key: UUID) -> AssetDraft: ...

    async def source_type_for_format(self, format: Optional[str]) -> Optional[str]: ...

    def resolve_resource_path(
        self, publisher_key: UUID, draft_key: UUID, file_name: str, ipr_protected: bool = False
    ) -> Path: ...

    async def update_metadata(
        self, publisher_key: UUID, draft_key: UUID, resource_id: str, metadata: Any
    ) -> None: ...

    async def update_resource_ingestion_data(
        self, publisher_key: UUID, draft_key: UUID, resource_id: str, data: dict[str, Any]
    ) -> None: ...

    async def update_status(self, publisher_key: UUID, draft_key: UUID, status: str) -> None: ...


class IngestJobs(Protocol):
    async def get_ticket(self, idempotent_key: str) -> Optional[str]: ...

    async def ingest_async(self, idempotent_key: str, path: str, table_name: str) -> str: ...

    async def get_status(self, ticket: str) -> JobStatus: ...

    async def get_result(self, ticket: str) -> IngestResult: ...

    async def publish(self, idempotent_key: str, table_name: str) -> dict[str, Any]: ...


class ProfilerJobs(Protocol):
    async def profile(self, source_type: str, path: str, options: dict[str, Any]) -> str: ...

    async def get_status(self, ticket: str) -> JobStatus: ...

    async def get_metadata(self, ticket: str) -> Any: ...


class IprJobs(Protocol):
    async def get_job_status(
        self, ticket: Optional[str], idempotent_key: str
    ) -> Optional[JobStatus]: ...

    async def embed_fictitious(self, idempotent_key: str, path: str, options: dict[str, Any]) -> str: ...
