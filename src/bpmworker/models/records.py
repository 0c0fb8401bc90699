"""Records exchanged with business services and repositories."""

from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field

from bpmworker.models.enums import AccountActiveTask, AccountType, ActivationStatus

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a paginated collaborator query."""

    items: list[T] = Field(default_factory=list)
    page_index: int = 0
    page_size: int = 10


class Account(BaseModel):
    """Platform account."""

    id: int
    key: UUID
    email: str
    type: AccountType = AccountType.OPERTUSMUNDI
    parent_key: Optional[UUID] = None
    active_task: AccountActiveTask = AccountActiveTask.NONE
    activation_status: ActivationStatus = ActivationStatus.PENDING
    geodata_shard: Optional[str] = None


class UserService(BaseModel):
    """Published user (OGC) service."""

    key: UUID
    title: Optional[str] = None


class IngestionInfo(BaseModel):
    """Ingested backing table of a catalogue resource."""

    table_name: str
    rows: Optional[int] = None


class CatalogueItem(BaseModel):
    """Published catalogue asset."""

    id: str
    title: Optional[str] = None
    ingestion_info: list[IngestionInfo] = Field(default_factory=list)


class DraftRecord(BaseModel):
    """Provider asset draft row as stored by the worker's database."""

    key: UUID
    publisher_key: UUID
    status: str
    asset_published: Optional[str] = None


class OAuthClient(BaseModel):
    """OAuth client registered by an account."""

    client_id: UUID
    alias: Optional[str] = None
    revoked: bool = False


class IdentityUser(BaseModel):
    """User entry in the external identity provider."""

    id: str
    username: str


class FileResource(BaseModel):
    """File resource attached to an asset draft."""

    id: str
    file_name: str
    type: str = "FILE"
    crs: Optional[str] = None
    encoding: Optional[str] = None
    delimiter: Optional[str] = None
    geometry: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None


class AssetDraft(BaseModel):
    """Asset draft as returned by the provider asset service."""

    key: UUID
    publisher_key: UUID
    format: Optional[str] = None
    asset_type: Optional[str] = None
    pricing_models: list[str] = Field(default_factory=list)
    ipr_protection_enabled: bool = False
    resources: list[FileResource] = Field(default_factory=list)

    def file_resources(self) -> list[FileResource]:
        return [r for r in self.resources if r.type == "FILE"]

    def is_ingest_required(self) -> bool:
        """Ingestion is required for service assets and row-priced assets."""
        return self.asset_type == "SERVICE" or "FIXED_PER_ROWS" in self.pricing_models


class IngestResult(BaseModel):
    """Result payload of a completed ingestion job."""

    table: str
    schema_name: Optional[str] = Field(default=None, alias="schema")
    rows: Optional[int] = None
    extra: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}
