"""BPM worker data models."""

from bpmworker.models.enums import (
    AccountActiveTask,
    AccountType,
    ActivationStatus,
    DraftStatus,
    ErrorCodes,
    FailureKind,
    RequestType,
)
from bpmworker.models.task import ExternalTask, FetchTopic, ProcessInstance
from bpmworker.models.failure import (
    BusinessFailure,
    FailureClassification,
    TransientFailure,
    ValidationFailure,
)
from bpmworker.models.jobs import JobStatus
from bpmworker.models.deletion import DeletionContext
from bpmworker.models.records import (
    Account,
    AssetDraft,
    CatalogueItem,
    DraftRecord,
    FileResource,
    IdentityUser,
    IngestionInfo,
    IngestResult,
    OAuthClient,
    Page,
    UserService,
)

__all__ = [
    "Account",
    "AccountActiveTask",
    "AccountType",
    "ActivationStatus",
    "AssetDraft",
    "BusinessFailure",
    "CatalogueItem",
    "DeletionContext",
    "DraftRecord",
    "DraftStatus",
    "ErrorCodes",
    "ExternalTask",
    "FailureClassification",
    "FailureKind",
    "FetchTopic",
    "FileResource",
    "IdentityUser",
    "IngestionInfo",
    "IngestResult",
    "JobStatus",
    "OAuthClient",
    "Page",
    "ProcessInstance",
    "RequestType",
    "TransientFailure",
    "UserService",
    "ValidationFailure",
]
