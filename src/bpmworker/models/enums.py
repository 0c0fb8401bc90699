"""BPM worker enumerations."""

from enum import Enum


class AccountType(str, Enum):
    """Kind of platform account."""

    OPERTUSMUNDI = "OPERTUSMUNDI"
    VENDOR = "VENDOR"

    @classmethod
    def primary(cls) -> "AccountType":
        """Return the account type that owns vendor sub-accounts."""
        return cls.OPERTUSMUNDI


class AccountActiveTask(str, Enum):
    """Maintenance task currently running for an account."""

    NONE = "NONE"
    DELETE = "DELETE"


class ActivationStatus(str, Enum):
    """Account registration lifecycle status."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RequestType(str, Enum):
    """Kind of publish request routed through the rights-protection topic."""

    CATALOGUE_ASSET = "CATALOGUE_ASSET"
    USER_SERVICE = "USER_SERVICE"


class DraftStatus(str, Enum):
    """Provider asset draft status values set by the worker."""

    PENDING_HELPDESK_REVIEW = "PENDING_HELPDESK_REVIEW"


class ErrorCodes(str, Enum):
    """Engine error codes raised as business errors."""

    NONE = "0000"
    ACCOUNT_REGISTRATION = "0001"
    CONSUMER_REGISTRATION = "0002"
    PROVIDER_REGISTRATION = "0003"
    PUBLISH_ASSET = "0004"
    COPY_RESOURCE_TO_DRIVE = "0005"
    SUBSCRIPTION_BILLING = "0006"
    PUBLISH_USER_SERVICE = "0007"


class FailureKind(str, Enum):
    """Outward signal produced for a failed unit of work."""

    VALIDATION = "validation"
    BUSINESS = "business"
    TRANSIENT = "transient"
