"""Topic handlers."""

from bpmworker.handlers.cancel_registration import CancelAccountRegistrationHandler
from bpmworker.handlers.delete_user_data import DeleteAllUserDataHandler
from bpmworker.handlers.ingest import IngestHandler
from bpmworker.handlers.ipr import EnableIprProtectionHandler
from bpmworker.handlers.profile import ComputeAutomatedMetadataHandler

__all__ = [
    "CancelAccountRegistrationHandler",
    "ComputeAutomatedMetadataHandler",
    "DeleteAllUserDataHandler",
    "EnableIprProtectionHandler",
    "IngestHandler",
]
