"""Account deletion saga."""

from bpmworker.saga.deletion import AccountDeletionSaga, deletion_business_key
from bpmworker.saga.files import FileTeardown

__all__ = ["AccountDeletionSaga", "FileTeardown", "deletion_business_key"]
