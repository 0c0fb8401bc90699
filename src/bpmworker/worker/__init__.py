"""Task execution framework - leases, variables, failures, polling, dispatch."""

from bpmworker.worker.failures import ErrorClassifier, FailureReporter, error_details, is_transient
from bpmworker.worker.lease import LeaseKeepAlive, TaskLease, keep_alive
from bpmworker.worker.poller import AsyncJobPoller, PollOutcome
from bpmworker.worker.registry import DispatchRegistry, TaskHandler
from bpmworker.worker.variables import VariableAccessor

__all__ = [
    "AsyncJobPoller",
    "DispatchRegistry",
    "ErrorClassifier",
    "FailureReporter",
    "LeaseKeepAlive",
    "PollOutcome",
    "TaskHandler",
    "TaskLease",
    "VariableAccessor",
    "error_details",
    "is_transient",
    "keep_alive",
]
