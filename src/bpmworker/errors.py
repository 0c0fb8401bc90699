"""BPM worker errors."""

from typing import Optional, Sequence


class WorkerError(Exception):
    """Base error for worker operations."""

    def __init__(self, message: str, code: str = "WORKER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(WorkerError):
    """A task input variable is missing or unusable."""

    summary = "Variable not found"

    def __init__(self, variable_name: str, details: str, code: str = "VARIABLE_NOT_FOUND"):
        super().__init__(self.summary, code)
        self.variable_name = variable_name
        self.details = details


class VariableNotFound(ValidationError):
    """Required variable is missing or blank."""

    def __init__(self, variable_name: str):
        super().__init__(
            variable_name,
            f"Variable not found. [name={variable_name}]",
            "VARIABLE_NOT_FOUND",
        )


class InvalidVariableValue(ValidationError):
    """Variable is present but has a value the handler cannot accept."""

    summary = "Invalid variable value"

    def __init__(self, variable_name: str, value: object):
        super().__init__(
            variable_name,
            f"Invalid variable value.[name={variable_name}, value={value}]",
            "INVALID_VARIABLE_VALUE",
        )
        self.value = value


class BusinessError(WorkerError):
    """
    Named failure meant to branch the governing process.

    `code` is the engine error code; when it is None the handler's own
    error code is used. `messages` are user-facing messages forwarded as a
    process variable.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        messages: Sequence[str] = (),
        retries: int = 0,
        retry_timeout_ms: int = 0,
    ):
        super().__init__(message, code or "BUSINESS_ERROR")
        self.error_code = code
        self.details = details
        self.messages = list(messages)
        self.retries = retries
        self.retry_timeout_ms = retry_timeout_ms


class RemoteJobFailed(BusinessError):
    """A remote job ended unsuccessfully or never reached a terminal status."""

    def __init__(
        self,
        service: str,
        ticket: str,
        comment: Optional[str] = None,
        attempts: int = 0,
        timed_out: bool = False,
        code: Optional[str] = None,
    ):
        super().__init__(
            f"[{service}] Operation has failed",
            code=code,
            details=f"Ticket: [{ticket}]. Comment: [{comment}]",
        )
        self.service = service
        self.ticket = ticket
        self.comment = comment
        self.attempts = attempts
        self.timed_out = timed_out


class NotFoundError(WorkerError):
    """A dependent system reports the requested resource does not exist."""

    def __init__(self, resource: str):
        super().__init__(f"Resource not found: {resource}", "NOT_FOUND")
        self.resource = resource


class SagaStepError(WorkerError):
    """A deletion saga step failed with an error other than not-found."""

    def __init__(self, step: str, user_key: object, cause: BaseException):
        super().__init__(
            f"Deletion step {step} has failed. [userKey={user_key}]: {cause}",
            "SAGA_STEP_FAILED",
        )
        self.step = step
        self.user_key = user_key


class LeaseLostError(WorkerError):
    """The engine refused to extend the lease of a unit of work."""

    def __init__(self, unit_id: str, reason: str = ""):
        super().__init__(
            f"Lease lost for task {unit_id}" + (f": {reason}" if reason else ""),
            "LEASE_LOST",
        )
        self.unit_id = unit_id


class RetryableRemoteError(WorkerError):
    """A remote call failed in a way that redelivery may resolve."""

    def __init__(self, message: str):
        super().__init__(message, "REMOTE_RETRYABLE")
