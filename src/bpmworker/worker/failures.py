"""Failure classification and reporting.

Every exception raised while handling a unit of work maps to exactly one
outward signal: a validation failure, a business (BPMN) error or a
transient failure.
"""

import json
import logging
from typing import Awaitable, Callable, Iterator, Optional, Protocol

import httpx

from bpmworker.config import settings
from bpmworker.errors import BusinessError, RetryableRemoteError, ValidationError
from bpmworker.models import (
    BusinessFailure,
    ExternalTask,
    FailureClassification,
    FailureKind,
    TransientFailure,
    ValidationFailure,
)
from bpmworker.observability.metrics import metrics

logger = logging.getLogger(__name__)

ERROR_SEPARATOR = "||"
DEFAULT_ERROR_MESSAGE = "Operation has failed"
DEFAULT_BUSINESS_MESSAGE = "Service could not process the request"

BUSINESS_ERROR_DETAILS_VARIABLE = "bpmnBusinessErrorDetails"
BUSINESS_ERROR_MESSAGES_VARIABLE = "bpmnBusinessErrorMessages"

RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


def iter_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield an exception followed by its causes, outermost first."""
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def describe(exc: BaseException) -> str:
    """One-line description of a single exception."""
    return f"{type(exc).__name__}: {exc}"


def error_details(exc: BaseException) -> str:
    """Flatten the exception chain into distinct messages joined by `||`."""
    messages: list[str] = []
    for item in iter_chain(exc):
        candidates = [describe(item)]
        details = getattr(item, "details", None)
        if isinstance(details, str) and details:
            candidates.append(details)
        for message in candidates:
            if message not in messages:
                messages.append(message)
    return ERROR_SEPARATOR.join(messages)


def is_transient(exc: BaseException) -> bool:
    """Check whether any exception in the chain is a retryable network failure."""
    for item in iter_chain(exc):
        if isinstance(item, (RetryableRemoteError, httpx.TransportError)):
            return True
        if (
            isinstance(item, httpx.HTTPStatusError)
            and item.response.status_code in RETRYABLE_STATUS_CODES
        ):
            return True
    return False


class ErrorClassifier:
    """Map exceptions to failure classifications."""

    def __init__(
        self,
        default_retry_count: Optional[int] = None,
        default_retry_timeout_ms: Optional[int] = None,
    ):
        self.default_retry_count = (
            settings.default_retry_count if default_retry_count is None else default_retry_count
        )
        self.default_retry_timeout_ms = (
            settings.default_retry_timeout_ms
            if default_retry_timeout_ms is None
            else default_retry_timeout_ms
        )

    def classify(
        self, exc: BaseException, error_code: Optional[str] = None
    ) -> FailureClassification:
        """
        Classify an exception.

        `error_code` is the handler's business error code, used when a
        BusinessError does not name its own. A business error without any
        code is reported as a failure with its own retry budget.
        """
        if isinstance(exc, ValidationError):
            return ValidationFailure(
                variable_name=exc.variable_name,
                message=exc.message,
                details=exc.details,
            )

        if isinstance(exc, BusinessError):
            # Network failures are demoted so the engine can redeliver
            if is_transient(exc):
                return self._transient(exc)

            code = exc.error_code or error_code
            if code is None:
                return TransientFailure(
                    message=exc.message,
                    details=exc.details or error_details(exc),
                    retries=exc.retries,
                    retry_timeout_ms=exc.retry_timeout_ms,
                )
            return BusinessFailure(
                code=code,
                message=exc.message,
                details=error_details(exc),
                messages=exc.messages or [DEFAULT_BUSINESS_MESSAGE],
                retries=exc.retries,
                retry_timeout_ms=exc.retry_timeout_ms,
            )

        return self._transient(exc)

    def _transient(self, exc: BaseException) -> TransientFailure:
        return TransientFailure(
            message=DEFAULT_ERROR_MESSAGE,
            details=error_details(exc),
            retries=self.default_retry_count,
            retry_timeout_ms=self.default_retry_timeout_ms,
        )


class FailureSink(Protocol):
    async def handle_failure(
        self,
        task_id: str,
        error_message: str,
        error_details: Optional[str],
        retries: int,
        retry_timeout_ms: int,
    ) -> None: ...

    async def handle_bpmn_error(
        self,
        task_id: str,
        error_code: str,
        error_message: Optional[str] = None,
        variables: Optional[dict] = None,
    ) -> None: ...


class FailureReporter:
    """Send a classified failure to the engine."""

    def __init__(self, engine: FailureSink):
        self.engine = engine
        self._dispatch: dict[
            FailureKind, Callable[[ExternalTask, FailureClassification], Awaitable[None]]
        ] = {
            FailureKind.VALIDATION: self._report_failure,
            FailureKind.TRANSIENT: self._report_failure,
            FailureKind.BUSINESS: self._report_business_error,
        }

    async def report(self, task: ExternalTask, failure: FailureClassification) -> None:
        logger.error(
            f"Reporting {failure.kind.value} failure. [taskId={task.id}, "
            f"topic={task.topic_name}, message={failure.message}, details={failure.details}]"
        )
        await self._dispatch[failure.kind](task, failure)

    async def _report_failure(self, task: ExternalTask, failure: FailureClassification) -> None:
        metrics.inc_counter("tasks.failed", task.topic_name)
        await self.engine.handle_failure(
            task.id,
            failure.message,
            failure.details,
            failure.retries,
            failure.retry_timeout_ms,
        )

    async def _report_business_error(self, task: ExternalTask, failure: BusinessFailure) -> None:
        metrics.inc_counter("tasks.business_errors", task.topic_name)
        variables = {
            BUSINESS_ERROR_DETAILS_VARIABLE: failure.details,
            BUSINESS_ERROR_MESSAGES_VARIABLE: json.dumps(failure.messages),
        }
        await self.engine.handle_bpmn_error(task.id, failure.code, failure.message, variables)
