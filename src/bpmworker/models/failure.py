"""Failure classification - the outward signal for a failed unit of work."""

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from bpmworker.models.enums import FailureKind


class ValidationFailure(BaseModel):
    """Missing or invalid input. Never retried."""

    kind: Literal[FailureKind.VALIDATION] = FailureKind.VALIDATION
    variable_name: str
    message: str
    details: str
    retries: int = 0
    retry_timeout_ms: int = 0


class BusinessFailure(BaseModel):
    """Named engine-level error event that branches the process."""

    kind: Literal[FailureKind.BUSINESS] = FailureKind.BUSINESS
    code: str
    message: str
    details: str
    messages: list[str] = Field(default_factory=list)
    retries: int = 0
    retry_timeout_ms: int = 0


class TransientFailure(BaseModel):
    """Generic failure; becomes an incident unless retries remain."""

    kind: Literal[FailureKind.TRANSIENT] = FailureKind.TRANSIENT
    message: str
    details: Optional[str] = None
    retries: int = 0
    retry_timeout_ms: int = 0


FailureClassification = Union[ValidationFailure, BusinessFailure, TransientFailure]
