"""Typed, defaulting reads of task input variables."""

import logging
from enum import Enum
from typing import Any, Mapping, Optional, TypeVar
from uuid import UUID

from bpmworker.errors import InvalidVariableValue, VariableNotFound

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

_REQUIRED: Any = object()


class VariableAccessor:
    """
    Reads task variables by name.

    A missing or blank required variable raises `VariableNotFound`. A value
    that is present but cannot be parsed (a malformed UUID, a non-numeric
    integer) raises the parser's own `ValueError`.
    """

    def __init__(self, variables: Mapping[str, Any], task_id: Optional[str] = None):
        self._variables = variables
        self._task_id = task_id

    def _missing(self, name: str) -> VariableNotFound:
        logger.error(f"Expected non empty variable value. [taskId={self._task_id}, name={name}]")
        return VariableNotFound(name)

    def _raw(self, name: str) -> Any:
        value = self._variables.get(name)
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def get_string(self, name: str, default: Any = _REQUIRED) -> Optional[str]:
        value = self._raw(name)
        if value is None:
            if default is _REQUIRED:
                raise self._missing(name)
            return default
        return str(value)

    def get_int(self, name: str, default: Any = _REQUIRED) -> Optional[int]:
        value = self._raw(name)
        if value is None:
            if default is _REQUIRED:
                raise self._missing(name)
            return default
        if isinstance(value, bool):
            raise InvalidVariableValue(name, value)
        return int(value)

    def get_bool(self, name: str, default: Any = _REQUIRED) -> Optional[bool]:
        """Read a boolean; string values are accepted as "true"/"false"."""
        value = self._raw(name)
        if value is None:
            if default is _REQUIRED:
                raise self._missing(name)
            return default
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)

    def get_uuid(self, name: str) -> UUID:
        return UUID(self.get_string(name))

    def get_enum(self, name: str, enum_type: type[E], default: Any = _REQUIRED) -> E:
        value = self.get_string(name, default)
        if value is None or isinstance(value, enum_type):
            return value
        try:
            return enum_type(value)
        except ValueError:
            raise InvalidVariableValue(name, value) from None
