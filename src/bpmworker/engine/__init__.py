"""Workflow engine access - REST client and variable codec."""

from bpmworker.engine.client import EngineClient
from bpmworker.engine.variables import (
    decode_value,
    decode_variables,
    encode_value,
    encode_variables,
)

__all__ = [
    "EngineClient",
    "decode_value",
    "decode_variables",
    "encode_value",
    "encode_variables",
]
