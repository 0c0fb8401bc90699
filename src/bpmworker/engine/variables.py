"""Typed variable codec for the engine REST API.

Variables travel as ``{"name": {"value": ..., "type": "String"}}``.
"""

import json
from typing import Any, Mapping

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

_DECODERS = {
    "string": str,
    "integer": int,
    "long": int,
    "short": int,
    "boolean": bool,
    "double": float,
}


def encode_value(value: Any) -> dict[str, Any]:
    """Encode one Python value as a typed engine variable."""
    # bool is a subclass of int
    if isinstance(value, bool):
        return {"value": value, "type": "Boolean"}
    if isinstance(value, int):
        kind = "Integer" if _INT32_MIN <= value <= _INT32_MAX else "Long"
        return {"value": value, "type": kind}
    if isinstance(value, float):
        return {"value": value, "type": "Double"}
    if value is None:
        return {"value": None, "type": "Null"}
    if isinstance(value, (dict, list)):
        return {"value": json.dumps(value), "type": "Json"}
    return {"value": str(value), "type": "String"}


def encode_variables(variables: Mapping[str, Any] | None) -> dict[str, dict[str, Any]]:
    """Encode a flat name/value map."""
    return {name: encode_value(value) for name, value in (variables or {}).items()}


def decode_value(typed: Mapping[str, Any]) -> Any:
    """Decode one typed engine variable into a Python value."""
    value = typed.get("value")
    if value is None:
        return None
    kind = str(typed.get("type") or "").lower()
    if kind == "json" and isinstance(value, str):
        return json.loads(value)
    decoder = _DECODERS.get(kind)
    return decoder(value) if decoder else value


def decode_variables(payload: Mapping[str, Mapping[str, Any]] | None) -> dict[str, Any]:
    """Decode a typed variable map, keeping the engine's ordering."""
    return {name: decode_value(typed) for name, typed in (payload or {}).items()}
