"""Conversion of SDK results into JSON-safe data.

Integers outside the JavaScript safe range are emitted as decimal strings so
that browser clients do not lose precision on amounts and nonces.
"""

import dataclasses
from decimal import Decimal
from enum import Enum
from typing import Any

MAX_SAFE_INTEGER = 2**53 - 1


def to_serializable_json(data: Any) -> Any:
    """Recursively convert data into JSON-compatible values."""
    if isinstance(data, bool) or data is None:
        return data
    if isinstance(data, Enum):
        return to_serializable_json(data.value)
    if isinstance(data, int):
        if -MAX_SAFE_INTEGER <= data <= MAX_SAFE_INTEGER:
            return data
        return str(data)
    if isinstance(data, Decimal):
        return str(data)
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).hex()
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return {
            field.name: to_serializable_json(getattr(data, field.name))
            for field in dataclasses.fields(data)
        }
    if isinstance(data, dict):
        return {key: to_serializable_json(value) for key, value in data.items()}
    if isinstance(data, (list, tuple, set)):
        return [to_serializable_json(item) for item in data]
    return data
