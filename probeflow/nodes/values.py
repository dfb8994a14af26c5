"""
Runtime value helpers shared by the evaluator and host actions.

Values travelling along value edges are plain Python objects: ``None``,
``bool``, ``int``, ``float``, ``str``, ``list`` and ``dict``. Addresses are
represented by :class:`Pointer`, an unsigned 64-bit ``int`` that prints as
hexadecimal.
"""

from __future__ import annotations

import json
import math
from typing import Any, Optional

from .types import (
    FLOAT_TYPES,
    INTEGER_LAYOUT,
    INTEGER_TYPES,
    ValueType,
)

U64_MASK = (1 << 64) - 1


class Pointer(int):
    """
    Unsigned 64-bit address. Arithmetic results wrap modulo 2**64.
    """

    def __new__(cls, value: int = 0) -> "Pointer":
        return super().__new__(cls, int(value) & U64_MASK)

    def __repr__(self) -> str:
        return f"Pointer({int(self):#x})"

    def __str__(self) -> str:
        return f"0x{int(self):x}"

    def __add__(self, other: object) -> "Pointer":
        if isinstance(other, int):
            return Pointer(int(self) + int(other))
        return NotImplemented

    __radd__ = __add__

    def __sub__(self, other: object) -> "Pointer":
        if isinstance(other, int):
            return Pointer(int(self) - int(other))
        return NotImplemented

    @classmethod
    def parse(cls, text: str) -> Optional["Pointer"]:
        text = text.strip()
        if not text:
            return None
        try:
            if text.lower().startswith("0x"):
                return cls(int(text[2:], 16))
            return cls(int(text, 10))
        except ValueError:
            return None


def is_truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, float):
        return value != 0.0 and not math.isnan(value)
    return bool(value)


def type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, Pointer):
        return "pointer"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def to_number(value: Any) -> Optional[float | int]:
    """
    Widen a value for arithmetic. Integers (and pointers) stay exact ints,
    everything else becomes float. Returns ``None`` when no number applies.
    """

    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            pointer = Pointer.parse(text)
            return int(pointer) if pointer is not None else None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return None
    return None


def to_pointer(value: Any) -> Optional[Pointer]:
    if isinstance(value, Pointer):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Pointer(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return Pointer(int(value))
    if isinstance(value, str):
        return Pointer.parse(value)
    return None


def wrap_integer(value: int, value_type: ValueType) -> int:
    bits, signed = INTEGER_LAYOUT[value_type]
    value &= (1 << bits) - 1
    if signed and value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def zero_value(value_type: ValueType) -> Any:
    if value_type in INTEGER_TYPES:
        return 0
    if value_type in FLOAT_TYPES:
        return 0.0
    return {
        ValueType.POINTER: Pointer(0),
        ValueType.STRING: "",
        ValueType.BOOLEAN: False,
        ValueType.ARRAY: [],
        ValueType.OBJECT: {},
    }.get(value_type)


def coerce(value: Any, value_type: ValueType) -> Any:
    """
    Best-effort conversion of an editor-supplied value to a declared type.
    Values that cannot be converted are returned unchanged.
    """

    if value is None or value_type is ValueType.ANY:
        return value
    if value_type in INTEGER_TYPES:
        number = to_number(value)
        if number is None:
            return value
        return wrap_integer(int(number), value_type)
    if value_type in FLOAT_TYPES:
        number = to_number(value)
        return float(number) if number is not None else value
    if value_type is ValueType.POINTER:
        pointer = to_pointer(value)
        return pointer if pointer is not None else value
    if value_type is ValueType.BOOLEAN:
        if isinstance(value, str):
            return value.strip().lower() in {"true", "1", "yes", "on"}
        return is_truthy(value)
    if value_type is ValueType.STRING:
        return display(value)
    if value_type is ValueType.ARRAY and isinstance(value, tuple):
        return list(value)
    return value


def display(value: Any, depth: int = 0, max_depth: int = 3) -> str:
    """
    Human readable rendering used by log output, ``switch`` matching and
    ``to_string``. Nested containers are truncated past ``max_depth``.
    """

    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Pointer):
        return str(value)
    if isinstance(value, float):
        if value.is_integer() and not math.isinf(value):
            return str(int(value))
        return repr(value)
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, list):
        if depth >= max_depth:
            return f"[Array({len(value)})]"
        if len(value) <= 5:
            items = [display(item, depth + 1, max_depth) for item in value]
            return "[" + ", ".join(items) + "]"
        items = [display(item, depth + 1, max_depth) for item in value[:3]]
        return "[" + ", ".join(items) + f", ... ({len(value) - 3} more)]"
    if isinstance(value, dict):
        if depth >= max_depth:
            return f"{{Object({len(value)})}}"
        pairs = [f"{key}: {display(item, depth + 1, max_depth)}" for key, item in list(value.items())[:5]]
        if len(value) > 5:
            pairs.append(f"... ({len(value) - 5} more)")
        return "{" + ", ".join(pairs) + "}"
    return str(value)


def values_equal(left: Any, right: Any) -> bool:
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        if isinstance(left, bool) != isinstance(right, bool):
            return False
        return float(left) == float(right)
    return type_name(left) == type_name(right) and left == right


def to_json(value: Any) -> Any:
    """
    Convert a runtime value into something ``json.dumps`` accepts. Pointers
    become ``"0x…"`` strings, non-finite floats become ``None``.
    """

    if isinstance(value, Pointer):
        return str(value)
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (list, tuple)):
        return [to_json(item) for item in value]
    if isinstance(value, dict):
        return {str(key): to_json(item) for key, item in value.items()}
    return value


def from_json(value: Any, value_type: Optional[ValueType] = None) -> Any:
    if value_type is ValueType.POINTER:
        pointer = to_pointer(value)
        return pointer if pointer is not None else value
    if value_type is not None and value_type in INTEGER_TYPES and isinstance(value, str):
        number = to_number(value)
        return int(number) if number is not None else value
    return value


def dumps(value: Any) -> str:
    return json.dumps(to_json(value), sort_keys=True)
