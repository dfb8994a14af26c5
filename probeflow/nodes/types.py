from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Union


class PortDirection(Enum):
    INPUT = "input"
    OUTPUT = "output"


class PortKind(Enum):
    FLOW = "flow"
    VALUE = "value"


class ValueType(Enum):
    BOOLEAN = "boolean"
    STRING = "string"
    POINTER = "pointer"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    FLOAT = "float"
    DOUBLE = "double"
    ARRAY = "array"
    OBJECT = "object"
    ANY = "any"


class CoercionClass(Enum):
    NUMERIC = "numeric"
    POINTER = "pointer"
    STRING = "string"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    ANY = "any"


INTEGER_TYPES = frozenset(
    {
        ValueType.INT8,
        ValueType.INT16,
        ValueType.INT32,
        ValueType.INT64,
        ValueType.UINT8,
        ValueType.UINT16,
        ValueType.UINT32,
        ValueType.UINT64,
    }
)

FLOAT_TYPES = frozenset({ValueType.FLOAT, ValueType.DOUBLE})

NUMERIC_TYPES = INTEGER_TYPES | FLOAT_TYPES

_CLASSES: Dict[ValueType, CoercionClass] = {
    **{value_type: CoercionClass.NUMERIC for value_type in NUMERIC_TYPES},
    ValueType.POINTER: CoercionClass.POINTER,
    ValueType.STRING: CoercionClass.STRING,
    ValueType.BOOLEAN: CoercionClass.BOOLEAN,
    ValueType.ARRAY: CoercionClass.ARRAY,
    ValueType.OBJECT: CoercionClass.OBJECT,
    ValueType.ANY: CoercionClass.ANY,
}

# (bits, signed) for each integer width
INTEGER_LAYOUT: Dict[ValueType, tuple[int, bool]] = {
    ValueType.INT8: (8, True),
    ValueType.INT16: (16, True),
    ValueType.INT32: (32, True),
    ValueType.INT64: (64, True),
    ValueType.UINT8: (8, False),
    ValueType.UINT16: (16, False),
    ValueType.UINT32: (32, False),
    ValueType.UINT64: (64, False),
}


def coercion_class(value_type: ValueType) -> CoercionClass:
    return _CLASSES[value_type]


def is_compatible(source: ValueType, target: ValueType) -> bool:
    """
    Decide whether a value edge may join two value types.

    The relation is symmetric: narrowing and precision loss are left to the
    node that consumes the value at run time.
    """

    if source == target:
        return True
    if source is ValueType.ANY or target is ValueType.ANY:
        return True

    source_class = coercion_class(source)
    target_class = coercion_class(target)
    if source_class is CoercionClass.NUMERIC and target_class is CoercionClass.NUMERIC:
        return True
    return {source_class, target_class} == {CoercionClass.POINTER, CoercionClass.NUMERIC}


def parse_value_type(raw: Union[str, ValueType, None], default: Optional[ValueType] = None) -> ValueType:
    if isinstance(raw, ValueType):
        return raw
    if raw is None:
        if default is None:
            raise ValueError("value type is required")
        return default
    text = str(raw).strip().lower()
    aliases = {"bool": "boolean", "str": "string", "ptr": "pointer", "f32": "float", "f64": "double"}
    text = aliases.get(text, text)
    try:
        return ValueType(text)
    except ValueError:
        if default is not None:
            return default
        raise
