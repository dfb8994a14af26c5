"""
Typed configuration for every node kind.

The editor stores a free-form ``config`` map on each node. At the core layer
that map is decoded into one of the frozen dataclasses below, selected by the
node's template, so each node's configuration is checked once, up front,
instead of being probed key by key during a run.
"""

from __future__ import annotations

from dataclasses import MISSING, dataclass, field, fields
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type, TypeVar

from probeflow.errors import ConfigError

from .types import ValueType, parse_value_type
from .values import Pointer, to_number

MAX_NATIVE_ARGS = 16

Converter = Callable[[str, str, Any, List[str]], Any]
T = TypeVar("T", bound="NodeConfig")


def setting(key: str, convert: Converter, default: Any = MISSING) -> Any:
    metadata = {"key": key, "convert": convert}
    if isinstance(default, (list, dict)):
        frozen = tuple(default) if isinstance(default, list) else default
        return field(default=frozen, metadata=metadata)
    return field(default=default, metadata=metadata)


def _integer(node_type: str, key: str, raw: Any, warnings: List[str]) -> int:
    if isinstance(raw, bool):
        raise ConfigError(node_type, key, "expected an integer")
    number = to_number(raw)
    if number is None:
        raise ConfigError(node_type, key, f"expected an integer, got {raw!r}")
    return int(number)


def _number(node_type: str, key: str, raw: Any, warnings: List[str]) -> float | int:
    if isinstance(raw, bool):
        raise ConfigError(node_type, key, "expected a number")
    number = to_number(raw)
    if number is None:
        raise ConfigError(node_type, key, f"expected a number, got {raw!r}")
    return number


def _boolean(node_type: str, key: str, raw: Any, warnings: List[str]) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in {"true", "false"}:
        return raw.strip().lower() == "true"
    if isinstance(raw, int):
        return raw != 0
    raise ConfigError(node_type, key, f"expected a boolean, got {raw!r}")


def _text(node_type: str, key: str, raw: Any, warnings: List[str]) -> str:
    if raw is None:
        return ""
    if isinstance(raw, (dict, list)):
        raise ConfigError(node_type, key, "expected a string")
    return str(raw)


def _optional_text(node_type: str, key: str, raw: Any, warnings: List[str]) -> Optional[str]:
    if raw is None or raw == "":
        return None
    return _text(node_type, key, raw, warnings)


def _text_list(node_type: str, key: str, raw: Any, warnings: List[str]) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise ConfigError(node_type, key, "expected a list")
    return tuple("" if item is None else str(item) for item in raw)


def _raw(node_type: str, key: str, raw: Any, warnings: List[str]) -> Any:
    return raw


def _pointer(node_type: str, key: str, raw: Any, warnings: List[str]) -> Pointer:
    if isinstance(raw, Pointer):
        return raw
    if isinstance(raw, int) and not isinstance(raw, bool):
        return Pointer(raw)
    if isinstance(raw, str):
        pointer = Pointer.parse(raw)
        if pointer is not None:
            return pointer
    raise ConfigError(node_type, key, f"expected an address, got {raw!r}")


def _value_type(node_type: str, key: str, raw: Any, warnings: List[str]) -> ValueType:
    try:
        return parse_value_type(raw)
    except ValueError:
        raise ConfigError(node_type, key, f"unknown value type {raw!r}") from None


def choice(*options: str, aliases: Optional[Mapping[str, str]] = None) -> Converter:
    allowed = set(options)
    alias_map = dict(aliases or {})

    def convert(node_type: str, key: str, raw: Any, warnings: List[str]) -> str:
        text = str(raw).strip()
        text = alias_map.get(text, text)
        if text not in allowed:
            raise ConfigError(node_type, key, f"expected one of {sorted(allowed)}, got {raw!r}")
        return text

    return convert


def clamped(low: int, high: int) -> Converter:
    def convert(node_type: str, key: str, raw: Any, warnings: List[str]) -> int:
        value = _integer(node_type, key, raw, warnings)
        bounded = max(low, min(high, value))
        if bounded != value:
            warnings.append(f"{node_type}.{key} {value} clamped to {bounded}")
        return bounded

    return convert


def at_least(low: int) -> Converter:
    def convert(node_type: str, key: str, raw: Any, warnings: List[str]) -> int:
        value = _integer(node_type, key, raw, warnings)
        if value < low:
            raise ConfigError(node_type, key, f"must be >= {low}")
        return value

    return convert


@dataclass(frozen=True)
class NodeConfig:
    """
    Base class for decoded node configuration.
    """

    @classmethod
    def decode(
        cls: Type[T],
        node_type: str,
        raw: Optional[Mapping[str, Any]],
        warnings: Optional[List[str]] = None,
    ) -> T:
        raw = raw or {}
        if not isinstance(raw, Mapping):
            raise ConfigError(node_type, "config", "expected a mapping")
        sink: List[str] = warnings if warnings is not None else []
        values: Dict[str, Any] = {}
        for item in fields(cls):
            key = item.metadata["key"]
            convert: Converter = item.metadata["convert"]
            if key in raw and raw[key] is not None:
                values[item.name] = convert(node_type, key, raw[key], sink)
            elif item.default is MISSING:
                raise ConfigError(node_type, key, "is required")
        return cls(**values)

    def inline(self, key: str) -> Any:
        """
        Return the configured value for an editor key, or ``None``.
        """

        for item in fields(self):
            if item.metadata["key"] == key:
                return getattr(self, item.name)
        return None


@dataclass(frozen=True)
class EmptyConfig(NodeConfig):
    pass


@dataclass(frozen=True)
class EventUiConfig(NodeConfig):
    component_id: Optional[str] = setting("componentId", _optional_text, None)
    event_type: str = setting("eventType", _text, "click")


@dataclass(frozen=True)
class EventHotkeyConfig(NodeConfig):
    hotkey: str = setting("hotkey", _text, "")


@dataclass(frozen=True)
class EventIntervalConfig(NodeConfig):
    interval_ms: int = setting("intervalMs", at_least(1), 1000)


@dataclass(frozen=True)
class ConstStringConfig(NodeConfig):
    value: str = setting("value", _text, "")


@dataclass(frozen=True)
class ConstNumberConfig(NodeConfig):
    value: float | int = setting("value", _number, 0)
    is_float: bool = setting("isFloat", _boolean, False)


@dataclass(frozen=True)
class ConstBooleanConfig(NodeConfig):
    value: bool = setting("value", _boolean, True)


@dataclass(frozen=True)
class ConstPointerConfig(NodeConfig):
    value: Pointer = setting("value", _pointer, Pointer(0))


@dataclass(frozen=True)
class VariableRefConfig(NodeConfig):
    variable_id: str = setting("variableId", _text, "")


@dataclass(frozen=True)
class DeclareVariableConfig(NodeConfig):
    variable_id: str = setting("variableId", _text, "")
    inline_value: Any = setting("inlineValue", _raw, None)


@dataclass(frozen=True)
class SwitchConfig(NodeConfig):
    case_values: Tuple[str, ...] = setting("caseValues", _text_list, ())


@dataclass(frozen=True)
class LoopConfig(NodeConfig):
    max_iterations: int = setting("maxIterations", at_least(1), 1000)


@dataclass(frozen=True)
class ForEachConfig(NodeConfig):
    max_iterations: int = setting("maxIterations", at_least(1), 10000)


@dataclass(frozen=True)
class ForRangeConfig(NodeConfig):
    start: int = setting("start", _integer, 0)
    end: int = setting("end", _integer, 10)
    step: int = setting("step", _integer, 1)
    max_iterations: int = setting("maxIterations", at_least(1), 10000)


@dataclass(frozen=True)
class DelayConfig(NodeConfig):
    ms: int = setting("ms", at_least(0), 100)


MATH_OPERATIONS = (
    "add", "subtract", "multiply", "divide", "modulo", "power", "min", "max",
    "abs", "floor", "ceil", "round", "sqrt",
    "bit_and", "bit_or", "bit_xor", "bit_not", "shift_left", "shift_right",
)


@dataclass(frozen=True)
class MathConfig(NodeConfig):
    operation: str = setting(
        "operation",
        choice(
            *MATH_OPERATIONS,
            aliases={
                "+": "add", "sub": "subtract", "-": "subtract", "mul": "multiply",
                "*": "multiply", "div": "divide", "/": "divide", "mod": "modulo",
                "%": "modulo", "pow": "power", "shl": "shift_left", "shr": "shift_right",
            },
        ),
        "add",
    )


@dataclass(frozen=True)
class CompareConfig(NodeConfig):
    operation: str = setting(
        "operation",
        choice(
            "equals", "not_equals", "less_than", "less_than_equals",
            "greater_than", "greater_than_equals",
            aliases={
                "eq": "equals", "==": "equals", "neq": "not_equals", "!=": "not_equals",
                "lt": "less_than", "<": "less_than", "lte": "less_than_equals",
                "<=": "less_than_equals", "gt": "greater_than", ">": "greater_than",
                "gte": "greater_than_equals", ">=": "greater_than_equals",
            },
        ),
        "equals",
    )


@dataclass(frozen=True)
class LogicConfig(NodeConfig):
    operation: str = setting(
        "operation",
        choice(
            "and", "or", "not", "xor", "nand", "nor",
            aliases={"&&": "and", "||": "or", "!": "not", "^": "xor"},
        ),
        "and",
    )


@dataclass(frozen=True)
class StringFormatConfig(NodeConfig):
    template: str = setting("template", _text, "")


@dataclass(frozen=True)
class ToStringConfig(NodeConfig):
    format: str = setting("format", choice("auto", "hex", "decimal", "binary", "json"), "auto")


@dataclass(frozen=True)
class ParseIntConfig(NodeConfig):
    radix: int = setting("radix", clamped(2, 36), 10)


@dataclass(frozen=True)
class PropertyConfig(NodeConfig):
    property_name: Optional[str] = setting("propertyName", _optional_text, None)


@dataclass(frozen=True)
class LogConfig(NodeConfig):
    message: Optional[str] = setting("message", _optional_text, None)


@dataclass(frozen=True)
class NotifyConfig(NodeConfig):
    level: str = setting("level", choice("info", "warning", "error", aliases={"warn": "warning"}), "info")
    title: Optional[str] = setting("title", _optional_text, None)


@dataclass(frozen=True)
class UiComponentConfig(NodeConfig):
    component_id: str = setting("componentId", _text)


@dataclass(frozen=True)
class BindToLabelConfig(NodeConfig):
    component_id: str = setting("componentId", _text)
    format: str = setting("format", _text, "{0}")


@dataclass(frozen=True)
class ProcessFilterConfig(NodeConfig):
    name_filter: Optional[str] = setting("nameFilter", _optional_text, None)


@dataclass(frozen=True)
class MemoryAccessConfig(NodeConfig):
    value_type: ValueType = setting("valueType", _value_type, ValueType.INT32)


@dataclass(frozen=True)
class MemoryScanConfig(NodeConfig):
    scan_type: str = setting("scanType", choice("value", "pattern", "string"), "value")
    value_type: ValueType = setting("valueType", _value_type, ValueType.INT32)
    protection: str = setting("protection", _text, "rw-")


@dataclass(frozen=True)
class MemoryFreezeConfig(NodeConfig):
    value_type: ValueType = setting("valueType", _value_type, ValueType.INT32)
    interval_ms: int = setting("intervalMs", at_least(1), 100)


@dataclass(frozen=True)
class MemoryProtectConfig(NodeConfig):
    protection: str = setting("protection", _text, "rwx")


@dataclass(frozen=True)
class MemoryAllocConfig(NodeConfig):
    size: int = setting("size", at_least(1), 256)


POINTER_ACCESS_TYPES = (
    "pointer", "int8", "uint8", "int16", "uint16", "int32", "uint32",
    "int64", "uint64", "float", "double", "utf8", "utf16",
)


@dataclass(frozen=True)
class PointerReadConfig(NodeConfig):
    read_type: str = setting("readType", choice(*POINTER_ACCESS_TYPES), "uint32")


@dataclass(frozen=True)
class PointerWriteConfig(NodeConfig):
    write_type: str = setting("writeType", choice(*POINTER_ACCESS_TYPES), "uint32")


NATIVE_TYPES = (
    "void", "pointer", "int", "uint", "long", "ulong", "char", "uchar",
    "int8", "uint8", "int16", "uint16", "int32", "uint32", "int64", "uint64",
    "float", "double", "bool",
)

NATIVE_ABIS = ("default", "sysv", "stdcall", "thiscall", "fastcall", "mscdecl", "win64", "unix64", "vfp")


def _native_types(node_type: str, key: str, raw: Any, warnings: List[str]) -> Tuple[str, ...]:
    items = _text_list(node_type, key, raw, warnings)
    for item in items:
        if item not in NATIVE_TYPES:
            raise ConfigError(node_type, key, f"unknown native type {item!r}")
    return items


@dataclass(frozen=True)
class CallNativeConfig(NodeConfig):
    return_type: str = setting("returnType", choice(*NATIVE_TYPES), "void")
    arg_types: Tuple[str, ...] = setting("argTypes", _native_types, ())
    abi: str = setting("abi", choice(*NATIVE_ABIS), "default")
    arg_count: int = setting("argCount", clamped(0, MAX_NATIVE_ARGS), 0)


@dataclass(frozen=True)
class InterceptorConfig(NodeConfig):
    on_enter: bool = setting("onEnter", _boolean, True)
    on_leave: bool = setting("onLeave", _boolean, True)


def decode_config(
    config_type: Type[T],
    node_type: str,
    raw: Optional[Mapping[str, Any]],
    warnings: Optional[List[str]] = None,
) -> T:
    return config_type.decode(node_type, raw, warnings)


def native_value_type(native_type: str) -> ValueType:
    """
    Map a native ABI argument type to the value type of its input port.
    """

    return {
        "int": ValueType.INT32,
        "uint": ValueType.UINT32,
        "long": ValueType.INT64,
        "ulong": ValueType.UINT64,
        "char": ValueType.INT8,
        "uchar": ValueType.UINT8,
        "bool": ValueType.BOOLEAN,
        "void": ValueType.ANY,
    }.get(native_type) or parse_value_type(native_type, ValueType.POINTER)
