from __future__ import annotations

import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, Union, cast

from probeflow.errors import UnknownNodeTypeError

from .base import Node, Port
from .configs import (
    MAX_NATIVE_ARGS,
    BindToLabelConfig,
    CallNativeConfig,
    CompareConfig,
    ConstBooleanConfig,
    ConstNumberConfig,
    ConstPointerConfig,
    ConstStringConfig,
    DeclareVariableConfig,
    DelayConfig,
    EmptyConfig,
    EventHotkeyConfig,
    EventIntervalConfig,
    EventUiConfig,
    ForEachConfig,
    ForRangeConfig,
    InterceptorConfig,
    LogConfig,
    LogicConfig,
    LoopConfig,
    MathConfig,
    MemoryAccessConfig,
    MemoryAllocConfig,
    MemoryFreezeConfig,
    MemoryProtectConfig,
    MemoryScanConfig,
    NodeConfig,
    NotifyConfig,
    ParseIntConfig,
    PointerReadConfig,
    PointerWriteConfig,
    ProcessFilterConfig,
    PropertyConfig,
    StringFormatConfig,
    SwitchConfig,
    ToStringConfig,
    UiComponentConfig,
    VariableRefConfig,
    decode_config,
    native_value_type,
)
from .types import PortDirection, PortKind, ValueType

MAX_SWITCH_CASES = 8

TARGET_CATEGORIES = frozenset({"Memory", "Pointer", "Module", "Native", "Interceptor"})


class NodeContext(Enum):
    HOST = "host"
    TARGET = "target"


@dataclass(frozen=True)
class HostEffect:
    """
    The node runs in-process through the named host action.
    """

    action: str


@dataclass(frozen=True)
class TargetCall:
    """
    The node is proxied to the instrumentation agent as ``method``.
    """

    method: str


Effect = Union[HostEffect, TargetCall]


@dataclass(frozen=True)
class PortSpec:
    name: str
    kind: PortKind
    value_type: Optional[ValueType] = None
    required: bool = True
    # editor config key holding the inline value used when the port is unconnected
    default_key: Optional[str] = None


def exec_in() -> PortSpec:
    return PortSpec("exec", PortKind.FLOW)


def flow_out(name: str = "exec") -> PortSpec:
    return PortSpec(name, PortKind.FLOW)


def value_in(
    name: str,
    value_type: ValueType = ValueType.ANY,
    *,
    required: bool = True,
    default_key: Optional[str] = None,
) -> PortSpec:
    return PortSpec(name, PortKind.VALUE, value_type, required, default_key)


def value_out(name: str, value_type: ValueType = ValueType.ANY) -> PortSpec:
    return PortSpec(name, PortKind.VALUE, value_type)


@dataclass(frozen=True)
class FixedPorts:
    inputs: Tuple[PortSpec, ...] = ()
    outputs: Tuple[PortSpec, ...] = ()

    def input_specs(self, config: NodeConfig) -> Tuple[PortSpec, ...]:
        return self.inputs

    def output_specs(self, config: NodeConfig) -> Tuple[PortSpec, ...]:
        return self.outputs


@dataclass(frozen=True)
class NativeArgPorts:
    """
    One ``argN`` input per native argument, driven by ``argCount``.
    """

    prefix: str = "arg"
    limit: int = MAX_NATIVE_ARGS

    def expand(self, config: NodeConfig) -> Tuple[PortSpec, ...]:
        native = cast(CallNativeConfig, config)
        count = max(0, min(self.limit, native.arg_count))
        specs: List[PortSpec] = []
        for index in range(count):
            value_type = ValueType.POINTER
            if index < len(native.arg_types):
                value_type = native_value_type(native.arg_types[index])
            specs.append(value_in(f"{self.prefix}{index}", value_type))
        return tuple(specs)


@dataclass(frozen=True)
class ParametricPorts:
    base: FixedPorts
    rule: NativeArgPorts

    def input_specs(self, config: NodeConfig) -> Tuple[PortSpec, ...]:
        return self.base.inputs + self.rule.expand(config)

    def output_specs(self, config: NodeConfig) -> Tuple[PortSpec, ...]:
        return self.base.outputs


PortShape = Union[FixedPorts, ParametricPorts]


@dataclass(frozen=True)
class NodeTemplate:
    """
    Describes how to instantiate and execute a node kind.
    """

    type: str
    label: str
    category: str
    description: str
    shape: PortShape
    effect: Effect
    config_type: Type[NodeConfig] = EmptyConfig
    default_config: Mapping[str, Any] = field(default_factory=dict)
    entry: bool = False

    @property
    def context(self) -> NodeContext:
        if self.category in TARGET_CATEGORIES:
            return NodeContext.TARGET
        return NodeContext.HOST

    def decode(self, raw: Optional[Mapping[str, Any]], warnings: Optional[List[str]] = None) -> NodeConfig:
        return decode_config(self.config_type, self.type, raw, warnings)

    def input_specs(self, config: NodeConfig) -> Tuple[PortSpec, ...]:
        return self.shape.input_specs(config)

    def output_specs(self, config: NodeConfig) -> Tuple[PortSpec, ...]:
        return self.shape.output_specs(config)

    def input_spec(self, name: str, config: NodeConfig) -> Optional[PortSpec]:
        return next((spec for spec in self.input_specs(config) if spec.name == name), None)

    def instantiate(
        self,
        node_id: Optional[str] = None,
        x: float = 0.0,
        y: float = 0.0,
        config: Optional[Mapping[str, Any]] = None,
    ) -> Node:
        node = Node(
            id=node_id or uuid.uuid4().hex,
            type=self.type,
            label=self.label,
            x=float(x),
            y=float(y),
            config={**self.default_config, **dict(config or {})},
        )
        self.build_ports(node)
        return node

    def build_ports(self, node: Node, warnings: Optional[List[str]] = None) -> List[str]:
        """
        (Re)generate the node's ports from its config. Existing ports keep
        their ids when their name and kind survive, so calling this twice
        is a no-op. Returns the ids of ports that were removed.
        """

        config = self.decode(node.config, warnings)
        if isinstance(config, CallNativeConfig):
            node.config["argCount"] = config.arg_count

        removed: List[str] = []
        node.inputs = _rebuild(node.inputs, self.input_specs(config), PortDirection.INPUT, removed)
        node.outputs = _rebuild(node.outputs, self.output_specs(config), PortDirection.OUTPUT, removed)
        return removed


def _rebuild(
    existing: Sequence[Port],
    specs: Iterable[PortSpec],
    direction: PortDirection,
    removed: List[str],
) -> List[Port]:
    by_name = {(port.name, port.kind): port for port in existing}
    ports: List[Port] = []
    kept: set[str] = set()
    for spec in specs:
        previous = by_name.get((spec.name, spec.kind))
        port_id = previous.id if previous is not None else uuid.uuid4().hex
        kept.add(port_id)
        ports.append(
            Port(
                id=port_id,
                name=spec.name,
                direction=direction,
                kind=spec.kind,
                value_type=spec.value_type if spec.kind is PortKind.VALUE else None,
            )
        )
    removed.extend(port.id for port in existing if port.id not in kept)
    return ports


def _host(action: str) -> HostEffect:
    return HostEffect(action)


def _target(method: str) -> TargetCall:
    return TargetCall(method)


_ENTRY_OUTPUTS = (flow_out(), value_out("value"))

_TEMPLATES: List[NodeTemplate] = [
    # Events
    NodeTemplate(
        type="start",
        label="Start",
        category="Event",
        description="Manual script entry point.",
        shape=FixedPorts(outputs=_ENTRY_OUTPUTS),
        effect=_host("entry"),
        entry=True,
    ),
    NodeTemplate(
        type="event_ui",
        label="UI Event",
        category="Event",
        description="Fires when a bound UI component emits an event.",
        shape=FixedPorts(outputs=_ENTRY_OUTPUTS + (value_out("componentId", ValueType.STRING),)),
        effect=_host("entry"),
        config_type=EventUiConfig,
        default_config={"componentId": "", "eventType": "click"},
        entry=True,
    ),
    NodeTemplate(
        type="event_attach",
        label="On Attach",
        category="Event",
        description="Fires after a target process is attached.",
        shape=FixedPorts(outputs=_ENTRY_OUTPUTS),
        effect=_host("entry"),
        entry=True,
    ),
    NodeTemplate(
        type="event_detach",
        label="On Detach",
        category="Event",
        description="Fires after the target process is detached.",
        shape=FixedPorts(outputs=_ENTRY_OUTPUTS),
        effect=_host("entry"),
        entry=True,
    ),
    NodeTemplate(
        type="event_hotkey",
        label="Hotkey",
        category="Event",
        description="Fires when a global hotkey is pressed.",
        shape=FixedPorts(outputs=_ENTRY_OUTPUTS),
        effect=_host("entry"),
        config_type=EventHotkeyConfig,
        default_config={"hotkey": ""},
        entry=True,
    ),
    NodeTemplate(
        type="event_interval",
        label="Interval",
        category="Event",
        description="Fires periodically.",
        shape=FixedPorts(outputs=_ENTRY_OUTPUTS),
        effect=_host("entry"),
        config_type=EventIntervalConfig,
        default_config={"intervalMs": 1000},
        entry=True,
    ),
    # Flow
    NodeTemplate(
        type="end",
        label="End",
        category="Flow",
        description="Stops the current flow branch.",
        shape=FixedPorts(inputs=(exec_in(),)),
        effect=_host("end"),
    ),
    NodeTemplate(
        type="if",
        label="If",
        category="Flow",
        description="Conditional branch.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("condition", ValueType.BOOLEAN)),
            outputs=(flow_out("true"), flow_out("false")),
        ),
        effect=_host("if"),
    ),
    NodeTemplate(
        type="switch",
        label="Switch",
        category="Flow",
        description="Routes to the first case whose value equals the input.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("value")),
            outputs=tuple(flow_out(f"case{index}") for index in range(MAX_SWITCH_CASES))
            + (flow_out("default"),),
        ),
        effect=_host("switch"),
        config_type=SwitchConfig,
        default_config={"caseValues": []},
    ),
    NodeTemplate(
        type="loop",
        label="Loop",
        category="Flow",
        description="Repeats the body while the condition is true.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("condition", ValueType.BOOLEAN)),
            outputs=(flow_out("body"), flow_out("done"), value_out("index", ValueType.INT32)),
        ),
        effect=_host("loop"),
        config_type=LoopConfig,
        default_config={"maxIterations": 1000},
    ),
    NodeTemplate(
        type="for_each",
        label="For Each",
        category="Flow",
        description="Runs the body once per array element.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("array", ValueType.ARRAY)),
            outputs=(
                flow_out("body"),
                flow_out("done"),
                value_out("element"),
                value_out("index", ValueType.INT32),
            ),
        ),
        effect=_host("for_each"),
        config_type=ForEachConfig,
        default_config={"maxIterations": 10000},
    ),
    NodeTemplate(
        type="for_range",
        label="For Range",
        category="Flow",
        description="Counts from start (inclusive) to end (exclusive) by step.",
        shape=FixedPorts(
            inputs=(
                exec_in(),
                value_in("start", ValueType.INT64, default_key="start"),
                value_in("end", ValueType.INT64, default_key="end"),
                value_in("step", ValueType.INT64, default_key="step"),
            ),
            outputs=(flow_out("body"), flow_out("done"), value_out("index", ValueType.INT64)),
        ),
        effect=_host("for_range"),
        config_type=ForRangeConfig,
        default_config={"start": 0, "end": 10, "step": 1, "maxIterations": 10000},
    ),
    NodeTemplate(
        type="break",
        label="Break",
        category="Flow",
        description="Leaves the innermost loop.",
        shape=FixedPorts(inputs=(exec_in(),)),
        effect=_host("break"),
    ),
    NodeTemplate(
        type="continue",
        label="Continue",
        category="Flow",
        description="Skips to the next iteration of the innermost loop.",
        shape=FixedPorts(inputs=(exec_in(),)),
        effect=_host("continue"),
    ),
    NodeTemplate(
        type="delay",
        label="Delay",
        category="Flow",
        description="Waits for the given number of milliseconds.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("ms", ValueType.INT32, default_key="ms")),
            outputs=(flow_out(),),
        ),
        effect=_host("delay"),
        config_type=DelayConfig,
        default_config={"ms": 100},
    ),
    # Constants
    NodeTemplate(
        type="const_string",
        label="String",
        category="Constant",
        description="A constant string.",
        shape=FixedPorts(outputs=(value_out("value", ValueType.STRING),)),
        effect=_host("const"),
        config_type=ConstStringConfig,
        default_config={"value": ""},
    ),
    NodeTemplate(
        type="const_number",
        label="Number",
        category="Constant",
        description="A constant integer or float.",
        shape=FixedPorts(outputs=(value_out("value", ValueType.DOUBLE),)),
        effect=_host("const"),
        config_type=ConstNumberConfig,
        default_config={"value": 0, "isFloat": False},
    ),
    NodeTemplate(
        type="const_boolean",
        label="Boolean",
        category="Constant",
        description="A constant boolean.",
        shape=FixedPorts(outputs=(value_out("value", ValueType.BOOLEAN),)),
        effect=_host("const"),
        config_type=ConstBooleanConfig,
        default_config={"value": True},
    ),
    NodeTemplate(
        type="const_pointer",
        label="Pointer",
        category="Constant",
        description="A constant address.",
        shape=FixedPorts(outputs=(value_out("value", ValueType.POINTER),)),
        effect=_host("const"),
        config_type=ConstPointerConfig,
        default_config={"value": "0x0"},
    ),
    # Variables
    NodeTemplate(
        type="declare_variable",
        label="Declare Variable",
        category="Variable",
        description="Initialises a script variable.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("initialValue", required=False, default_key="inlineValue")),
            outputs=(flow_out(), value_out("value")),
        ),
        effect=_host("declare_variable"),
        config_type=DeclareVariableConfig,
        default_config={"variableId": ""},
    ),
    NodeTemplate(
        type="set_variable",
        label="Set Variable",
        category="Variable",
        description="Stores a value in a script variable.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("value")),
            outputs=(flow_out(), value_out("value")),
        ),
        effect=_host("set_variable"),
        config_type=VariableRefConfig,
        default_config={"variableId": ""},
    ),
    NodeTemplate(
        type="get_variable",
        label="Get Variable",
        category="Variable",
        description="Reads a script variable.",
        shape=FixedPorts(outputs=(value_out("value"),)),
        effect=_host("get_variable"),
        config_type=VariableRefConfig,
        default_config={"variableId": ""},
    ),
    # Math
    NodeTemplate(
        type="math",
        label="Math",
        category="Math",
        description="Arithmetic and bitwise operations.",
        shape=FixedPorts(
            inputs=(value_in("a"), value_in("b", required=False)),
            outputs=(value_out("result"),),
        ),
        effect=_host("math"),
        config_type=MathConfig,
        default_config={"operation": "add"},
    ),
    NodeTemplate(
        type="compare",
        label="Compare",
        category="Math",
        description="Compares two values.",
        shape=FixedPorts(
            inputs=(value_in("a"), value_in("b")),
            outputs=(value_out("result", ValueType.BOOLEAN),),
        ),
        effect=_host("compare"),
        config_type=CompareConfig,
        default_config={"operation": "equals"},
    ),
    NodeTemplate(
        type="logic",
        label="Logic",
        category="Math",
        description="Boolean logic.",
        shape=FixedPorts(
            inputs=(value_in("a", ValueType.BOOLEAN), value_in("b", ValueType.BOOLEAN, required=False)),
            outputs=(value_out("result", ValueType.BOOLEAN),),
        ),
        effect=_host("logic"),
        config_type=LogicConfig,
        default_config={"operation": "and"},
    ),
    # Strings
    NodeTemplate(
        type="string_format",
        label="Format String",
        category="String",
        description="Replaces {0}..{3} in the template with the arguments.",
        shape=FixedPorts(
            inputs=tuple(value_in(f"arg{index}", required=False) for index in range(4)),
            outputs=(value_out("result", ValueType.STRING),),
        ),
        effect=_host("string_format"),
        config_type=StringFormatConfig,
        default_config={"template": ""},
    ),
    NodeTemplate(
        type="string_concat",
        label="Concat",
        category="String",
        description="Joins two values as strings.",
        shape=FixedPorts(
            inputs=(value_in("a"), value_in("b")),
            outputs=(value_out("result", ValueType.STRING),),
        ),
        effect=_host("string_concat"),
    ),
    NodeTemplate(
        type="to_string",
        label="To String",
        category="String",
        description="Converts a value to text.",
        shape=FixedPorts(inputs=(value_in("value"),), outputs=(value_out("result", ValueType.STRING),)),
        effect=_host("to_string"),
        config_type=ToStringConfig,
        default_config={"format": "auto"},
    ),
    NodeTemplate(
        type="parse_int",
        label="Parse Int",
        category="String",
        description="Parses an integer (0x/0b/0o prefixes honoured).",
        shape=FixedPorts(
            inputs=(value_in("string", ValueType.STRING),),
            outputs=(value_out("value", ValueType.INT64), value_out("success", ValueType.BOOLEAN)),
        ),
        effect=_host("parse_int"),
        config_type=ParseIntConfig,
        default_config={"radix": 10},
    ),
    NodeTemplate(
        type="parse_float",
        label="Parse Float",
        category="String",
        description="Parses a floating point number.",
        shape=FixedPorts(
            inputs=(value_in("string", ValueType.STRING),),
            outputs=(value_out("value", ValueType.DOUBLE), value_out("success", ValueType.BOOLEAN)),
        ),
        effect=_host("parse_float"),
    ),
    NodeTemplate(
        type="to_pointer",
        label="To Pointer",
        category="String",
        description="Converts a number or hex string to an address.",
        shape=FixedPorts(inputs=(value_in("value"),), outputs=(value_out("pointer", ValueType.POINTER),)),
        effect=_host("to_pointer"),
    ),
    # Arrays
    NodeTemplate(
        type="array_create",
        label="Create Array",
        category="Array",
        description="Builds an array from the connected elements.",
        shape=FixedPorts(
            inputs=tuple(value_in(f"elem{index}", required=False) for index in range(4)),
            outputs=(value_out("array", ValueType.ARRAY),),
        ),
        effect=_host("array_create"),
    ),
    NodeTemplate(
        type="array_get",
        label="Array Get",
        category="Array",
        description="Reads an element by index.",
        shape=FixedPorts(
            inputs=(value_in("array", ValueType.ARRAY), value_in("index", ValueType.INT32)),
            outputs=(value_out("element"),),
        ),
        effect=_host("array_get"),
    ),
    NodeTemplate(
        type="array_set",
        label="Array Set",
        category="Array",
        description="Returns a copy of the array with one element replaced.",
        shape=FixedPorts(
            inputs=(
                exec_in(),
                value_in("array", ValueType.ARRAY),
                value_in("index", ValueType.INT32),
                value_in("value"),
            ),
            outputs=(flow_out(), value_out("array", ValueType.ARRAY)),
        ),
        effect=_host("array_set"),
    ),
    NodeTemplate(
        type="array_push",
        label="Array Push",
        category="Array",
        description="Returns a copy of the array with a value appended.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("array", ValueType.ARRAY), value_in("value")),
            outputs=(flow_out(), value_out("array", ValueType.ARRAY), value_out("length", ValueType.INT32)),
        ),
        effect=_host("array_push"),
    ),
    NodeTemplate(
        type="array_length",
        label="Array Length",
        category="Array",
        description="Length of an array or string.",
        shape=FixedPorts(inputs=(value_in("array"),), outputs=(value_out("length", ValueType.INT32),)),
        effect=_host("array_length"),
    ),
    NodeTemplate(
        type="array_find",
        label="Array Find",
        category="Array",
        description="Index of the first equal element, or -1.",
        shape=FixedPorts(
            inputs=(value_in("array", ValueType.ARRAY), value_in("value")),
            outputs=(value_out("index", ValueType.INT32), value_out("found", ValueType.BOOLEAN)),
        ),
        effect=_host("array_find"),
    ),
    # Objects
    NodeTemplate(
        type="object_get",
        label="Object Get",
        category="Object",
        description="Reads a property (or array index).",
        shape=FixedPorts(
            inputs=(
                value_in("object", ValueType.OBJECT),
                value_in("key", ValueType.STRING, default_key="propertyName"),
            ),
            outputs=(value_out("value"),),
        ),
        effect=_host("object_get"),
        config_type=PropertyConfig,
    ),
    NodeTemplate(
        type="object_set",
        label="Object Set",
        category="Object",
        description="Returns a copy of the object with one property set.",
        shape=FixedPorts(
            inputs=(
                exec_in(),
                value_in("object", ValueType.OBJECT, required=False),
                value_in("key", ValueType.STRING, default_key="propertyName"),
                value_in("value"),
            ),
            outputs=(flow_out(), value_out("object", ValueType.OBJECT)),
        ),
        effect=_host("object_set"),
        config_type=PropertyConfig,
    ),
    NodeTemplate(
        type="object_keys",
        label="Object Keys",
        category="Object",
        description="Property names of an object.",
        shape=FixedPorts(inputs=(value_in("object", ValueType.OBJECT),), outputs=(value_out("keys", ValueType.ARRAY),)),
        effect=_host("object_keys"),
    ),
    # Output
    NodeTemplate(
        type="log",
        label="Log",
        category="Output",
        description="Appends a line to the run log.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("message", default_key="message")),
            outputs=(flow_out(),),
        ),
        effect=_host("log"),
        config_type=LogConfig,
    ),
    NodeTemplate(
        type="notify",
        label="Notify",
        category="Output",
        description="Shows a notification to the user.",
        shape=FixedPorts(
            inputs=(
                exec_in(),
                value_in("title", ValueType.STRING, required=False, default_key="title"),
                value_in("message", required=False),
            ),
            outputs=(flow_out(),),
        ),
        effect=_host("notify"),
        config_type=NotifyConfig,
        default_config={"level": "info"},
    ),
    # UI
    NodeTemplate(
        type="ui_get_value",
        label="Get UI Value",
        category="UI",
        description="Reads the current value of a UI component.",
        shape=FixedPorts(outputs=(value_out("value"), value_out("componentId", ValueType.STRING))),
        effect=_host("ui_get_value"),
        config_type=UiComponentConfig,
        default_config={"componentId": ""},
    ),
    NodeTemplate(
        type="ui_set_value",
        label="Set UI Value",
        category="UI",
        description="Writes the value of a UI component.",
        shape=FixedPorts(inputs=(exec_in(), value_in("value")), outputs=(flow_out(),)),
        effect=_host("ui_set_value"),
        config_type=UiComponentConfig,
        default_config={"componentId": ""},
    ),
    NodeTemplate(
        type="bind_to_label",
        label="Bind To Label",
        category="UI",
        description="Formats a value into a label component.",
        shape=FixedPorts(inputs=(exec_in(), value_in("value")), outputs=(flow_out(),)),
        effect=_host("bind_to_label"),
        config_type=BindToLabelConfig,
        default_config={"componentId": "", "format": "{0}"},
    ),
    # Device
    NodeTemplate(
        type="device_enumerate",
        label="Enumerate Devices",
        category="Device",
        description="Lists devices the tool can attach through.",
        shape=FixedPorts(
            inputs=(exec_in(),),
            outputs=(flow_out(), value_out("devices", ValueType.ARRAY), value_out("count", ValueType.INT32)),
        ),
        effect=_host("device_enumerate"),
    ),
    NodeTemplate(
        type="process_enumerate",
        label="Enumerate Processes",
        category="Device",
        description="Lists processes on the local machine.",
        shape=FixedPorts(
            inputs=(exec_in(),),
            outputs=(flow_out(), value_out("processes", ValueType.ARRAY), value_out("count", ValueType.INT32)),
        ),
        effect=_host("process_enumerate"),
        config_type=ProcessFilterConfig,
    ),
    # Memory
    NodeTemplate(
        type="memory_scan",
        label="Memory Scan",
        category="Memory",
        description="Scans readable ranges for a value or byte pattern.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("value")),
            outputs=(flow_out(), value_out("results", ValueType.ARRAY), value_out("count", ValueType.INT32)),
        ),
        effect=_target("memoryScan"),
        config_type=MemoryScanConfig,
        default_config={"scanType": "value", "valueType": "int32", "protection": "rw-"},
    ),
    NodeTemplate(
        type="memory_read",
        label="Read Memory",
        category="Memory",
        description="Reads a typed value from an address.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("address", ValueType.POINTER)),
            outputs=(flow_out(), value_out("value")),
        ),
        effect=_target("memoryRead"),
        config_type=MemoryAccessConfig,
        default_config={"valueType": "int32"},
    ),
    NodeTemplate(
        type="memory_write",
        label="Write Memory",
        category="Memory",
        description="Writes a typed value to an address.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("address", ValueType.POINTER), value_in("value")),
            outputs=(flow_out(),),
        ),
        effect=_target("memoryWrite"),
        config_type=MemoryAccessConfig,
        default_config={"valueType": "int32"},
    ),
    NodeTemplate(
        type="memory_freeze",
        label="Freeze Memory",
        category="Memory",
        description="Keeps rewriting a value at an address.",
        shape=FixedPorts(
            inputs=(
                exec_in(),
                value_in("address", ValueType.POINTER),
                value_in("value"),
                value_in("enabled", ValueType.BOOLEAN, required=False),
            ),
            outputs=(flow_out(),),
        ),
        effect=_target("memoryFreeze"),
        config_type=MemoryFreezeConfig,
        default_config={"valueType": "int32", "intervalMs": 100},
    ),
    NodeTemplate(
        type="memory_protect",
        label="Protect Memory",
        category="Memory",
        description="Changes page protection of a range.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("address", ValueType.POINTER), value_in("size", ValueType.UINT64)),
            outputs=(flow_out(), value_out("success", ValueType.BOOLEAN)),
        ),
        effect=_target("memoryProtect"),
        config_type=MemoryProtectConfig,
        default_config={"protection": "rwx"},
    ),
    NodeTemplate(
        type="memory_alloc",
        label="Allocate Memory",
        category="Memory",
        description="Allocates a block in the target.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("size", ValueType.UINT64, default_key="size")),
            outputs=(flow_out(), value_out("address", ValueType.POINTER)),
        ),
        effect=_target("memoryAlloc"),
        config_type=MemoryAllocConfig,
        default_config={"size": 256},
    ),
    # Pointer
    NodeTemplate(
        type="pointer_add",
        label="Pointer Add",
        category="Pointer",
        description="Offsets an address.",
        shape=FixedPorts(
            inputs=(value_in("pointer", ValueType.POINTER), value_in("offset", ValueType.INT64)),
            outputs=(value_out("result", ValueType.POINTER),),
        ),
        effect=_target("pointerAdd"),
    ),
    NodeTemplate(
        type="pointer_read",
        label="Read Pointer",
        category="Pointer",
        description="Reads through a pointer with explicit width and encoding.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("pointer", ValueType.POINTER)),
            outputs=(flow_out(), value_out("value")),
        ),
        effect=_target("pointerRead"),
        config_type=PointerReadConfig,
        default_config={"readType": "uint32"},
    ),
    NodeTemplate(
        type="pointer_write",
        label="Write Pointer",
        category="Pointer",
        description="Writes through a pointer with explicit width and encoding.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("pointer", ValueType.POINTER), value_in("value")),
            outputs=(flow_out(),),
        ),
        effect=_target("pointerWrite"),
        config_type=PointerWriteConfig,
        default_config={"writeType": "uint32"},
    ),
    # Module
    NodeTemplate(
        type="get_module",
        label="Get Module",
        category="Module",
        description="Looks up a loaded module by name.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("name", ValueType.STRING)),
            outputs=(
                flow_out(),
                value_out("module", ValueType.STRING),
                value_out("base", ValueType.POINTER),
                value_out("size", ValueType.UINT64),
            ),
        ),
        effect=_target("getModule"),
    ),
    NodeTemplate(
        type="find_symbol",
        label="Find Symbol",
        category="Module",
        description="Resolves an exported symbol.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("module", ValueType.STRING), value_in("symbol", ValueType.STRING)),
            outputs=(flow_out(), value_out("address", ValueType.POINTER)),
        ),
        effect=_target("findSymbol"),
    ),
    NodeTemplate(
        type="get_base_address",
        label="Get Base Address",
        category="Module",
        description="Base address of a loaded module.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("moduleName", ValueType.STRING)),
            outputs=(flow_out(), value_out("address", ValueType.POINTER)),
        ),
        effect=_target("getBaseAddress"),
    ),
    NodeTemplate(
        type="enumerate_modules",
        label="Enumerate Modules",
        category="Module",
        description="Lists loaded modules.",
        shape=FixedPorts(
            inputs=(exec_in(),),
            outputs=(flow_out(), value_out("modules", ValueType.ARRAY), value_out("count", ValueType.INT32)),
        ),
        effect=_target("enumerateModules"),
    ),
    NodeTemplate(
        type="enumerate_exports",
        label="Enumerate Exports",
        category="Module",
        description="Lists the exports of a module.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("moduleName", ValueType.STRING)),
            outputs=(flow_out(), value_out("exports", ValueType.ARRAY), value_out("count", ValueType.INT32)),
        ),
        effect=_target("enumerateExports"),
    ),
    # Native
    NodeTemplate(
        type="call_native",
        label="Call Native",
        category="Native",
        description="Calls a native function with ABI and argument types.",
        shape=ParametricPorts(
            base=FixedPorts(
                inputs=(exec_in(), value_in("address", ValueType.POINTER)),
                outputs=(flow_out(), value_out("return")),
            ),
            rule=NativeArgPorts(),
        ),
        effect=_target("callNative"),
        config_type=CallNativeConfig,
        default_config={"returnType": "void", "argTypes": [], "abi": "default", "argCount": 0},
    ),
    # Interceptor
    NodeTemplate(
        type="interceptor_attach",
        label="Attach Interceptor",
        category="Interceptor",
        description="Hooks a function; enter/leave events are reported by the agent.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("address", ValueType.POINTER)),
            outputs=(flow_out(), value_out("listenerId", ValueType.STRING)),
        ),
        effect=_target("interceptorAttach"),
        config_type=InterceptorConfig,
        default_config={"onEnter": True, "onLeave": True},
    ),
    NodeTemplate(
        type="interceptor_detach",
        label="Detach Interceptor",
        category="Interceptor",
        description="Removes a previously attached hook.",
        shape=FixedPorts(
            inputs=(exec_in(), value_in("listenerId", ValueType.STRING)),
            outputs=(flow_out(), value_out("success", ValueType.BOOLEAN)),
        ),
        effect=_target("interceptorDetach"),
    ),
]

_TEMPLATE_MAP: Dict[str, NodeTemplate] = {template.type: template for template in _TEMPLATES}


def get_node_templates() -> Iterable[NodeTemplate]:
    """
    Return an iterable of all registered node templates.
    """

    return tuple(_TEMPLATES)


def get_node_template(node_type: str) -> NodeTemplate:
    """
    Look up a node template by its unique type identifier.
    """

    try:
        return _TEMPLATE_MAP[node_type]
    except KeyError:
        raise UnknownNodeTypeError(node_type) from None


def templates_by_category() -> "OrderedDict[str, Tuple[NodeTemplate, ...]]":
    grouped: "OrderedDict[str, List[NodeTemplate]]" = OrderedDict()
    for template in _TEMPLATES:
        grouped.setdefault(template.category, []).append(template)
    return OrderedDict((category, tuple(items)) for category, items in grouped.items())


def entry_node_types() -> frozenset[str]:
    return frozenset(template.type for template in _TEMPLATES if template.entry)
