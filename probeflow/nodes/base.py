from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .types import PortDirection, PortKind, ValueType


@dataclass(frozen=True)
class Port:
    """
    Represents a single input or output port on a node.
    """

    id: str
    name: str
    direction: PortDirection
    kind: PortKind
    value_type: Optional[ValueType] = None

    @property
    def is_flow(self) -> bool:
        return self.kind is PortKind.FLOW


@dataclass
class Node:
    """
    A placed instance of a node template.
    """

    id: str
    type: str
    label: str
    x: float = 0.0
    y: float = 0.0
    config: Dict[str, Any] = field(default_factory=dict)
    inputs: List[Port] = field(default_factory=list)
    outputs: List[Port] = field(default_factory=list)

    def ports(self) -> List[Port]:
        return self.inputs + self.outputs

    def input_by_id(self, port_id: str) -> Optional[Port]:
        return next((port for port in self.inputs if port.id == port_id), None)

    def output_by_id(self, port_id: str) -> Optional[Port]:
        return next((port for port in self.outputs if port.id == port_id), None)

    def port_by_id(self, port_id: str) -> Optional[Port]:
        return self.input_by_id(port_id) or self.output_by_id(port_id)

    def input_by_name(self, name: str) -> Optional[Port]:
        return next((port for port in self.inputs if port.name == name), None)

    def output_by_name(self, name: str) -> Optional[Port]:
        return next((port for port in self.outputs if port.name == name), None)

    def has_flow_ports(self) -> bool:
        return any(port.is_flow for port in self.ports())


@dataclass(frozen=True)
class Connection:
    id: str
    from_node_id: str
    from_port_id: str
    to_node_id: str
    to_port_id: str


@dataclass
class Variable:
    id: str
    name: str
    type: ValueType = ValueType.ANY
    default_value: Any = None
    description: Optional[str] = None


class TriggerKind(Enum):
    MANUAL = "manual"
    ON_ATTACH = "on_attach"
    ON_DETACH = "on_detach"
    UI_EVENT = "ui_event"
    HOTKEY = "hotkey"
    INTERVAL = "interval"


@dataclass(frozen=True)
class Trigger:
    """
    How a script is entered. Consulted by the external scheduler only.
    """

    kind: TriggerKind = TriggerKind.MANUAL
    component_id: Optional[str] = None
    event_type: Optional[str] = None
    hotkey: Optional[str] = None
    interval_ms: Optional[int] = None
