"""
Script graph primitives: types, ports, templates and the connection rules.
"""

from .base import Connection, Node, Port, Trigger, TriggerKind, Variable
from .builtin import (
    HostEffect,
    NodeContext,
    NodeTemplate,
    PortSpec,
    TargetCall,
    get_node_template,
    get_node_templates,
    templates_by_category,
)
from .graph import Script
from .types import PortDirection, PortKind, ValueType, is_compatible
from .validation import ConnectionRejected, RejectReason, can_connect, try_connect
from .values import Pointer

__all__ = [
    "Connection",
    "ConnectionRejected",
    "HostEffect",
    "Node",
    "NodeContext",
    "NodeTemplate",
    "Pointer",
    "Port",
    "PortDirection",
    "PortKind",
    "PortSpec",
    "RejectReason",
    "Script",
    "TargetCall",
    "Trigger",
    "TriggerKind",
    "ValueType",
    "Variable",
    "can_connect",
    "get_node_template",
    "get_node_templates",
    "is_compatible",
    "templates_by_category",
    "try_connect",
]
