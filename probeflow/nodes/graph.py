from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from probeflow.errors import ConnectionRejectedError, EntryNodeError, StructuralError

from .base import Connection, Node, Trigger, Variable
from .builtin import NodeTemplate, get_node_template
from .types import PortKind, ValueType, is_compatible
from .validation import ConnectionRejected, try_connect
from .values import coerce

logger = logging.getLogger(__name__)

_UNSET: Any = object()


@dataclass
class Script:
    """
    A node graph plus its variables. Mutated only through the methods below,
    which keep every structural invariant; the engine works on snapshots.
    """

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    name: str = "Untitled"
    description: Optional[str] = None
    trigger: Trigger = field(default_factory=Trigger)
    variables: List[Variable] = field(default_factory=list)
    nodes: List[Node] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)

    # Nodes

    def add_node(
        self,
        node_type: str,
        x: float = 0.0,
        y: float = 0.0,
        node_id: Optional[str] = None,
        config: Optional[Mapping[str, Any]] = None,
    ) -> Node:
        template = get_node_template(node_type)
        if node_id is not None and self.get_node(node_id) is not None:
            raise StructuralError(f"Node id {node_id} already exists.")
        node = template.instantiate(node_id, x, y, config)
        self._check_entry_unique(node, template)
        self.nodes.append(node)
        return node

    def insert_node(self, node: Node) -> Node:
        """
        Add an already built node (e.g. from a snapshot), normalising its
        ports against the template while keeping the stored port ids.
        """

        template = get_node_template(node.type)
        if self.get_node(node.id) is not None:
            raise StructuralError(f"Node id {node.id} already exists.")
        warnings: List[str] = []
        template.build_ports(node, warnings)
        for warning in warnings:
            logger.warning("%s", warning)
        self._check_entry_unique(node, template)
        self.nodes.append(node)
        return node

    def update_node(
        self,
        node_id: str,
        *,
        label: Optional[str] = None,
        x: Optional[float] = None,
        y: Optional[float] = None,
        config: Optional[Mapping[str, Any]] = None,
    ) -> Node:
        node = self._require_node(node_id)
        template = get_node_template(node.type)

        if config is not None:
            merged = {**node.config, **dict(config)}
            candidate = copy.deepcopy(node)
            candidate.config = merged
            warnings: List[str] = []
            removed = template.build_ports(candidate, warnings)
            for warning in warnings:
                logger.warning("%s", warning)
            self._check_entry_unique(candidate, template, ignore=node_id)
            node.config = candidate.config
            node.inputs = candidate.inputs
            node.outputs = candidate.outputs
            self._drop_stale_connections(node, set(removed))

        if label is not None:
            node.label = label
        if x is not None:
            node.x = float(x)
        if y is not None:
            node.y = float(y)
        return node

    def delete_node(self, node_id: str) -> bool:
        node = self.get_node(node_id)
        if node is None:
            return False
        self.nodes = [item for item in self.nodes if item.id != node_id]
        self.connections = [
            connection
            for connection in self.connections
            if connection.from_node_id != node_id and connection.to_node_id != node_id
        ]
        return True

    def delete_nodes(self, node_ids: Iterable[str]) -> Tuple[str, ...]:
        """
        Bulk delete. Entry nodes are skipped so a selection sweep can never
        leave the script without its trigger node.
        """

        deleted: List[str] = []
        for node_id in dict.fromkeys(node_ids):
            node = self.get_node(node_id)
            if node is None or get_node_template(node.type).entry:
                continue
            self.delete_node(node_id)
            deleted.append(node_id)
        return tuple(deleted)

    # Connections

    def add_connection(
        self,
        from_node_id: str,
        from_port_id: str,
        to_node_id: str,
        to_port_id: str,
        connection_id: Optional[str] = None,
    ) -> Union[Connection, ConnectionRejected]:
        if connection_id is not None and self.get_connection(connection_id) is not None:
            raise StructuralError(f"Connection id {connection_id} already exists.")
        result = try_connect(self, from_node_id, from_port_id, to_node_id, to_port_id, connection_id)
        if isinstance(result, Connection):
            self.connections.append(result)
        else:
            logger.debug("Connection rejected (%s): %s", result.reason.value, result.message)
        return result

    def connect(
        self,
        from_node_id: str,
        from_port_id: str,
        to_node_id: str,
        to_port_id: str,
    ) -> Connection:
        """
        Like :meth:`add_connection` but raises on rejection.
        """

        result = self.add_connection(from_node_id, from_port_id, to_node_id, to_port_id)
        if isinstance(result, ConnectionRejected):
            raise ConnectionRejectedError(result.reason.value, result.message)
        return result

    def connect_ports(self, from_node_id: str, from_port: str, to_node_id: str, to_port: str) -> Connection:
        """
        Connect by port name instead of port id.
        """

        source = self._require_node(from_node_id).output_by_name(from_port)
        target = self._require_node(to_node_id).input_by_name(to_port)
        if source is None or target is None:
            raise ConnectionRejectedError("unknown_port", "One of the ports does not exist.")
        return self.connect(from_node_id, source.id, to_node_id, target.id)

    def delete_connection(self, connection_id: str) -> bool:
        before = len(self.connections)
        self.connections = [item for item in self.connections if item.id != connection_id]
        return len(self.connections) != before

    # Variables

    def add_variable(
        self,
        name: str,
        type: ValueType = ValueType.ANY,
        default_value: Any = None,
        variable_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Variable:
        variable_id = variable_id or uuid.uuid4().hex
        if self.find_variable(variable_id) is not None:
            raise StructuralError(f"Variable id {variable_id} already exists.")
        if self.find_variable_by_name(name) is not None:
            raise StructuralError(f"Variable name {name!r} already exists.")
        variable = Variable(
            id=variable_id,
            name=name,
            type=type,
            default_value=coerce(default_value, type),
            description=description,
        )
        self.variables.append(variable)
        return variable

    def update_variable(
        self,
        variable_id: str,
        *,
        name: Optional[str] = None,
        type: Optional[ValueType] = None,
        default_value: Any = _UNSET,
        description: Any = _UNSET,
    ) -> Variable:
        variable = self.find_variable(variable_id)
        if variable is None:
            raise StructuralError(f"Variable {variable_id} does not exist.")
        if name is not None and name != variable.name:
            if self.find_variable_by_name(name) is not None:
                raise StructuralError(f"Variable name {name!r} already exists.")
            variable.name = name
        if type is not None:
            variable.type = type
            variable.default_value = coerce(variable.default_value, type)
        if default_value is not _UNSET:
            variable.default_value = coerce(default_value, variable.type)
        if description is not _UNSET:
            variable.description = description
        return variable

    def delete_variable(self, variable_id: str) -> bool:
        before = len(self.variables)
        self.variables = [item for item in self.variables if item.id != variable_id]
        return len(self.variables) != before

    # Metadata

    def update_metadata(
        self,
        *,
        name: Optional[str] = None,
        description: Any = _UNSET,
        trigger: Optional[Trigger] = None,
    ) -> None:
        if name is not None:
            self.name = name
        if description is not _UNSET:
            self.description = description
        if trigger is not None:
            self.trigger = trigger

    # Queries

    def get_node(self, node_id: str) -> Optional[Node]:
        return next((node for node in self.nodes if node.id == node_id), None)

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return next((item for item in self.connections if item.id == connection_id), None)

    def connections_from(self, node_id: str, port_id: Optional[str] = None) -> Tuple[Connection, ...]:
        return tuple(
            connection
            for connection in self.connections
            if connection.from_node_id == node_id
            and (port_id is None or connection.from_port_id == port_id)
        )

    def connections_to(self, node_id: str) -> Tuple[Connection, ...]:
        return tuple(connection for connection in self.connections if connection.to_node_id == node_id)

    def connection_to(self, node_id: str, port_id: str) -> Optional[Connection]:
        return next(
            (
                connection
                for connection in self.connections
                if connection.to_node_id == node_id and connection.to_port_id == port_id
            ),
            None,
        )

    def entry_nodes(self) -> Tuple[Node, ...]:
        return tuple(node for node in self.nodes if get_node_template(node.type).entry)

    def find_variable(self, variable_id: str) -> Optional[Variable]:
        return next((item for item in self.variables if item.id == variable_id), None)

    def find_variable_by_name(self, name: str) -> Optional[Variable]:
        return next((item for item in self.variables if item.name == name), None)

    def snapshot(self) -> "Script":
        return copy.deepcopy(self)

    # Internal helpers

    def _require_node(self, node_id: str) -> Node:
        node = self.get_node(node_id)
        if node is None:
            raise StructuralError(f"Node {node_id} does not exist.")
        return node

    def _check_entry_unique(self, node: Node, template: NodeTemplate, ignore: Optional[str] = None) -> None:
        if not template.entry:
            return
        key = entry_target(node)
        for other in self.nodes:
            if other.id in (node.id, ignore):
                continue
            if get_node_template(other.type).entry and entry_target(other) == key:
                raise EntryNodeError(f"An entry node for {_describe_target(key)} already exists.")

    def _drop_stale_connections(self, node: Node, removed: set[str]) -> None:
        kept: List[Connection] = []
        for connection in self.connections:
            if connection.to_node_id == node.id and connection.to_port_id in removed:
                continue
            if connection.from_node_id == node.id and connection.from_port_id in removed:
                continue
            if connection.to_node_id == node.id and not self._still_compatible(connection):
                continue
            kept.append(connection)
        dropped = len(self.connections) - len(kept)
        if dropped:
            logger.debug("Dropped %d connection(s) after updating node %s", dropped, node.id)
        self.connections = kept

    def _still_compatible(self, connection: Connection) -> bool:
        source_node = self.get_node(connection.from_node_id)
        target_node = self.get_node(connection.to_node_id)
        if source_node is None or target_node is None:
            return False
        source = source_node.output_by_id(connection.from_port_id)
        target = target_node.input_by_id(connection.to_port_id)
        if source is None or target is None:
            return False
        if source.kind is not PortKind.VALUE:
            return True
        return is_compatible(source.value_type or ValueType.ANY, target.value_type or ValueType.ANY)


def entry_target(node: Node) -> Tuple[Any, ...]:
    """
    The trigger target an entry node answers to. Two entry nodes with the
    same target would make dispatch ambiguous.
    """

    if node.type == "event_ui":
        return (node.type, node.config.get("componentId") or None, node.config.get("eventType") or "click")
    if node.type == "event_hotkey":
        return (node.type, str(node.config.get("hotkey") or "").lower())
    if node.type == "event_interval":
        return (node.type, node.config.get("intervalMs"))
    return (node.type,)


def _describe_target(key: Tuple[Any, ...]) -> str:
    return " ".join(str(part) for part in key if part is not None)
