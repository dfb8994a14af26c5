from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from probeflow.errors import StructuralError
from probeflow.nodes import (
    Connection,
    Node,
    Port,
    PortDirection,
    PortKind,
    Script,
    Trigger,
    TriggerKind,
    ValueType,
    get_node_template,
)
from probeflow.nodes.types import parse_value_type
from probeflow.nodes.values import to_json

logger = logging.getLogger(__name__)


class ScriptStore:
    """
    Convert between the editor's JSON snapshot of a script and the model,
    and read or write such snapshots on disk.
    """

    def save(self, path: Path, payload: Dict[str, Any]) -> None:
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def load(self, path: Path) -> Dict[str, Any]:
        contents = path.read_text(encoding="utf-8")
        return json.loads(contents)

    def export_script(self, script: Script) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": script.id,
            "name": script.name,
            "variables": [],
            "nodes": [],
            "connections": [],
            "trigger": _export_trigger(script.trigger),
        }
        if script.description is not None:
            data["description"] = script.description

        for variable in script.variables:
            entry: Dict[str, Any] = {
                "id": variable.id,
                "name": variable.name,
                "type": variable.type.value,
            }
            if variable.default_value is not None:
                entry["defaultValue"] = to_json(variable.default_value)
            if variable.description is not None:
                entry["description"] = variable.description
            data["variables"].append(entry)

        for node in script.nodes:
            data["nodes"].append(
                {
                    "id": node.id,
                    "type": node.type,
                    "label": node.label,
                    "x": node.x,
                    "y": node.y,
                    "config": to_json(node.config),
                    "inputs": [_export_port(port) for port in node.inputs],
                    "outputs": [_export_port(port) for port in node.outputs],
                }
            )

        for connection in script.connections:
            data["connections"].append(
                {
                    "id": connection.id,
                    "fromNodeId": connection.from_node_id,
                    "fromPortId": connection.from_port_id,
                    "toNodeId": connection.to_node_id,
                    "toPortId": connection.to_port_id,
                }
            )

        return data

    def import_script(self, payload: Dict[str, Any]) -> Script:
        """
        Build a script from an editor snapshot. Nodes of unknown types and
        connections the validator rejects are skipped with a warning.
        """

        script = Script(
            name=str(payload.get("name") or "Untitled"),
            description=payload.get("description"),
            trigger=_import_trigger(payload.get("trigger")),
        )
        if payload.get("id"):
            script.id = str(payload["id"])

        variables_data: Iterable[Dict[str, Any]] = payload.get("variables", [])
        for variable_payload in variables_data:
            name = variable_payload.get("name")
            if not name:
                continue
            try:
                script.add_variable(
                    str(name),
                    parse_value_type(variable_payload.get("type"), ValueType.ANY),
                    variable_payload.get("defaultValue"),
                    variable_id=variable_payload.get("id"),
                    description=variable_payload.get("description"),
                )
            except StructuralError as exc:
                logger.warning("Skipping variable %s: %s", name, exc)

        nodes_data: Iterable[Dict[str, Any]] = payload.get("nodes", [])
        for node_payload in nodes_data:
            node_type = node_payload.get("type")
            node_id = node_payload.get("id")
            if not node_type or not node_id:
                continue

            try:
                template = get_node_template(str(node_type))
            except KeyError:
                logger.warning("Skipping node %s of unknown type %s", node_id, node_type)
                continue

            config = node_payload.get("config", {})
            node = Node(
                id=str(node_id),
                type=template.type,
                label=str(node_payload.get("label") or template.label),
                x=float(node_payload.get("x", 0.0) or 0.0),
                y=float(node_payload.get("y", 0.0) or 0.0),
                config={**template.default_config, **(config if isinstance(config, dict) else {})},
                inputs=_import_ports(node_payload.get("inputs"), PortDirection.INPUT),
                outputs=_import_ports(node_payload.get("outputs"), PortDirection.OUTPUT),
            )
            try:
                script.insert_node(node)
            except StructuralError as exc:
                logger.warning("Skipping node %s: %s", node_id, exc)

        connections_data: Iterable[Dict[str, Any]] = payload.get("connections", [])
        for connection_payload in connections_data:
            from_node = connection_payload.get("fromNodeId")
            from_port = connection_payload.get("fromPortId")
            to_node = connection_payload.get("toNodeId")
            to_port = connection_payload.get("toPortId")

            if not all([from_node, from_port, to_node, to_port]):
                continue

            connection_id = connection_payload.get("id")
            if connection_id and script.get_connection(str(connection_id)) is not None:
                connection_id = None
            result = script.add_connection(
                str(from_node),
                str(from_port),
                str(to_node),
                str(to_port),
                connection_id=str(connection_id) if connection_id else None,
            )
            if not isinstance(result, Connection):
                logger.warning("Skipping connection %s: %s", connection_payload.get("id"), result.message)

        return script

    def save_script(self, path: Path, script: Script) -> None:
        self.save(path, self.export_script(script))

    def load_script(self, path: Path) -> Script:
        return self.import_script(self.load(path))


def _export_port(port: Port) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": port.id,
        "name": port.name,
        "type": port.kind.value,
        "direction": port.direction.value,
    }
    if port.value_type is not None:
        data["valueType"] = port.value_type.value
    return data


def _import_ports(raw: Any, direction: PortDirection) -> List[Port]:
    ports = []
    for item in raw or []:
        if not isinstance(item, dict) or not item.get("id") or not item.get("name"):
            continue
        try:
            kind = PortKind(item.get("type", "value"))
        except ValueError:
            continue
        ports.append(
            Port(
                id=str(item["id"]),
                name=str(item["name"]),
                direction=direction,
                kind=kind,
                value_type=parse_value_type(item.get("valueType"), ValueType.ANY)
                if kind is PortKind.VALUE
                else None,
            )
        )
    return ports


def _export_trigger(trigger: Trigger) -> Dict[str, Any]:
    data: Dict[str, Any] = {"type": trigger.kind.value}
    if trigger.component_id is not None:
        data["componentId"] = trigger.component_id
    if trigger.event_type is not None:
        data["eventType"] = trigger.event_type
    if trigger.hotkey is not None:
        data["hotkey"] = trigger.hotkey
    if trigger.interval_ms is not None:
        data["intervalMs"] = trigger.interval_ms
    return data


def _import_trigger(raw: Optional[Dict[str, Any]]) -> Trigger:
    if not isinstance(raw, dict):
        return Trigger()
    try:
        kind = TriggerKind(raw.get("type", "manual"))
    except ValueError:
        logger.warning("Unknown trigger type %r; using manual", raw.get("type"))
        kind = TriggerKind.MANUAL
    interval = raw.get("intervalMs")
    return Trigger(
        kind=kind,
        component_id=raw.get("componentId"),
        event_type=raw.get("eventType"),
        hotkey=raw.get("hotkey"),
        interval_ms=int(interval) if interval is not None else None,
    )
