from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple, Union

from .base import Connection
from .types import PortDirection, PortKind, ValueType, is_compatible

if TYPE_CHECKING:  # pragma: no cover - type checking imports
    from .graph import Script


class RejectReason(Enum):
    UNKNOWN_NODE = "unknown_node"
    UNKNOWN_PORT = "unknown_port"
    WRONG_DIRECTION = "wrong_direction"
    SELF_LOOP = "self_loop"
    INPUT_ALREADY_CONNECTED = "input_already_connected"
    KIND_MISMATCH = "kind_mismatch"
    TYPE_MISMATCH = "type_mismatch"


@dataclass(frozen=True)
class ConnectionRejected:
    """
    Why a candidate edge was refused. Returned, never raised, so the editor
    can show the reason next to the dragged wire.
    """

    reason: RejectReason
    message: str

    def __bool__(self) -> bool:
        return False


def _check(
    script: "Script",
    from_node_id: str,
    from_port_id: str,
    to_node_id: str,
    to_port_id: str,
) -> Optional[ConnectionRejected]:
    source_node = script.get_node(from_node_id)
    target_node = script.get_node(to_node_id)
    if source_node is None or target_node is None:
        missing = from_node_id if source_node is None else to_node_id
        return ConnectionRejected(RejectReason.UNKNOWN_NODE, f"Node {missing} does not exist.")

    source = source_node.port_by_id(from_port_id)
    target = target_node.port_by_id(to_port_id)
    if source is None or target is None:
        return ConnectionRejected(RejectReason.UNKNOWN_PORT, "One of the ports does not exist.")

    if source.direction is not PortDirection.OUTPUT:
        return ConnectionRejected(RejectReason.WRONG_DIRECTION, "Source port must be an output.")
    if target.direction is not PortDirection.INPUT:
        return ConnectionRejected(RejectReason.WRONG_DIRECTION, "Target port must be an input.")

    if from_node_id == to_node_id:
        return ConnectionRejected(RejectReason.SELF_LOOP, "Cannot connect a node to itself.")

    if script.connection_to(to_node_id, to_port_id) is not None:
        return ConnectionRejected(
            RejectReason.INPUT_ALREADY_CONNECTED,
            "Target port already has an incoming connection.",
        )

    if source.kind is not target.kind:
        return ConnectionRejected(
            RejectReason.KIND_MISMATCH,
            f"Cannot connect a {source.kind.value} port to a {target.kind.value} port.",
        )

    if source.kind is PortKind.VALUE:
        source_type = source.value_type or ValueType.ANY
        target_type = target.value_type or ValueType.ANY
        if not is_compatible(source_type, target_type):
            return ConnectionRejected(
                RejectReason.TYPE_MISMATCH,
                f"Incompatible port data types: {source_type.value} -> {target_type.value}.",
            )

    return None


def can_connect(
    script: "Script",
    from_node_id: str,
    from_port_id: str,
    to_node_id: str,
    to_port_id: str,
) -> Tuple[bool, Optional[ConnectionRejected]]:
    rejected = _check(script, from_node_id, from_port_id, to_node_id, to_port_id)
    return rejected is None, rejected


def try_connect(
    script: "Script",
    from_node_id: str,
    from_port_id: str,
    to_node_id: str,
    to_port_id: str,
    connection_id: Optional[str] = None,
) -> Union[Connection, ConnectionRejected]:
    """
    Build a connection if every precondition holds. The script is not
    modified; :meth:`Script.add_connection` appends the result.
    """

    rejected = _check(script, from_node_id, from_port_id, to_node_id, to_port_id)
    if rejected is not None:
        return rejected
    return Connection(
        id=connection_id or uuid.uuid4().hex,
        from_node_id=from_node_id,
        from_port_id=from_port_id,
        to_node_id=to_node_id,
        to_port_id=to_port_id,
    )
