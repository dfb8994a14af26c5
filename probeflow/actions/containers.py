from __future__ import annotations

from typing import Any, List

from probeflow.errors import NodeExecutionError
from probeflow.nodes.values import display, to_number, type_name, values_equal

from .base import ActionContext, NodeOutput


def _array(context: ActionContext, port_name: str = "array") -> List[Any]:
    value = context.value(port_name)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    raise NodeExecutionError(f"expected an array, got {type_name(value)}", context.node.id)


def _index(context: ActionContext, length: int) -> int:
    raw = context.value("index")
    number = to_number(raw)
    if number is None or isinstance(number, float) and not number.is_integer():
        raise NodeExecutionError(f"array index must be an integer, got {display(raw)}", context.node.id)
    index = int(number)
    if not 0 <= index < length:
        raise NodeExecutionError(f"index {index} out of bounds for length {length}", context.node.id)
    return index


class ArrayCreateAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        items = [
            context.value(f"elem{index}")
            for index in range(4)
            if context.is_connected(f"elem{index}")
        ]
        return NodeOutput.pure(array=items)


class ArrayGetAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        items = _array(context)
        return NodeOutput.pure(element=items[_index(context, len(items))])


class ArraySetAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        items = _array(context)
        items[_index(context, len(items))] = context.value("value")
        return NodeOutput.flow(array=items)


class ArrayPushAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        items = _array(context)
        items.append(context.value("value"))
        return NodeOutput.flow(array=items, length=len(items))


class ArrayLengthAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        value = context.value("array")
        if value is None:
            return NodeOutput.pure(length=0)
        if isinstance(value, (list, tuple, str, dict)):
            return NodeOutput.pure(length=len(value))
        raise NodeExecutionError(f"cannot take the length of {type_name(value)}", context.node.id)


class ArrayFindAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        items = _array(context)
        needle = context.value("value")
        index = next((position for position, item in enumerate(items) if values_equal(item, needle)), -1)
        return NodeOutput.pure(index=index, found=index >= 0)


def _key(context: ActionContext) -> str:
    key = context.value("key")
    return "" if key is None else display(key)


class ObjectGetAction:
    """
    Reads a property; arrays accept a numeric key. Missing keys give ``None``.
    """

    def execute(self, context: ActionContext) -> NodeOutput:
        target = context.value("object")
        key = _key(context)
        value: Any = None
        if isinstance(target, dict):
            value = target.get(key)
        elif isinstance(target, list) and key.isdigit():
            position = int(key)
            value = target[position] if position < len(target) else None
        return NodeOutput.pure(value=value)


class ObjectSetAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        target = context.value("object")
        key = _key(context)
        value = context.value("value")

        if isinstance(target, list):
            if not key.isdigit():
                raise NodeExecutionError(f"expected a numeric index, got {key!r}", context.node.id)
            position = int(key)
            if position >= len(target):
                raise NodeExecutionError(
                    f"index {position} out of bounds for length {len(target)}", context.node.id
                )
            updated: Any = list(target)
            updated[position] = value
        elif isinstance(target, dict):
            updated = dict(target)
            updated[key] = value
        else:
            updated = {key: value}
        return NodeOutput.flow(object=updated)


class ObjectKeysAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        target = context.value("object")
        keys: List[Any]
        if isinstance(target, dict):
            keys = [str(key) for key in target]
        elif isinstance(target, list):
            keys = list(range(len(target)))
        else:
            keys = []
        return NodeOutput.pure(keys=keys)

