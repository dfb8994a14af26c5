from __future__ import annotations

import math
from typing import Any, Callable, Dict, cast

from probeflow.errors import NodeExecutionError
from probeflow.nodes import ValueType
from probeflow.nodes.configs import (
    CompareConfig,
    ConstBooleanConfig,
    ConstNumberConfig,
    ConstPointerConfig,
    ConstStringConfig,
    LogicConfig,
    MathConfig,
)
from probeflow.nodes.values import Pointer, is_truthy, to_number, type_name, wrap_integer

from .base import ActionContext, NodeOutput


class ConstantAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = context.config
        if isinstance(config, ConstNumberConfig):
            value: Any = float(config.value) if config.is_float else int(config.value)
        elif isinstance(config, (ConstStringConfig, ConstBooleanConfig, ConstPointerConfig)):
            value = config.value
        else:
            raise NodeExecutionError(f"{context.node.type} is not a constant", context.node.id)
        return NodeOutput.pure(value=value)


def _round_half_away(value: float) -> float:
    if value >= 0:
        return float(math.floor(value + 0.5))
    return -float(math.floor(-value + 0.5))


def _float_sqrt(value: float) -> float:
    return math.sqrt(value) if value >= 0 else math.nan


_FLOAT_OPERATIONS: Dict[str, Callable[[float, float], float]] = {
    "add": lambda a, b: a + b,
    "subtract": lambda a, b: a - b,
    "multiply": lambda a, b: a * b,
    "divide": lambda a, b: a / b,
    "modulo": math.fmod,
    "power": math.pow,
    "min": min,
    "max": max,
    "abs": lambda a, b: abs(a),
    "floor": lambda a, b: float(math.floor(a)),
    "ceil": lambda a, b: float(math.ceil(a)),
    "round": lambda a, b: _round_half_away(a),
    "sqrt": lambda a, b: _float_sqrt(a),
}


def _truncating_divide(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def _integer_power(a: int, b: int) -> Any:
    if b < 0:
        return math.pow(a, b)
    return a**b


_INTEGER_OPERATIONS: Dict[str, Callable[[int, int], Any]] = {
    "add": lambda a, b: a + b,
    "subtract": lambda a, b: a - b,
    "multiply": lambda a, b: a * b,
    "divide": _truncating_divide,
    "modulo": lambda a, b: a - b * _truncating_divide(a, b),
    "power": _integer_power,
    "min": min,
    "max": max,
    "abs": lambda a, b: abs(a),
    "floor": lambda a, b: a,
    "ceil": lambda a, b: a,
    "round": lambda a, b: a,
    "sqrt": lambda a, b: int(math.sqrt(a)) if a >= 0 else 0,
    "bit_and": lambda a, b: a & b,
    "bit_or": lambda a, b: a | b,
    "bit_xor": lambda a, b: a ^ b,
    "bit_not": lambda a, b: ~a,
    "shift_left": lambda a, b: a << b,
    "shift_right": lambda a, b: a >> b,
}

_DIVIDING = {"divide", "modulo"}
_SHIFTS = {"shift_left", "shift_right"}


class MathAction:
    """
    Integer operands use exact 64-bit integer arithmetic, a float operand
    switches the whole operation to floating point. Pointer operands keep
    the result a pointer (unsigned 64-bit wrap).
    """

    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(MathConfig, context.config)
        operation = config.operation

        raw_a = context.value("a")
        raw_b = context.value("b")
        a = self._operand(context, "a", raw_a)
        b = self._operand(context, "b", raw_b) if raw_b is not None else 0

        if isinstance(a, float) or isinstance(b, float):
            result = self._float(context, operation, float(a), float(b))
        else:
            result = self._integer(context, operation, int(a), int(b))
            if isinstance(result, int):
                if isinstance(raw_a, Pointer) or isinstance(raw_b, Pointer):
                    result = Pointer(result)
                else:
                    result = wrap_integer(result, ValueType.INT64)
        return NodeOutput.pure(result=result)

    @staticmethod
    def _operand(context: ActionContext, port_name: str, raw: Any) -> Any:
        number = to_number(raw)
        if number is None:
            raise NodeExecutionError(
                f"math operand '{port_name}' is not a number ({type_name(raw)})",
                context.node.id,
            )
        return number

    @staticmethod
    def _float(context: ActionContext, operation: str, a: float, b: float) -> float:
        handler = _FLOAT_OPERATIONS.get(operation)
        if handler is None:
            raise NodeExecutionError(f"math operation '{operation}' requires integer operands", context.node.id)
        if operation in _DIVIDING and b == 0.0:
            raise NodeExecutionError("division by zero", context.node.id)
        try:
            return float(handler(a, b))
        except (OverflowError, ValueError) as exc:
            raise NodeExecutionError(f"math {operation} failed: {exc}", context.node.id) from exc

    @staticmethod
    def _integer(context: ActionContext, operation: str, a: int, b: int) -> Any:
        if operation in _DIVIDING and b == 0:
            raise NodeExecutionError("division by zero", context.node.id)
        if operation in _SHIFTS and not 0 <= b < 64:
            raise NodeExecutionError(f"shift amount {b} out of range", context.node.id)
        if operation == "power" and b > 64:
            raise NodeExecutionError(f"exponent {b} too large", context.node.id)
        return _INTEGER_OPERATIONS[operation](a, b)


def compare_values(left: Any, right: Any) -> int:
    """
    Three-way comparison. Numbers (pointers included) compare numerically,
    ``None`` sorts first, otherwise unlike types order by type name.
    """

    if left is None and right is None:
        return 0
    if left is None:
        return -1
    if right is None:
        return 1
    left_numeric = isinstance(left, (int, float)) and not isinstance(left, bool)
    right_numeric = isinstance(right, (int, float)) and not isinstance(right, bool)
    if left_numeric and right_numeric:
        return (left > right) - (left < right)
    if type_name(left) == type_name(right) and isinstance(left, (str, bool)):
        return (left > right) - (left < right)
    if type_name(left) == type_name(right):
        return 0 if left == right else (1 if repr(left) > repr(right) else -1)
    return (type_name(left) > type_name(right)) - (type_name(left) < type_name(right))


_COMPARISONS: Dict[str, Callable[[int], bool]] = {
    "equals": lambda order: order == 0,
    "not_equals": lambda order: order != 0,
    "less_than": lambda order: order < 0,
    "less_than_equals": lambda order: order <= 0,
    "greater_than": lambda order: order > 0,
    "greater_than_equals": lambda order: order >= 0,
}


class CompareAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(CompareConfig, context.config)
        order = compare_values(context.value("a"), context.value("b"))
        return NodeOutput.pure(result=_COMPARISONS[config.operation](order))


class LogicAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(LogicConfig, context.config)
        a = is_truthy(context.value("a"))
        b = is_truthy(context.value("b"))
        result = {
            "and": a and b,
            "or": a or b,
            "not": not a,
            "xor": a != b,
            "nand": not (a and b),
            "nor": not (a or b),
        }[config.operation]
        return NodeOutput.pure(result=result)
