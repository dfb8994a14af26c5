from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, cast

from probeflow.errors import ExecutionCancelled, NodeExecutionError
from probeflow.nodes.builtin import MAX_SWITCH_CASES
from probeflow.nodes.configs import DelayConfig, ForEachConfig, ForRangeConfig, LoopConfig, SwitchConfig
from probeflow.nodes.values import display, is_truthy, to_number

from .base import ActionContext, NodeOutput

logger = logging.getLogger(__name__)


class LoopBreak(Exception):
    """
    Unwinds the body of the innermost loop.
    """


class LoopContinue(Exception):
    """
    Skips the rest of the current iteration of the innermost loop.
    """


class EntryAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        values: Dict[str, Any] = {"value": context.state.entry_value}
        if context.node.output_by_name("componentId") is not None:
            values["componentId"] = context.state.component_id
        return NodeOutput(values=values, next="exec")


class EndAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        return NodeOutput()


class IfAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        condition = is_truthy(context.value("condition"))
        return NodeOutput(next="true" if condition else "false")


class SwitchAction:
    """
    Case values are compared as strings against the stringified input.
    """

    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(SwitchConfig, context.config)
        cases = config.case_values
        if len(cases) > MAX_SWITCH_CASES:
            context.warn(
                f"switch {context.node.id} has {len(cases)} case values; "
                f"only the first {MAX_SWITCH_CASES} are routed"
            )
            cases = cases[:MAX_SWITCH_CASES]

        selector = display(context.value("value"))
        for index, case in enumerate(cases):
            if case == selector:
                return NodeOutput(next=f"case{index}")
        return NodeOutput(next="default")


class DelayAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(DelayConfig, context.config)
        milliseconds = to_number(context.value("ms"))
        if milliseconds is None:
            milliseconds = config.ms
        milliseconds = max(0, int(milliseconds))
        if context.state.cancel.wait(milliseconds / 1000.0):
            raise ExecutionCancelled()
        return NodeOutput.flow()


class BreakAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        if context.state.loop_depth <= 0:
            raise NodeExecutionError("break outside of loop", context.node.id)
        raise LoopBreak()


class ContinueAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        if context.state.loop_depth <= 0:
            raise NodeExecutionError("continue outside of loop", context.node.id)
        raise LoopContinue()


def _cap_reached(context: ActionContext, cap: int) -> None:
    message = f"{context.node.type} {context.node.id} stopped after {cap} iterations (maxIterations)"
    logger.warning("%s", message)
    context.warn(message)


class WhileLoopAction:
    """
    Re-evaluates ``condition`` before every iteration.
    """

    def iterate(self, context: ActionContext) -> Iterator[Dict[str, Any]]:
        config = cast(LoopConfig, context.config)
        index = 0
        while is_truthy(context.value("condition")):
            if index >= config.max_iterations:
                _cap_reached(context, config.max_iterations)
                return
            yield {"index": index}
            index += 1


class ForEachAction:
    def iterate(self, context: ActionContext) -> Iterator[Dict[str, Any]]:
        config = cast(ForEachConfig, context.config)
        items = context.value("array")
        if items is None:
            items = []
        if not isinstance(items, (list, tuple)):
            raise NodeExecutionError(f"for_each expects an array, got {type(items).__name__}", context.node.id)

        for index, element in enumerate(list(items)):
            if index >= config.max_iterations:
                _cap_reached(context, config.max_iterations)
                return
            yield {"element": element, "index": index}


class ForRangeAction:
    """
    Counts from ``start`` (inclusive) towards ``end`` (exclusive).
    """

    def iterate(self, context: ActionContext) -> Iterator[Dict[str, Any]]:
        config = cast(ForRangeConfig, context.config)
        start = self._bound(context, "start", config.start)
        end = self._bound(context, "end", config.end)
        step = self._bound(context, "step", config.step)
        if step == 0:
            raise NodeExecutionError("for_range step must not be zero", context.node.id)

        value = start
        count = 0
        while (step > 0 and value < end) or (step < 0 and value > end):
            if count >= config.max_iterations:
                _cap_reached(context, config.max_iterations)
                return
            yield {"index": value}
            value += step
            count += 1

    @staticmethod
    def _bound(context: ActionContext, port_name: str, fallback: int) -> int:
        number = to_number(context.value(port_name))
        if number is None:
            return fallback
        return int(number)
