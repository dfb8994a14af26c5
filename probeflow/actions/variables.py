from __future__ import annotations

from typing import Union, cast

from probeflow.errors import ResolutionError
from probeflow.nodes import Variable
from probeflow.nodes.configs import DeclareVariableConfig, VariableRefConfig
from probeflow.nodes.values import coerce

from .base import ActionContext, NodeOutput


def _variable(context: ActionContext) -> Variable:
    config = cast(Union[VariableRefConfig, DeclareVariableConfig], context.config)
    if not config.variable_id:
        raise ResolutionError("no variable selected", context.node.id)
    variable = context.state.script.find_variable(config.variable_id)
    if variable is None:
        raise ResolutionError(f"variable {config.variable_id} no longer exists", context.node.id)
    store = context.state.variables
    if not store.has(variable.id):
        store.seed([variable])
    return variable


class DeclareVariableAction:
    """
    (Re)initialises a variable from ``initialValue``, the inline value, or
    the variable's own default, in that order.
    """

    def execute(self, context: ActionContext) -> NodeOutput:
        variable = _variable(context)
        value = context.value("initialValue")
        if value is None:
            value = context.state.variables.initial_value(variable)
        value = coerce(value, variable.type)
        context.state.variables.set(variable.id, value)
        return NodeOutput.flow(value=value)


class SetVariableAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        variable = _variable(context)
        value = coerce(context.value("value"), variable.type)
        context.state.variables.set(variable.id, value)
        return NodeOutput.flow(value=value)


class GetVariableAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        variable = _variable(context)
        return NodeOutput.pure(value=context.state.variables.get(variable.id))
