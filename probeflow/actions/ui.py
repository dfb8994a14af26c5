from __future__ import annotations

import logging
from typing import Any, cast

from probeflow.nodes.configs import BindToLabelConfig, UiComponentConfig
from probeflow.nodes.values import display

from .base import ActionContext, NodeOutput

logger = logging.getLogger(__name__)


def _write(context: ActionContext, component_id: str, value: Any) -> None:
    """
    UI writes never fail a run; problems are logged and the flow continues.
    """

    if context.ui is None:
        logger.warning("No UI state attached; dropped value for component %s", component_id)
        return
    try:
        context.ui.set_value(component_id, value)
    except Exception as exc:  # pragma: no cover - runtime safeguard
        logger.warning("UI write to %s failed: %s", component_id, exc)


class UiGetValueAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(UiComponentConfig, context.config)
        value = context.ui.get_value(config.component_id) if context.ui is not None else None
        return NodeOutput.pure(value=value, componentId=config.component_id)


class UiSetValueAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(UiComponentConfig, context.config)
        _write(context, config.component_id, context.value("value"))
        return NodeOutput.flow()


class BindToLabelAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(BindToLabelConfig, context.config)
        text = config.format.replace("{0}", display(context.value("value")))
        _write(context, config.component_id, text)
        return NodeOutput.flow()
