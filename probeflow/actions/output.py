from __future__ import annotations

import logging
from typing import cast

from probeflow.nodes.configs import LogConfig, NotifyConfig
from probeflow.nodes.values import display

from .base import ActionContext, NodeOutput

# Script output is mirrored here so hosts can route it like any other log.
script_logger = logging.getLogger("probeflow.script")

_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


class LogAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(LogConfig, context.config)
        value = context.value("message")
        message = "(empty)" if value is None else display(value)
        script_logger.info("%s", message)
        context.log(message)
        return NodeOutput.flow()


class NotifyAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(NotifyConfig, context.config)
        title = context.value("title")
        title = "Notification" if title is None else display(title)
        message = context.value("message")
        message = "" if message is None else display(message)

        script_logger.log(_LEVELS[config.level], "%s: %s", title, message)
        context.log(f"[{config.level}] {title}: {message}")
        return NodeOutput.flow()
