from __future__ import annotations

from typing import cast

from probeflow.nodes.configs import ProcessFilterConfig
from probeflow.system import list_devices, list_processes

from .base import ActionContext, NodeOutput


class DeviceEnumerateAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        devices = [device.to_value() for device in list_devices()]
        return NodeOutput.flow(devices=devices, count=len(devices))


class ProcessEnumerateAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(ProcessFilterConfig, context.config)
        processes = [process.to_value() for process in list_processes(config.name_filter)]
        return NodeOutput.flow(processes=processes, count=len(processes))
