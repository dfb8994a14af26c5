from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, Optional, Protocol

if TYPE_CHECKING:  # pragma: no cover - type checking imports
    from probeflow.nodes import Node, NodeTemplate
    from probeflow.nodes.configs import NodeConfig
    from probeflow.settings import EngineSettings
    from probeflow.ui import UiStateStore

    from .state import ExecutionState


@dataclass
class NodeOutput:
    """
    What a node produced: output values by port name, and the flow output to
    continue through (``None`` stops the current branch).
    """

    values: Dict[str, Any] = field(default_factory=dict)
    next: Optional[str] = None

    @classmethod
    def flow(cls, port: str = "exec", **values: Any) -> "NodeOutput":
        return cls(values=dict(values), next=port)

    @classmethod
    def pure(cls, **values: Any) -> "NodeOutput":
        return cls(values=dict(values))


@dataclass
class ActionContext:
    """
    Context object passed to actions at runtime.
    """

    node: "Node"
    template: "NodeTemplate"
    config: "NodeConfig"
    state: "ExecutionState"
    settings: "EngineSettings"
    resolver: Callable[[str], Any]
    connected: Callable[[str], bool]
    ui: Optional["UiStateStore"] = None

    def value(self, port_name: str) -> Any:
        """
        Resolve a value input by port name.
        """

        return self.resolver(port_name)

    def is_connected(self, port_name: str) -> bool:
        return self.connected(port_name)

    def log(self, line: str) -> None:
        self.state.log(line)

    def warn(self, line: str) -> None:
        self.state.warn(line)


class HostAction(Protocol):
    """
    Protocol that all in-process node implementations must follow.
    """

    def execute(self, context: ActionContext) -> NodeOutput:  # pragma: no cover - interface
        ...


class LoopAction(Protocol):
    """
    Looping nodes yield the output values of each iteration; the engine runs
    the ``body`` branch after every yield and ``done`` once exhausted.
    """

    def iterate(self, context: ActionContext) -> Iterator[Dict[str, Any]]:  # pragma: no cover - interface
        ...
