from __future__ import annotations

from typing import Optional


class ProbeflowError(Exception):
    """
    Base class for all errors raised by the script engine.
    """


class StructuralError(ProbeflowError):
    """
    A graph mutation was refused; the script is left untouched.
    """


class EntryNodeError(StructuralError):
    pass


class UnknownNodeTypeError(StructuralError, KeyError):
    def __init__(self, node_type: str) -> None:
        super().__init__(node_type)
        self.node_type = node_type

    def __str__(self) -> str:
        return f"Unknown node type: {self.node_type}"


class ConfigError(StructuralError, ValueError):
    def __init__(self, node_type: str, key: str, message: str) -> None:
        super().__init__(f"{node_type}.{key}: {message}")
        self.node_type = node_type
        self.key = key


class ExecutionError(ProbeflowError):
    """
    Fatal run error. Carries the id of the node that failed, if known.
    """

    def __init__(self, message: str, node_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.node_id = node_id

    def __str__(self) -> str:
        message = super().__str__()
        if self.node_id:
            return f"{message} (node {self.node_id})"
        return message


class ResolutionError(ExecutionError):
    pass


class NodeExecutionError(ExecutionError):
    pass


class TargetDispatchError(ExecutionError):
    pass


class NoSessionError(TargetDispatchError):
    def __init__(self, node_id: Optional[str] = None) -> None:
        super().__init__("no target session attached", node_id)


class RpcTimeoutError(TargetDispatchError):
    def __init__(self, method: str, timeout_ms: int, node_id: Optional[str] = None) -> None:
        super().__init__(f"RPC call '{method}' timed out after {timeout_ms}ms", node_id)
        self.method = method
        self.timeout_ms = timeout_ms


class AgentError(TargetDispatchError):
    pass


class RunInProgressError(ExecutionError):
    def __init__(self, script_id: str) -> None:
        super().__init__(f"run already in progress for script {script_id}")
        self.script_id = script_id


class ExecutionCancelled(ProbeflowError):
    """
    Raised inside a run when its cancellation token fires. Not a failure.
    """


class ConnectionRejectedError(StructuralError):
    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason
