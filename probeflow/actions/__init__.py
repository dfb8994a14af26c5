"""
Script execution: the engine, its run state and the node implementations.
"""

from .base import ActionContext, HostAction, LoopAction, NodeOutput
from .engine import ScriptEngine
from .state import CancellationToken, ExecutionResult, RunStatus, VariableStore
from .target import RpcBridge

__all__ = [
    "ActionContext",
    "CancellationToken",
    "ExecutionResult",
    "HostAction",
    "LoopAction",
    "NodeOutput",
    "RpcBridge",
    "RunStatus",
    "ScriptEngine",
    "VariableStore",
]
