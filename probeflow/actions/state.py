from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from probeflow.errors import ExecutionCancelled
from probeflow.nodes import Script, Variable
from probeflow.nodes.values import coerce, to_json, zero_value


class RunStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CancellationToken:
    """
    Cooperative stop flag shared between a run and whoever may abort it.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExecutionCancelled()

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to ``seconds``; returns ``True`` if cancelled meanwhile.
        """

        return self._event.wait(max(0.0, seconds))


class VariableStore:
    """
    Variable values of one script, keyed by variable id. Outlives single
    runs; only :meth:`reset` (or a new engine) starts it over.
    """

    def __init__(self, variables: Iterable[Variable] = ()) -> None:
        self._lock = threading.RLock()
        self._values: Dict[str, Any] = {}
        self.seed(variables)

    @staticmethod
    def initial_value(variable: Variable) -> Any:
        if variable.default_value is not None:
            return coerce(variable.default_value, variable.type)
        return zero_value(variable.type)

    def seed(self, variables: Iterable[Variable]) -> None:
        """
        Add variables that are not bound yet. Existing bindings are kept.
        """

        with self._lock:
            for variable in variables:
                if variable.id not in self._values:
                    self._values[variable.id] = self.initial_value(variable)

    def has(self, variable_id: str) -> bool:
        with self._lock:
            return variable_id in self._values

    def get(self, variable_id: str) -> Any:
        with self._lock:
            return self._values[variable_id]

    def set(self, variable_id: str, value: Any) -> None:
        with self._lock:
            self._values[variable_id] = value

    def reset(self, variables: Iterable[Variable] = ()) -> None:
        with self._lock:
            self._values.clear()
            self.seed(variables)

    def by_name(self, variables: Iterable[Variable]) -> Dict[str, Any]:
        with self._lock:
            return {
                variable.name: self._values[variable.id]
                for variable in variables
                if variable.id in self._values
            }


class BindingCache:
    """
    Run-local node outputs. Flow-node outputs live for the whole run;
    pure-node outputs only until the next flow node executes.
    """

    def __init__(self) -> None:
        self._flow: Dict[str, Dict[str, Any]] = {}
        self._pure: Dict[str, Dict[str, Any]] = {}

    def store_flow(self, node_id: str, values: Mapping[str, Any]) -> None:
        self._flow[node_id] = dict(values)

    def store_pure(self, node_id: str, values: Mapping[str, Any]) -> None:
        self._pure[node_id] = dict(values)

    def lookup(self, node_id: str) -> Optional[Dict[str, Any]]:
        if node_id in self._pure:
            return self._pure[node_id]
        return self._flow.get(node_id)

    def clear_pure(self) -> None:
        self._pure.clear()


@dataclass
class ExecutionState:
    script: Script
    variables: VariableStore
    cancel: CancellationToken
    entry_value: Any = None
    component_id: Optional[str] = None
    cache: BindingCache = field(default_factory=BindingCache)
    logs: List[str] = field(default_factory=list)
    loop_depth: int = 0
    # nodes on the flow path currently being executed
    active: set = field(default_factory=set)
    # pure nodes currently being evaluated
    resolving: set = field(default_factory=set)
    # last produced outputs per node, kept for the result
    trace: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def check_cancelled(self) -> None:
        self.cancel.raise_if_cancelled()

    def log(self, line: str) -> None:
        self.logs.append(line)

    def warn(self, line: str) -> None:
        self.logs.append(f"[warning] {line}")

    def record(self, node_id: str, values: Mapping[str, Any]) -> None:
        self.trace.setdefault(node_id, {}).update(values)


@dataclass
class ExecutionResult:
    status: RunStatus
    variables: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_node_id: Optional[str] = None
    outputs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status is RunStatus.COMPLETED

    @property
    def cancelled(self) -> bool:
        return self.status is RunStatus.CANCELLED

    def output(self, node_id: str, port_name: str, default: Any = None) -> Any:
        return self.outputs.get(node_id, {}).get(port_name, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "success": self.success,
            "variables": to_json(self.variables),
            "logs": list(self.logs),
            "error": self.error,
            "errorNodeId": self.error_node_id,
            "outputs": to_json(self.outputs),
        }
