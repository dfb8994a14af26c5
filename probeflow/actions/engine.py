from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from probeflow.agent.events import TriggerEvent
from probeflow.agent.session import AgentChannel, TargetSession
from probeflow.errors import (
    ExecutionCancelled,
    ExecutionError,
    NoSessionError,
    NodeExecutionError,
    ProbeflowError,
    ResolutionError,
    RunInProgressError,
)
from probeflow.nodes import HostEffect, Node, NodeTemplate, PortKind, Script, TargetCall, get_node_template
from probeflow.nodes.configs import NodeConfig
from probeflow.nodes.values import coerce
from probeflow.settings import EngineSettings

from .arithmetic import CompareAction, ConstantAction, LogicAction, MathAction
from .base import ActionContext, HostAction, LoopAction, NodeOutput
from .containers import (
    ArrayCreateAction,
    ArrayFindAction,
    ArrayGetAction,
    ArrayLengthAction,
    ArrayPushAction,
    ArraySetAction,
    ObjectGetAction,
    ObjectKeysAction,
    ObjectSetAction,
)
from .device import DeviceEnumerateAction, ProcessEnumerateAction
from .flow import (
    BreakAction,
    ContinueAction,
    DelayAction,
    EndAction,
    EntryAction,
    ForEachAction,
    ForRangeAction,
    IfAction,
    LoopBreak,
    LoopContinue,
    SwitchAction,
    WhileLoopAction,
)
from .output import LogAction, NotifyAction
from .state import CancellationToken, ExecutionResult, ExecutionState, RunStatus, VariableStore
from .strings import (
    ParseFloatAction,
    ParseIntAction,
    StringConcatAction,
    StringFormatAction,
    ToPointerAction,
    ToStringAction,
)
from .target import RpcBridge
from .ui import BindToLabelAction, UiGetValueAction, UiSetValueAction
from .variables import DeclareVariableAction, GetVariableAction, SetVariableAction

logger = logging.getLogger(__name__)

_LOOP_TYPES = {"loop": "loop_max_iterations", "for_each": "range_max_iterations", "for_range": "range_max_iterations"}


class ScriptEngine:
    """
    Run scripts from an entry node along their flow edges.

    Value inputs are resolved on demand by following value edges back to
    their producers. Host nodes execute in-process, target nodes are sent
    through the :class:`RpcBridge`.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        ui_state: Optional[Any] = None,
        bridge: Optional[RpcBridge] = None,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._ui = ui_state
        self._bridge = bridge or RpcBridge(timeout_ms=self._settings.rpc_timeout_ms)
        self._stores: Dict[str, VariableStore] = {}
        self._running: Dict[str, CancellationToken] = {}
        self._lock = threading.Lock()
        self._actions: Dict[str, HostAction] = {
            "entry": EntryAction(),
            "end": EndAction(),
            "if": IfAction(),
            "switch": SwitchAction(),
            "delay": DelayAction(),
            "break": BreakAction(),
            "continue": ContinueAction(),
            "const": ConstantAction(),
            "declare_variable": DeclareVariableAction(),
            "set_variable": SetVariableAction(),
            "get_variable": GetVariableAction(),
            "math": MathAction(),
            "compare": CompareAction(),
            "logic": LogicAction(),
            "string_format": StringFormatAction(),
            "string_concat": StringConcatAction(),
            "to_string": ToStringAction(),
            "parse_int": ParseIntAction(),
            "parse_float": ParseFloatAction(),
            "to_pointer": ToPointerAction(),
            "array_create": ArrayCreateAction(),
            "array_get": ArrayGetAction(),
            "array_set": ArraySetAction(),
            "array_push": ArrayPushAction(),
            "array_length": ArrayLengthAction(),
            "array_find": ArrayFindAction(),
            "object_get": ObjectGetAction(),
            "object_set": ObjectSetAction(),
            "object_keys": ObjectKeysAction(),
            "log": LogAction(),
            "notify": NotifyAction(),
            "ui_get_value": UiGetValueAction(),
            "ui_set_value": UiSetValueAction(),
            "bind_to_label": BindToLabelAction(),
            "device_enumerate": DeviceEnumerateAction(),
            "process_enumerate": ProcessEnumerateAction(),
        }
        self._loops: Dict[str, LoopAction] = {
            "loop": WhileLoopAction(),
            "for_each": ForEachAction(),
            "for_range": ForRangeAction(),
        }

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def bridge(self) -> RpcBridge:
        return self._bridge

    # Session interface

    def set_session(self, session_id: str, agent_script_id: str) -> None:
        self._bridge.set_session(TargetSession(session_id, agent_script_id))

    def clear_session(self) -> None:
        """
        Drop the target session and cancel every run still in flight.
        """

        self._bridge.clear_session()
        self.cancel_all()

    def cancel_all(self) -> int:
        with self._lock:
            tokens = list(self._running.values())
        for token in tokens:
            token.cancel()
        if tokens:
            logger.info("Cancelled %d running script(s)", len(tokens))
        return len(tokens)

    def set_agent(self, channel: Optional[AgentChannel]) -> None:
        self._bridge.set_channel(channel)

    def set_ui_state(self, ui_state: Optional[Any]) -> None:
        self._ui = ui_state

    # State

    def reset_state(self, script_id: Optional[str] = None) -> None:
        """
        Forget persistent variable values of one script, or of all scripts.
        """

        with self._lock:
            if script_id is None:
                self._stores.clear()
            else:
                self._stores.pop(script_id, None)

    def variables(self, script: Script) -> Dict[str, Any]:
        return self._store_for(script).by_name(script.variables)

    def _store_for(self, script: Script) -> VariableStore:
        with self._lock:
            store = self._stores.get(script.id)
            if store is None:
                store = VariableStore(script.variables)
                self._stores[script.id] = store
            else:
                store.seed(script.variables)
            return store

    # Trigger interface

    def dispatch(self, script: Script, event: TriggerEvent) -> Tuple[ExecutionResult, ...]:
        """
        Run every entry node of ``script`` that accepts ``event``.
        """

        results: List[ExecutionResult] = []
        for node in script.entry_nodes():
            if not event.accepts(node):
                continue
            results.append(self.run(script, node.id, event.value, event.component_id))
        if not results:
            logger.debug("No entry node accepted the %s event.", event.kind.value)
        return tuple(results)

    def run(
        self,
        script: Script,
        entry_node_id: str,
        entry_value: Any = None,
        component_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ExecutionResult:
        with self._lock:
            if script.id in self._running:
                error = RunInProgressError(script.id)
                logger.warning("%s", error)
                return ExecutionResult(status=RunStatus.FAILED, error=str(error))
            token = cancel or CancellationToken()
            self._running[script.id] = token

        try:
            return self._run(script.snapshot(), entry_node_id, entry_value, component_id, token)
        finally:
            with self._lock:
                self._running.pop(script.id, None)

    def _run(
        self,
        script: Script,
        entry_node_id: str,
        entry_value: Any,
        component_id: Optional[str],
        cancel: CancellationToken,
    ) -> ExecutionResult:
        state = ExecutionState(
            script=script,
            variables=self._store_for(script),
            cancel=cancel,
            entry_value=entry_value,
            component_id=component_id,
        )
        status = RunStatus.COMPLETED
        error: Optional[str] = None
        error_node_id: Optional[str] = None

        logger.debug("Running script %s from %s", script.id, entry_node_id)
        try:
            entry = script.get_node(entry_node_id)
            if entry is None:
                raise ResolutionError(f"entry node {entry_node_id} does not exist")
            self._run_chain(entry.id, state, depth=0)
        except ExecutionCancelled:
            status = RunStatus.CANCELLED
            logger.info("Run of script %s cancelled", script.id)
        except (LoopBreak, LoopContinue):
            status = RunStatus.FAILED
            error = "break/continue escaped its loop"
        except ExecutionError as exc:
            status = RunStatus.FAILED
            error = str(exc)
            error_node_id = exc.node_id
            logger.info("Run of script %s failed: %s", script.id, exc)
        except ProbeflowError as exc:
            status = RunStatus.FAILED
            error = str(exc)
            logger.info("Run of script %s failed: %s", script.id, exc)
        except Exception as exc:
            status = RunStatus.FAILED
            error = f"internal error: {exc}"
            logger.exception("Unexpected failure while running script %s", script.id)

        return ExecutionResult(
            status=status,
            variables=state.variables.by_name(script.variables),
            logs=list(state.logs),
            error=error,
            error_node_id=error_node_id,
            outputs={node_id: dict(values) for node_id, values in state.trace.items()},
        )

    # Flow traversal

    def _run_chain(self, node_id: str, state: ExecutionState, depth: int) -> None:
        """
        Execute nodes along flow edges starting at ``node_id``. A single
        successor is followed iteratively; fan-out and loop bodies recurse
        one level deeper.
        """

        if depth > self._settings.max_depth:
            raise ExecutionError(f"maximum flow depth {self._settings.max_depth} exceeded", node_id)

        path: List[str] = []
        current: Optional[str] = node_id
        try:
            while current is not None:
                if current in state.active:
                    raise ExecutionError("flow cycle detected", current)
                node = state.script.get_node(current)
                if node is None:
                    raise ResolutionError(f"node {current} does not exist")
                state.active.add(current)
                path.append(current)

                port_name = self._execute_flow_node(node, state, depth)
                targets = self._flow_targets(state.script, node, port_name)
                if not targets:
                    current = None
                    continue
                for target in targets[:-1]:
                    self._run_chain(target, state, depth + 1)
                current = targets[-1]
        finally:
            for visited in path:
                state.active.discard(visited)

    @staticmethod
    def _flow_targets(script: Script, node: Node, port_name: Optional[str]) -> List[str]:
        if port_name is None:
            return []
        port = node.output_by_name(port_name)
        if port is None or port.kind is not PortKind.FLOW:
            return []
        return [connection.to_node_id for connection in script.connections_from(node.id, port.id)]

    def _execute_flow_node(self, node: Node, state: ExecutionState, depth: int) -> Optional[str]:
        state.check_cancelled()
        state.cache.clear_pure()
        template = get_node_template(node.type)
        config = self._config(node, template)
        context = self._context(node, template, config, state, depth)
        effect = template.effect

        if isinstance(effect, TargetCall):
            values = self._call_target(node, template, config, state, depth)
            output = NodeOutput(values=values, next="exec")
        elif effect.action in self._loops:
            self._run_loop(self._loops[effect.action], context, state, depth)
            return "done"
        else:
            output = self._host_action(effect, context).execute(context)

        state.cache.store_flow(node.id, output.values)
        state.record(node.id, output.values)
        return output.next

    def _run_loop(self, action: LoopAction, context: ActionContext, state: ExecutionState, depth: int) -> None:
        node = context.node
        iterations = action.iterate(context)
        state.loop_depth += 1
        try:
            while True:
                state.check_cancelled()
                state.cache.clear_pure()
                try:
                    values = next(iterations)
                except StopIteration:
                    break
                state.cache.store_flow(node.id, values)
                state.record(node.id, values)
                targets = self._flow_targets(state.script, node, "body")
                try:
                    for target in targets:
                        self._run_chain(target, state, depth + 1)
                except LoopContinue:
                    continue
                except LoopBreak:
                    break
        finally:
            state.loop_depth -= 1
            iterations.close()

    def _host_action(self, effect: HostEffect, context: ActionContext) -> HostAction:
        action = self._actions.get(effect.action)
        if action is None:
            raise NodeExecutionError(f"no host action for {context.node.type}", context.node.id)
        return action

    # Value resolution

    def _context(
        self,
        node: Node,
        template: NodeTemplate,
        config: NodeConfig,
        state: ExecutionState,
        depth: int,
    ) -> ActionContext:
        return ActionContext(
            node=node,
            template=template,
            config=config,
            state=state,
            settings=self._settings,
            resolver=lambda port_name: self._resolve(node, template, config, port_name, state, depth),
            connected=lambda port_name: self._is_connected(state.script, node, port_name),
            ui=self._ui,
        )

    def _config(self, node: Node, template: NodeTemplate) -> NodeConfig:
        raw = node.config
        setting = _LOOP_TYPES.get(node.type)
        if setting is not None and raw.get("maxIterations") is None:
            raw = {**raw, "maxIterations": getattr(self._settings, setting)}
        warnings: List[str] = []
        config = template.decode(raw, warnings)
        for warning in warnings:
            logger.warning("%s", warning)
        return config

    @staticmethod
    def _is_connected(script: Script, node: Node, port_name: str) -> bool:
        port = node.input_by_name(port_name)
        return port is not None and script.connection_to(node.id, port.id) is not None

    def _resolve(
        self,
        node: Node,
        template: NodeTemplate,
        config: NodeConfig,
        port_name: str,
        state: ExecutionState,
        depth: int,
    ) -> Any:
        port = node.input_by_name(port_name)
        if port is None or port.kind is not PortKind.VALUE:
            raise ResolutionError(f"{node.type} has no value input '{port_name}'", node.id)

        connection = state.script.connection_to(node.id, port.id)
        if connection is not None:
            producer = state.script.get_node(connection.from_node_id)
            source = producer.output_by_id(connection.from_port_id) if producer is not None else None
            if producer is None or source is None:
                raise ResolutionError(f"input '{port_name}' is wired to a missing port", node.id)
            outputs = state.cache.lookup(producer.id)
            if outputs is None:
                if producer.has_flow_ports():
                    raise ResolutionError(
                        f"input '{port_name}' reads from {producer.type} {producer.id}, which has not run yet",
                        node.id,
                    )
                outputs = self._evaluate_pure(producer, state, depth + 1)
            return outputs.get(source.name)

        spec = template.input_spec(port_name, config)
        key = spec.default_key if spec is not None and spec.default_key else port_name
        inline = config.inline(key)
        if inline is None:
            inline = node.config.get(key)
        if inline is not None:
            return coerce(inline, port.value_type) if port.value_type is not None else inline
        if spec is not None and not spec.required:
            return None
        raise ResolutionError(f"input '{port_name}' is not connected and has no default", node.id)

    def _evaluate_pure(self, node: Node, state: ExecutionState, depth: int) -> Dict[str, Any]:
        if depth > self._settings.max_depth:
            raise ResolutionError(f"maximum value depth {self._settings.max_depth} exceeded", node.id)
        if node.id in state.resolving:
            raise ResolutionError("value cycle detected", node.id)

        state.check_cancelled()
        state.resolving.add(node.id)
        try:
            template = get_node_template(node.type)
            config = self._config(node, template)
            effect = template.effect
            if isinstance(effect, TargetCall):
                values = self._call_target(node, template, config, state, depth)
            else:
                context = self._context(node, template, config, state, depth)
                values = self._host_action(effect, context).execute(context).values
        finally:
            state.resolving.discard(node.id)

        state.cache.store_pure(node.id, values)
        state.record(node.id, values)
        return values

    def _call_target(
        self,
        node: Node,
        template: NodeTemplate,
        config: NodeConfig,
        state: ExecutionState,
        depth: int,
    ) -> Dict[str, Any]:
        if not self._bridge.is_connected:
            raise NoSessionError(node.id)

        inputs: Dict[str, Any] = {}
        for port in node.inputs:
            if port.kind is not PortKind.VALUE:
                continue
            inputs[port.name] = self._resolve(node, template, config, port.name, state, depth)

        args = [name for name in inputs if name.startswith("arg") and name[3:].isdigit()]
        limit = self._settings.max_native_args
        if len(args) > limit:
            for name in args[limit:]:
                inputs.pop(name)
            state.warn(f"{node.type} {node.id}: {len(args)} arguments clamped to {limit}")

        state.check_cancelled()
        return self._bridge.execute(node, template, inputs, state.cancel)
