from __future__ import annotations

import itertools
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, Mapping, Optional, Set

from probeflow.agent.session import AgentChannel, AgentReply, TargetSession
from probeflow.errors import AgentError, NoSessionError, RpcTimeoutError, TargetDispatchError
from probeflow.nodes import Node, NodeTemplate, PortKind, TargetCall
from probeflow.nodes.values import from_json, to_json

from .state import CancellationToken

logger = logging.getLogger(__name__)


class RpcBridge:
    """
    Proxies target-context nodes to the attached agent.

    Each call runs on a worker thread so the engine can keep polling its
    cancellation token while waiting, and give up after ``timeout_ms``.
    """

    def __init__(self, timeout_ms: int = 5000, poll_interval: float = 0.01, max_workers: int = 4) -> None:
        self.timeout_ms = timeout_ms
        self._poll_interval = poll_interval
        self._max_workers = max_workers
        self._abandoned: Set["Future[Any]"] = set()
        self._session: Optional[TargetSession] = None
        self._channel: Optional[AgentChannel] = None
        self._lock = threading.Lock()
        self._request_ids = itertools.count(1)
        self._executor = self._new_executor()

    @property
    def session(self) -> Optional[TargetSession]:
        with self._lock:
            return self._session

    @property
    def is_connected(self) -> bool:
        return self.session is not None

    def set_session(self, session: TargetSession) -> None:
        with self._lock:
            self._session = session
        logger.debug("Target session set: %s", session.session_id)

    def clear_session(self) -> None:
        with self._lock:
            self._session = None
        logger.debug("Target session cleared")

    def set_channel(self, channel: Optional[AgentChannel]) -> None:
        with self._lock:
            self._channel = channel

    def close(self) -> None:
        with self._lock:
            executor = self._executor
        executor.shutdown(wait=False, cancel_futures=True)

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="probeflow-rpc")

    def _abandon(self, future: "Future[Any]", method: str) -> None:
        """
        Give up on a call the engine no longer waits for. A call that is
        already running keeps its worker until the agent answers; once every
        worker is stuck that way, later calls go to a fresh pool.
        """

        if future.cancel():
            return
        with self._lock:
            self._abandoned.add(future)
            stuck = len(self._abandoned)
            replace = stuck >= self._max_workers
            if replace:
                stale = self._executor
                self._executor = self._new_executor()
                self._abandoned.clear()
        future.add_done_callback(self._release)
        logger.warning("Abandoned RPC call '%s' still running (%d stuck worker(s))", method, stuck)
        if replace:
            logger.warning("All RPC workers are stuck; starting a new worker pool")
            stale.shutdown(wait=False)

    def _release(self, future: "Future[Any]") -> None:
        with self._lock:
            self._abandoned.discard(future)

    def execute(
        self,
        node: Node,
        template: NodeTemplate,
        inputs: Mapping[str, Any],
        cancel: CancellationToken,
    ) -> Dict[str, Any]:
        effect = template.effect
        if not isinstance(effect, TargetCall):
            raise TargetDispatchError(f"{node.type} is not a target node", node.id)

        with self._lock:
            session, channel = self._session, self._channel
        if session is None:
            raise NoSessionError(node.id)
        if channel is None:
            raise TargetDispatchError("no agent channel configured", node.id)

        cancel.raise_if_cancelled()
        request = {
            "id": next(self._request_ids),
            "sessionId": session.session_id,
            "scriptId": session.agent_script_id,
            "nodeType": node.type,
            "config": to_json(node.config),
            "inputs": to_json(dict(inputs)),
        }
        logger.debug("RPC %s -> %s (request %s)", node.id, effect.method, request["id"])
        with self._lock:
            executor = self._executor
        future = executor.submit(channel.call, effect.method, [request])
        raw = self._wait(future, node, effect.method, cancel)

        try:
            reply = AgentReply.from_raw(raw)
        except ValueError as exc:
            raise AgentError(str(exc), node.id) from exc
        if not reply.ok:
            raise AgentError(reply.message or "agent returned an error", node.id)
        return self._outputs(node, reply.value)

    def _wait(self, future: "Future[Any]", node: Node, method: str, cancel: CancellationToken) -> Any:
        deadline = time.monotonic() + self.timeout_ms / 1000.0
        while True:
            if cancel.cancelled:
                self._abandon(future, method)
                cancel.raise_if_cancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._abandon(future, method)
                raise RpcTimeoutError(method, self.timeout_ms, node.id)
            try:
                return future.result(timeout=min(self._poll_interval, remaining))
            except FutureTimeoutError:
                continue
            except TargetDispatchError:
                raise
            except Exception as exc:
                raise AgentError(f"RPC call '{method}' failed: {exc}", node.id) from exc

    @staticmethod
    def _outputs(node: Node, value: Any) -> Dict[str, Any]:
        value_outputs = [port for port in node.outputs if port.kind is PortKind.VALUE]
        if isinstance(value, Mapping):
            raw = dict(value)
        elif len(value_outputs) == 1:
            raw = {value_outputs[0].name: value}
        else:
            raw = {}

        outputs: Dict[str, Any] = {}
        for port in value_outputs:
            if port.name in raw:
                outputs[port.name] = from_json(raw[port.name], port.value_type)
        return outputs
