from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Optional, Tuple

from PySide6.QtCore import QObject, Signal

from probeflow.nodes import Script

from .events import TriggerEvent
from .session import AgentChannel, TargetSession

if TYPE_CHECKING:
    from probeflow.actions import ExecutionResult, ScriptEngine

logger = logging.getLogger(__name__)


class SessionController(QObject):
    """
    Track the attached target session and fire attach/detach entry nodes.
    """

    attached = Signal(str)
    detached = Signal()
    error = Signal(str)

    def __init__(self, engine: "ScriptEngine", parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._engine = engine
        self._scripts: Dict[str, Script] = {}
        self._session: Optional[TargetSession] = None

    @property
    def session(self) -> Optional[TargetSession]:
        return self._session

    @property
    def is_attached(self) -> bool:
        return self._session is not None

    def watch(self, script: Script) -> None:
        """
        Register a script whose attach/detach entry nodes should run.
        """

        self._scripts[script.id] = script

    def unwatch(self, script_id: str) -> None:
        self._scripts.pop(script_id, None)

    def attach(
        self,
        session_id: str,
        agent_script_id: str,
        channel: Optional[AgentChannel] = None,
    ) -> Tuple["ExecutionResult", ...]:
        if self._session is not None:
            self.detach()

        if channel is not None:
            self._engine.set_agent(channel)
        self._engine.set_session(session_id, agent_script_id)
        self._session = TargetSession(session_id, agent_script_id)
        logger.info("Attached to session %s", session_id)
        self.attached.emit(session_id)
        return self._broadcast(TriggerEvent.attach(session_id))

    def detach(self) -> Tuple["ExecutionResult", ...]:
        if self._session is None:
            return ()

        session_id = self._session.session_id
        # Runs in flight stop first; detach handlers still see the session.
        self._engine.cancel_all()
        results = self._broadcast(TriggerEvent.detach())
        self._engine.clear_session()
        self._session = None
        logger.info("Detached from session %s", session_id)
        self.detached.emit()
        return results

    def _broadcast(self, event: TriggerEvent) -> Tuple["ExecutionResult", ...]:
        results = []
        for script in list(self._scripts.values()):
            for result in self._engine.dispatch(script, event):
                results.append(result)
                if not result.success and not result.cancelled:
                    self.error.emit(f"{script.name}: {result.error}")
        return tuple(results)
