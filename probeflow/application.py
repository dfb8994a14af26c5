from __future__ import annotations

from typing import Optional

from probeflow.actions import ScriptEngine
from probeflow.settings import EngineSettings
from probeflow.ui import UiStateStore


def create_engine(
    settings: Optional[EngineSettings] = None,
    ui_state: Optional[UiStateStore] = None,
) -> ScriptEngine:
    """
    Create a script engine wired to the UI state store.

    Parameters
    ----------
    settings:
        Engine limits. Defaults to :meth:`EngineSettings.from_env`.
    ui_state:
        Store backing the UI nodes. A fresh one is created when omitted.

    Returns
    -------
    ScriptEngine
        An engine with no target session attached.
    """

    settings = settings or EngineSettings.from_env()
    return ScriptEngine(settings=settings, ui_state=ui_state if ui_state is not None else UiStateStore())
