from __future__ import annotations

import pytest

from probeflow.actions import ScriptEngine
from probeflow.agent import SimulatedAgent
from probeflow.nodes import Script
from probeflow.settings import EngineSettings
from probeflow.ui import UiStateStore


@pytest.fixture
def script() -> Script:
    return Script(name="test")


@pytest.fixture
def ui_state() -> UiStateStore:
    return UiStateStore()


@pytest.fixture
def engine(ui_state: UiStateStore):
    engine = ScriptEngine(settings=EngineSettings(), ui_state=ui_state)
    yield engine
    engine.bridge.close()


@pytest.fixture
def agent() -> SimulatedAgent:
    return SimulatedAgent()


@pytest.fixture
def attached_engine(engine: ScriptEngine, agent: SimulatedAgent) -> ScriptEngine:
    engine.set_agent(agent)
    engine.set_session("session-1", "agent-script-1")
    return engine


def chain(script: Script, *node_ids: str, port: str = "exec") -> None:
    """
    Wire ``node_ids`` one after another through their flow ports.
    """

    for source, target in zip(node_ids, node_ids[1:]):
        script.connect_ports(source, port, target, "exec")
