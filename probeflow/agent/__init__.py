"""
Target session plumbing: trigger events, the agent channel and its
in-process simulation.
"""

from .controller import SessionController
from .events import TriggerEvent
from .mock import SimulatedAgent, SimulatedModule
from .session import AgentChannel, AgentReply, TargetSession

__all__ = [
    "AgentChannel",
    "AgentReply",
    "SessionController",
    "SimulatedAgent",
    "SimulatedModule",
    "TargetSession",
    "TriggerEvent",
]
