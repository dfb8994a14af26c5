"""
Probeflow execution engine package.

This module exposes the engine factory for consumers that embed the runtime,
such as the editor's test panel.
"""

from .application import create_engine

__all__ = ["create_engine"]
