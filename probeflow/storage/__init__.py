"""
Reading and writing editor script snapshots.
"""

from .script_store import ScriptStore

__all__ = ["ScriptStore"]
