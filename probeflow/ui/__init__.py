"""
State shared between scripts and the user-facing UI panel.
"""

from .state import UiStateStore

__all__ = ["UiStateStore"]
