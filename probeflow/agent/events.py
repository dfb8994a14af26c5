from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from probeflow.nodes import Node, TriggerKind


@dataclass(frozen=True)
class TriggerEvent:
    """
    Something outside the engine asked for a script to run.
    """

    kind: TriggerKind
    value: Any = None
    component_id: Optional[str] = None
    event_type: Optional[str] = None
    hotkey: Optional[str] = None
    interval_ms: Optional[int] = None

    @classmethod
    def manual(cls, value: Any = None) -> "TriggerEvent":
        return cls(TriggerKind.MANUAL, value=value)

    @classmethod
    def attach(cls, session_id: Optional[str] = None) -> "TriggerEvent":
        return cls(TriggerKind.ON_ATTACH, value=session_id)

    @classmethod
    def detach(cls) -> "TriggerEvent":
        return cls(TriggerKind.ON_DETACH)

    @classmethod
    def ui(cls, component_id: str, event_type: str = "click", value: Any = None) -> "TriggerEvent":
        return cls(TriggerKind.UI_EVENT, value=value, component_id=component_id, event_type=event_type)

    @classmethod
    def hotkey_pressed(cls, hotkey: str) -> "TriggerEvent":
        return cls(TriggerKind.HOTKEY, value=hotkey, hotkey=hotkey)

    @classmethod
    def interval(cls, interval_ms: Optional[int] = None, tick: int = 0) -> "TriggerEvent":
        return cls(TriggerKind.INTERVAL, value=tick, interval_ms=interval_ms)

    def accepts(self, node: Node) -> bool:
        """
        Whether ``node`` is an entry node answering to this event.
        """

        config = node.config
        if self.kind is TriggerKind.MANUAL:
            return node.type == "start"
        if self.kind is TriggerKind.ON_ATTACH:
            return node.type == "event_attach"
        if self.kind is TriggerKind.ON_DETACH:
            return node.type == "event_detach"
        if self.kind is TriggerKind.UI_EVENT:
            if node.type != "event_ui":
                return False
            bound = config.get("componentId") or None
            if bound is not None and bound != self.component_id:
                return False
            return (config.get("eventType") or "click") == (self.event_type or "click")
        if self.kind is TriggerKind.HOTKEY:
            if node.type != "event_hotkey":
                return False
            return str(config.get("hotkey") or "").lower() == str(self.hotkey or "").lower()
        if self.kind is TriggerKind.INTERVAL:
            if node.type != "event_interval":
                return False
            return self.interval_ms is None or config.get("intervalMs") == self.interval_ms
        return False
