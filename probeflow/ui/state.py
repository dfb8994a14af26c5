from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, Mapping, Optional

from PySide6.QtCore import QObject, Signal

logger = logging.getLogger(__name__)


class UiStateStore(QObject):
    """
    Current values of the user-facing UI components, keyed by component id.

    Scripts read and write these through the UI nodes; the panel listens to
    ``value_changed`` and ``batch_changed`` to refresh its widgets.
    """

    value_changed = Signal(str, object)
    batch_changed = Signal(object)

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._values: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get_value(self, component_id: str) -> Any:
        with self._lock:
            return self._values.get(component_id)

    def set_value(self, component_id: str, value: Any) -> None:
        with self._lock:
            self._values[component_id] = value
        logger.debug("UI value %s = %r", component_id, value)
        self.value_changed.emit(component_id, value)

    def get_all(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def set_batch(self, values: Mapping[str, Any]) -> None:
        if not values:
            return
        with self._lock:
            self._values.update(values)
        self.batch_changed.emit(dict(values))

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
        self.batch_changed.emit({})

    def seed_from_components(self, components: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Fill in the starting value of every input-style component.

        Components are editor objects with ``id``, ``type`` and ``props``.
        Display-only components (labels, buttons) are skipped.
        """

        values: Dict[str, Any] = {}
        for component in components:
            component_id = component.get("id")
            if not component_id:
                continue
            props = component.get("props") or {}
            kind = component.get("type")
            if kind == "toggle":
                values[component_id] = props.get("defaultValue", False)
            elif kind == "slider":
                default = props.get("defaultValue")
                values[component_id] = default if default is not None else props.get("min", 0)
            elif kind == "input":
                values[component_id] = props.get("defaultValue", "")
            elif kind == "dropdown":
                options = list(props.get("options") or [])
                values[component_id] = options[0] if options else ""

        self.set_batch(values)
        return values
