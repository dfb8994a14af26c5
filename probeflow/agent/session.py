from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Protocol


@dataclass(frozen=True)
class TargetSession:
    """
    An attached instrumentation session and the agent script loaded into it.
    """

    session_id: str
    agent_script_id: str


class AgentChannel(Protocol):
    """
    Transport to the agent running inside the target process. ``call``
    blocks until the agent answers with ``{status, value?, message?}``.
    """

    def call(self, method: str, args: List[Any]) -> Any:  # pragma: no cover - interface
        ...


@dataclass(frozen=True)
class AgentReply:
    ok: bool
    value: Any = None
    message: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "AgentReply":
        if not isinstance(raw, Mapping):
            raise ValueError(f"malformed agent reply: expected an object, got {type(raw).__name__}")
        status = raw.get("status")
        if status == "ok":
            return cls(ok=True, value=raw.get("value"))
        if status == "error":
            message = raw.get("message")
            return cls(ok=False, message=str(message) if message else "agent returned an error")
        raise ValueError(f"malformed agent reply: unknown status {status!r}")

    @classmethod
    def success(cls, value: Any = None) -> Mapping[str, Any]:
        return {"status": "ok", "value": value}

    @classmethod
    def failure(cls, message: str) -> Mapping[str, Any]:
        return {"status": "error", "message": message}
