from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    name: str

    def to_value(self) -> Dict[str, Any]:
        return {"pid": self.pid, "name": self.name}


@dataclass(frozen=True)
class DeviceInfo:
    id: str
    name: str
    type: str

    def to_value(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "type": self.type}


LOCAL_DEVICE = DeviceInfo(id="local", name="Local System", type="local")


def _run_command(command: Iterable[str]) -> str:
    try:
        result = subprocess.run(
            list(command),
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout
    except Exception as exc:  # pragma: no cover - system-specific
        logger.debug("Command %s failed: %s", command, exc)
        return ""


def _list_proc_processes(root: Path) -> List[ProcessInfo]:
    processes: List[ProcessInfo] = []
    for entry in root.iterdir():
        if not entry.name.isdigit():
            continue
        try:
            name = (entry / "comm").read_text(encoding="utf-8").strip()
        except OSError:
            # the process exited while we were listing
            continue
        processes.append(ProcessInfo(pid=int(entry.name), name=name))
    return processes


def _list_ps_processes() -> List[ProcessInfo]:
    if shutil.which("ps") is None:
        return []
    output = _run_command(["ps", "-A", "-o", "pid=,comm="])
    processes: List[ProcessInfo] = []
    for line in output.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) != 2 or not parts[0].isdigit():
            continue
        processes.append(ProcessInfo(pid=int(parts[0]), name=os.path.basename(parts[1])))
    return processes


def list_processes(name_filter: Optional[str] = None, proc_root: Path = Path("/proc")) -> List[ProcessInfo]:
    """
    Processes visible on the local machine, sorted by pid. ``name_filter`` is
    a case-insensitive substring match.
    """

    if sys.platform.startswith("linux") and proc_root.is_dir():
        processes = _list_proc_processes(proc_root)
    else:
        processes = _list_ps_processes()

    if name_filter:
        needle = name_filter.lower()
        processes = [process for process in processes if needle in process.name.lower()]
    return sorted(processes, key=lambda process: process.pid)


def list_devices() -> List[DeviceInfo]:
    """
    Devices the engine can attach through. Only the local system is known
    without an instrumentation backend.
    """

    return [LOCAL_DEVICE]
