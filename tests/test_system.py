from __future__ import annotations

import sys

import pytest

from probeflow.system import list_devices, list_processes

from .conftest import chain


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="reads a /proc style tree")
class TestListProcesses:
    def _proc(self, root, pid, name):
        entry = root / str(pid)
        entry.mkdir()
        (entry / "comm").write_text(name + "\n", encoding="utf-8")

    def test_reads_proc_tree(self, tmp_path):
        self._proc(tmp_path, 42, "game.exe")
        self._proc(tmp_path, 7, "init")
        (tmp_path / "self").mkdir()
        processes = list_processes(proc_root=tmp_path)
        assert [(process.pid, process.name) for process in processes] == [(7, "init"), (42, "game.exe")]

    def test_name_filter(self, tmp_path):
        self._proc(tmp_path, 42, "Game.exe")
        self._proc(tmp_path, 7, "init")
        assert [process.pid for process in list_processes("game", proc_root=tmp_path)] == [42]


class TestDeviceNodes:
    def test_device_enumerate(self, engine, script):
        start = script.add_node("start")
        devices = script.add_node("device_enumerate")
        chain(script, start.id, devices.id)
        result = engine.run(script, start.id)
        assert result.output(devices.id, "count") == len(list_devices())
        assert result.output(devices.id, "devices")[0]["id"] == "local"
