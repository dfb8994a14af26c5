from __future__ import annotations

import json

import pytest

from probeflow.main import main
from probeflow.storage import ScriptStore

from .conftest import chain


def _write(script, tmp_path):
    path = tmp_path / "script.json"
    ScriptStore().save_script(path, script)
    return str(path)


class TestMain:
    def test_runs_entry_node(self, script, tmp_path, capsys):
        start = script.add_node("start", node_id="start")
        log = script.add_node("log")
        chain(script, start.id, log.id)
        script.connect_ports(start.id, "value", log.id, "message")

        with pytest.raises(SystemExit) as info:
            main([_write(script, tmp_path), "start", "--value", '"hi"'])

        assert info.value.code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["status"] == "completed"
        assert output["logs"] == ["hi"]

    def test_simulated_agent(self, script, tmp_path, capsys):
        start = script.add_node("start", node_id="start")
        base = script.add_node("get_base_address", config={"moduleName": "target"})
        chain(script, start.id, base.id)

        with pytest.raises(SystemExit) as info:
            main([_write(script, tmp_path), "start", "--simulate"])

        assert info.value.code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["outputs"][base.id]["address"] == "0x400000"

    def test_failed_run_exit_code(self, script, tmp_path, capsys):
        start = script.add_node("start", node_id="start")
        read = script.add_node("memory_read", config={"address": "0x10"})
        chain(script, start.id, read.id)

        with pytest.raises(SystemExit) as info:
            main([_write(script, tmp_path), "start"])

        assert info.value.code == 1
        assert "no target session" in json.loads(capsys.readouterr().out)["error"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(SystemExit) as info:
            main([str(tmp_path / "missing.json"), "start"])
        assert info.value.code == 2
