from __future__ import annotations

from probeflow.nodes import Trigger, TriggerKind, ValueType
from probeflow.storage import ScriptStore

from .conftest import chain


def _build(script):
    counter = script.add_variable("counter", ValueType.INT32, 3, description="hits")
    start = script.add_node("start", 10, 20)
    current = script.add_node("get_variable", config={"variableId": counter.id})
    log = script.add_node("log")
    native = script.add_node("call_native", config={"argCount": 2})
    chain(script, start.id, log.id)
    script.connect_ports(current.id, "value", log.id, "message")
    script.update_metadata(trigger=Trigger(kind=TriggerKind.HOTKEY, hotkey="F5"))
    return start, native


class TestScriptStore:
    def test_export_uses_editor_keys(self, script):
        _build(script)
        payload = ScriptStore().export_script(script)
        assert payload["trigger"] == {"type": "hotkey", "hotkey": "F5"}
        assert set(payload["connections"][0]) == {"id", "fromNodeId", "fromPortId", "toNodeId", "toPortId"}
        variable = payload["variables"][0]
        assert variable["defaultValue"] == 3
        assert variable["type"] == "int32"
        port = payload["nodes"][0]["outputs"][0]
        assert port["type"] == "flow" and port["direction"] == "output"

    def test_round_trip_keeps_ids(self, script):
        start, native = _build(script)
        store = ScriptStore()
        restored = store.import_script(store.export_script(script))
        assert restored.id == script.id
        assert [node.id for node in restored.nodes] == [node.id for node in script.nodes]
        assert [port.id for port in restored.get_node(native.id).inputs] == [port.id for port in native.inputs]
        assert restored.connections == script.connections
        assert restored.variables == script.variables
        assert restored.trigger == script.trigger

    def test_restored_script_runs(self, engine, script):
        start, _ = _build(script)
        store = ScriptStore()
        restored = store.import_script(store.export_script(script))
        assert engine.run(restored, start.id).logs == ["3"]

    def test_skips_unknown_nodes_and_bad_connections(self):
        payload = {
            "id": "s1",
            "name": "broken",
            "nodes": [
                {"id": "a", "type": "start", "label": "Start", "x": 0, "y": 0, "config": {}},
                {"id": "b", "type": "warp_drive", "config": {}},
            ],
            "connections": [
                {"id": "c1", "fromNodeId": "a", "fromPortId": "nope", "toNodeId": "b", "toPortId": "x"},
            ],
            "variables": [],
        }
        script = ScriptStore().import_script(payload)
        assert [node.id for node in script.nodes] == ["a"]
        assert script.connections == []
        assert script.trigger.kind is TriggerKind.MANUAL

    def test_save_and_load(self, script, tmp_path):
        _build(script)
        path = tmp_path / "script.json"
        store = ScriptStore()
        store.save_script(path, script)
        assert store.load_script(path).name == script.name
