from __future__ import annotations

import threading

from probeflow.actions import CancellationToken, RpcBridge, RunStatus, ScriptEngine
from probeflow.agent import SimulatedAgent
from probeflow.nodes import Pointer
from probeflow.settings import EngineSettings

from .conftest import chain


class TestTargetDispatch:
    def test_no_session_fails_and_keeps_earlier_writes(self, engine, script):
        x = script.add_variable("x")
        start = script.add_node("start")
        store = script.add_node("set_variable", config={"variableId": x.id, "value": 7})
        read = script.add_node("memory_read", config={"address": "0x1000"})
        chain(script, start.id, store.id, read.id)

        result = engine.run(script, start.id)

        assert result.status is RunStatus.FAILED
        assert "no target session attached" in result.error
        assert result.error_node_id == read.id
        assert result.variables == {"x": 7}

    def test_write_then_read(self, attached_engine, agent, script):
        start = script.add_node("start")
        write = script.add_node("memory_write", config={"address": "0x2000", "value": 1234, "valueType": "int32"})
        read = script.add_node("memory_read", config={"address": "0x2000", "valueType": "int32"})
        log = script.add_node("log")
        chain(script, start.id, write.id, read.id, log.id)
        script.connect_ports(read.id, "value", log.id, "message")

        result = attached_engine.run(script, start.id)

        assert result.success, result.error
        assert result.logs == ["1234"]
        assert agent.read_value(0x2000, "int32") == 1234
        request = agent.calls[0]
        assert request == ("memoryWrite", {"address": "0x2000", "value": 1234})

    def test_pointer_chain(self, attached_engine, agent, script):
        start = script.add_node("start")
        alloc = script.add_node("memory_alloc", config={"size": 64})
        offset = script.add_node("pointer_add", config={"offset": 8})
        write = script.add_node("pointer_write", config={"writeType": "uint16", "value": 99})
        read = script.add_node("pointer_read", config={"readType": "uint16"})
        chain(script, start.id, alloc.id, write.id, read.id)
        script.connect_ports(alloc.id, "address", offset.id, "pointer")
        script.connect_ports(offset.id, "result", write.id, "pointer")
        script.connect_ports(offset.id, "result", read.id, "pointer")

        result = attached_engine.run(script, start.id)

        assert result.success, result.error
        address = result.output(alloc.id, "address")
        assert isinstance(address, Pointer)
        assert result.output(offset.id, "result") == address + 8
        assert result.output(read.id, "value") == 99

    def test_module_lookup(self, attached_engine, script):
        start = script.add_node("start")
        base = script.add_node("get_base_address", config={"moduleName": "target"})
        symbol = script.add_node("find_symbol", config={"module": "target", "symbol": "main"})
        chain(script, start.id, base.id, symbol.id)

        result = attached_engine.run(script, start.id)

        assert result.output(base.id, "address") == Pointer(0x400000)
        assert result.output(symbol.id, "address") == Pointer(0x401000)

    def test_agent_error_fails_on_node(self, attached_engine, script):
        start = script.add_node("start")
        symbol = script.add_node("find_symbol", config={"module": "target", "symbol": "missing"})
        chain(script, start.id, symbol.id)

        result = attached_engine.run(script, start.id)

        assert result.status is RunStatus.FAILED
        assert result.error_node_id == symbol.id
        assert "not found" in result.error

    def test_call_native(self, attached_engine, agent, script):
        agent.register_function(0x401000, lambda a, b: a + b)
        start = script.add_node("start")
        call = script.add_node(
            "call_native",
            config={
                "address": "0x401000",
                "argCount": 2,
                "argTypes": ["int", "int"],
                "returnType": "int",
                "arg0": 2,
                "arg1": 3,
            },
        )
        chain(script, start.id, call.id)

        result = attached_engine.run(script, start.id)

        assert result.success, result.error
        assert result.output(call.id, "return") == 5

    def test_malformed_reply(self, engine, script):
        class Broken:
            def call(self, method, args):
                return "oops"

        engine.set_agent(Broken())
        engine.set_session("s", "a")
        start = script.add_node("start")
        read = script.add_node("memory_read", config={"address": "0x10"})
        chain(script, start.id, read.id)

        result = engine.run(script, start.id)

        assert result.status is RunStatus.FAILED
        assert "malformed agent reply" in result.error

    def test_transport_exception(self, engine, script):
        class Failing:
            def call(self, method, args):
                raise ConnectionError("pipe closed")

        engine.set_agent(Failing())
        engine.set_session("s", "a")
        start = script.add_node("start")
        read = script.add_node("memory_read", config={"address": "0x10"})
        chain(script, start.id, read.id)

        result = engine.run(script, start.id)

        assert result.status is RunStatus.FAILED
        assert "pipe closed" in result.error

    def test_rpc_timeout(self, script):
        engine = ScriptEngine(settings=EngineSettings(rpc_timeout_ms=50))
        engine.set_agent(SimulatedAgent(latency_ms=500))
        engine.set_session("s", "a")
        start = script.add_node("start")
        read = script.add_node("memory_read", config={"address": "0x10"})
        chain(script, start.id, read.id)
        try:
            result = engine.run(script, start.id)
        finally:
            engine.bridge.close()

        assert result.status is RunStatus.FAILED
        assert "timed out after 50ms" in result.error

    def test_hung_calls_do_not_starve_later_ones(self, script, caplog):
        release = threading.Event()

        class Hanging:
            def __init__(self):
                self.calls = 0

            def call(self, method, args):
                self.calls += 1
                if self.calls == 1:
                    release.wait(2)
                return {"status": "ok", "value": 7}

        engine = ScriptEngine(bridge=RpcBridge(timeout_ms=50, max_workers=1))
        engine.set_agent(Hanging())
        engine.set_session("s", "a")
        start = script.add_node("start")
        read = script.add_node("memory_read", config={"address": "0x10"})
        chain(script, start.id, read.id)
        try:
            first = engine.run(script, start.id)
            second = engine.run(script, start.id)
        finally:
            release.set()
            engine.bridge.close()

        assert "timed out after 50ms" in first.error
        assert second.success, second.error
        assert second.output(read.id, "value") == 7
        assert "starting a new worker pool" in caplog.text

    def test_cancel_while_waiting_for_agent(self, script):
        engine = ScriptEngine()
        engine.set_agent(SimulatedAgent(latency_ms=500))
        engine.set_session("s", "a")
        start = script.add_node("start")
        read = script.add_node("memory_read", config={"address": "0x10"})
        chain(script, start.id, read.id)
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            result = engine.run(script, start.id, cancel=token)
        finally:
            timer.cancel()
            engine.bridge.close()

        assert result.status is RunStatus.CANCELLED

    def test_clear_session_cancels_pending_call(self, script):
        engine = ScriptEngine()
        engine.set_agent(SimulatedAgent(latency_ms=1000))
        engine.set_session("s", "a")
        start = script.add_node("start")
        read = script.add_node("memory_read", config={"address": "0x10"})
        chain(script, start.id, read.id)
        timer = threading.Timer(0.05, engine.clear_session)
        timer.start()
        try:
            result = engine.run(script, start.id)
        finally:
            timer.cancel()
            engine.bridge.close()

        assert result.status is RunStatus.CANCELLED

    def test_clear_session(self, attached_engine, script):
        attached_engine.clear_session()
        start = script.add_node("start")
        read = script.add_node("memory_read", config={"address": "0x10"})
        chain(script, start.id, read.id)
        assert "no target session" in attached_engine.run(script, start.id).error
