from __future__ import annotations

import threading

from probeflow.actions import CancellationToken, RunStatus, ScriptEngine
from probeflow.agent import TriggerEvent
from probeflow.nodes import Script, ValueType
from probeflow.settings import EngineSettings

from .conftest import chain


def _sum_script():
    script = Script()
    start = script.add_node("start")
    five = script.add_node("const_number", config={"value": 5})
    three = script.add_node("const_number", config={"value": 3})
    math = script.add_node("math", config={"operation": "add"})
    log = script.add_node("log")
    chain(script, start.id, log.id)
    script.connect_ports(five.id, "value", math.id, "a")
    script.connect_ports(three.id, "value", math.id, "b")
    script.connect_ports(math.id, "result", log.id, "message")
    return script, start, math


class TestArithmetic:
    def test_add_constants(self, engine):
        script, start, math = _sum_script()
        result = engine.run(script, start.id)
        assert result.status is RunStatus.COMPLETED
        assert result.output(math.id, "result") == 8
        assert result.logs == ["8"]

    def test_inline_operands(self, engine, script):
        start = script.add_node("start")
        math = script.add_node("math", config={"operation": "divide", "a": -7, "b": 2})
        log = script.add_node("log")
        chain(script, start.id, log.id)
        script.connect_ports(math.id, "result", log.id, "message")
        assert engine.run(script, start.id).logs == ["-3"]

    def test_division_by_zero_fails_on_node(self, engine, script):
        start = script.add_node("start")
        math = script.add_node("math", config={"operation": "modulo", "a": 1, "b": 0})
        log = script.add_node("log")
        chain(script, start.id, log.id)
        script.connect_ports(math.id, "result", log.id, "message")
        result = engine.run(script, start.id)
        assert result.status is RunStatus.FAILED
        assert result.error_node_id == math.id
        assert "division by zero" in result.error

    def test_missing_required_input(self, engine, script):
        start = script.add_node("start")
        math = script.add_node("math")
        log = script.add_node("log")
        chain(script, start.id, log.id)
        script.connect_ports(math.id, "result", log.id, "message")
        result = engine.run(script, start.id)
        assert result.status is RunStatus.FAILED
        assert "input 'a' is not connected" in result.error

    def test_value_cycle_is_an_error(self, engine, script):
        start = script.add_node("start")
        first = script.add_node("math", config={"b": 1})
        second = script.add_node("math", config={"b": 1})
        log = script.add_node("log")
        chain(script, start.id, log.id)
        script.connect_ports(first.id, "result", second.id, "a")
        script.connect_ports(second.id, "result", first.id, "a")
        script.connect_ports(first.id, "result", log.id, "message")
        result = engine.run(script, start.id)
        assert result.status is RunStatus.FAILED
        assert "value cycle" in result.error


class TestBranching:
    def _switch_script(self, selector):
        script = Script()
        start = script.add_node("start")
        switch = script.add_node("switch", config={"caseValues": ["a", "b"], "value": selector})
        first = script.add_node("log", config={"message": "first"})
        second = script.add_node("log", config={"message": "second"})
        fallback = script.add_node("log", config={"message": "default"})
        chain(script, start.id, switch.id)
        script.connect_ports(switch.id, "case0", first.id, "exec")
        script.connect_ports(switch.id, "case1", second.id, "exec")
        script.connect_ports(switch.id, "default", fallback.id, "exec")
        return script, start

    def test_switch_matches_case(self, engine):
        script, start = self._switch_script("b")
        assert engine.run(script, start.id).logs == ["second"]

    def test_switch_default(self, engine):
        script, start = self._switch_script("zzz")
        assert engine.run(script, start.id).logs == ["default"]

    def test_if_branches(self, engine, script):
        start = script.add_node("start")
        branch = script.add_node("if", config={"condition": False})
        yes = script.add_node("log", config={"message": "yes"})
        no = script.add_node("log", config={"message": "no"})
        chain(script, start.id, branch.id)
        script.connect_ports(branch.id, "true", yes.id, "exec")
        script.connect_ports(branch.id, "false", no.id, "exec")
        assert engine.run(script, start.id).logs == ["no"]

    def test_unconnected_branch_ends_the_run(self, engine, script):
        start = script.add_node("start")
        branch = script.add_node("if", config={"condition": True})
        no = script.add_node("log", config={"message": "no"})
        chain(script, start.id, branch.id)
        script.connect_ports(branch.id, "false", no.id, "exec")
        result = engine.run(script, start.id)
        assert result.success
        assert result.logs == []

    def test_fan_out_runs_in_connection_order(self, engine, script):
        start = script.add_node("start")
        first = script.add_node("log", config={"message": "A"})
        second = script.add_node("log", config={"message": "B"})
        script.connect_ports(start.id, "exec", first.id, "exec")
        script.connect_ports(start.id, "exec", second.id, "exec")
        assert engine.run(script, start.id).logs == ["A", "B"]

    def test_entry_value_flows_out(self, engine, script):
        start = script.add_node("start")
        log = script.add_node("log")
        chain(script, start.id, log.id)
        script.connect_ports(start.id, "value", log.id, "message")
        assert engine.run(script, start.id, entry_value="hello").logs == ["hello"]


class TestLoops:
    def test_loop_cap_stops_with_one_warning(self, engine, script):
        start = script.add_node("start")
        loop = script.add_node("loop", config={"condition": True, "maxIterations": 5})
        tick = script.add_node("log", config={"message": "tick"})
        done = script.add_node("log", config={"message": "done"})
        chain(script, start.id, loop.id)
        script.connect_ports(loop.id, "body", tick.id, "exec")
        script.connect_ports(loop.id, "done", done.id, "exec")

        result = engine.run(script, start.id)

        assert result.success
        assert result.logs.count("tick") == 5
        warnings = [line for line in result.logs if line.startswith("[warning]")]
        assert len(warnings) == 1
        assert result.logs[-1] == "done"

    def test_loop_cap_defaults_to_settings(self, script):
        engine = ScriptEngine(settings=EngineSettings(loop_max_iterations=3))
        start = script.add_node("start")
        loop = script.add_node("loop", config={"condition": True})
        loop.config.pop("maxIterations")
        tick = script.add_node("log", config={"message": "tick"})
        chain(script, start.id, loop.id)
        script.connect_ports(loop.id, "body", tick.id, "exec")
        try:
            assert engine.run(script, start.id).logs.count("tick") == 3
        finally:
            engine.bridge.close()

    def test_for_range_accumulates_into_variable(self, engine, script):
        total = script.add_variable("total", ValueType.INT32, 0)
        start = script.add_node("start")
        loop = script.add_node("for_range", config={"start": 0, "end": 5, "step": 1})
        current = script.add_node("get_variable", config={"variableId": total.id})
        add = script.add_node("math", config={"operation": "add"})
        store = script.add_node("set_variable", config={"variableId": total.id})
        chain(script, start.id, loop.id)
        script.connect_ports(loop.id, "body", store.id, "exec")
        script.connect_ports(current.id, "value", add.id, "a")
        script.connect_ports(loop.id, "index", add.id, "b")
        script.connect_ports(add.id, "result", store.id, "value")

        result = engine.run(script, start.id)

        assert result.success
        assert result.variables == {"total": 10}

    def test_for_each_break(self, engine, script):
        start = script.add_node("start")
        loop = script.add_node("for_each", config={"array": [1, 2, 3, 4]})
        check = script.add_node("compare", config={"operation": "equals", "b": 3})
        branch = script.add_node("if")
        stop = script.add_node("break")
        log = script.add_node("log")
        chain(script, start.id, loop.id)
        script.connect_ports(loop.id, "body", branch.id, "exec")
        script.connect_ports(loop.id, "element", check.id, "a")
        script.connect_ports(check.id, "result", branch.id, "condition")
        script.connect_ports(branch.id, "true", stop.id, "exec")
        script.connect_ports(branch.id, "false", log.id, "exec")
        script.connect_ports(loop.id, "element", log.id, "message")

        result = engine.run(script, start.id)

        assert result.success
        assert result.logs == ["1", "2"]

    def test_for_range_continue(self, engine, script):
        start = script.add_node("start")
        loop = script.add_node("for_range", config={"start": 0, "end": 4})
        odd = script.add_node("math", config={"operation": "modulo", "b": 2})
        branch = script.add_node("if")
        skip = script.add_node("continue")
        log = script.add_node("log")
        chain(script, start.id, loop.id)
        script.connect_ports(loop.id, "body", branch.id, "exec")
        script.connect_ports(loop.id, "index", odd.id, "a")
        script.connect_ports(odd.id, "result", branch.id, "condition")
        script.connect_ports(branch.id, "true", skip.id, "exec")
        script.connect_ports(branch.id, "false", log.id, "exec")
        script.connect_ports(loop.id, "index", log.id, "message")

        assert engine.run(script, start.id).logs == ["0", "2"]

    def test_break_outside_loop_fails(self, engine, script):
        start = script.add_node("start")
        stop = script.add_node("break")
        chain(script, start.id, stop.id)
        result = engine.run(script, start.id)
        assert result.status is RunStatus.FAILED
        assert "break outside of loop" in result.error
        assert result.error_node_id == stop.id

    def test_zero_step_fails(self, engine, script):
        start = script.add_node("start")
        loop = script.add_node("for_range", config={"step": 0})
        chain(script, start.id, loop.id)
        assert engine.run(script, start.id).status is RunStatus.FAILED


class TestVariables:
    def _counter(self):
        script = Script()
        count = script.add_variable("count", ValueType.INT32, 0)
        start = script.add_node("start")
        current = script.add_node("get_variable", config={"variableId": count.id})
        add = script.add_node("math", config={"operation": "add", "b": 1})
        store = script.add_node("set_variable", config={"variableId": count.id})
        chain(script, start.id, store.id)
        script.connect_ports(current.id, "value", add.id, "a")
        script.connect_ports(add.id, "result", store.id, "value")
        return script, start

    def test_values_persist_between_runs(self, engine):
        script, start = self._counter()
        engine.run(script, start.id)
        assert engine.run(script, start.id).variables == {"count": 2}
        assert engine.variables(script) == {"count": 2}

    def test_reset_state(self, engine):
        script, start = self._counter()
        engine.run(script, start.id)
        engine.reset_state(script.id)
        assert engine.run(script, start.id).variables == {"count": 1}

    def test_declare_variable_reinitialises(self, engine, script):
        value = script.add_variable("value", ValueType.STRING, "default")
        start = script.add_node("start")
        declare = script.add_node("declare_variable", config={"variableId": value.id, "inlineValue": "fresh"})
        chain(script, start.id, declare.id)
        assert engine.run(script, start.id).variables == {"value": "fresh"}

    def test_deleted_variable_fails(self, engine, script):
        variable = script.add_variable("gone")
        start = script.add_node("start")
        store = script.add_node("set_variable", config={"variableId": variable.id, "value": 1})
        chain(script, start.id, store.id)
        script.delete_variable(variable.id)
        result = engine.run(script, start.id)
        assert result.status is RunStatus.FAILED
        assert "no longer exists" in result.error


class TestRunControl:
    def test_missing_entry_node(self, engine, script):
        result = engine.run(script, "nope")
        assert result.status is RunStatus.FAILED

    def test_deterministic(self):
        script, start, _ = _sum_script()
        first = ScriptEngine()
        second = ScriptEngine()
        try:
            assert first.run(script, start.id).to_dict() == second.run(script, start.id).to_dict()
        finally:
            first.bridge.close()
            second.bridge.close()

    def test_run_does_not_mutate_script(self, engine):
        script, start, _ = _sum_script()
        before = script.snapshot()
        engine.run(script, start.id)
        assert script == before

    def test_pre_cancelled_run(self, engine):
        script, start, _ = _sum_script()
        token = CancellationToken()
        token.cancel()
        result = engine.run(script, start.id, cancel=token)
        assert result.status is RunStatus.CANCELLED
        assert result.cancelled
        assert result.logs == []

    def test_cancel_during_delay(self, engine, script):
        start = script.add_node("start")
        delay = script.add_node("delay", config={"ms": 5000})
        log = script.add_node("log", config={"message": "late"})
        chain(script, start.id, delay.id, log.id)
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            result = engine.run(script, start.id, cancel=token)
        finally:
            timer.cancel()
        assert result.status is RunStatus.CANCELLED
        assert result.logs == []

    def test_concurrent_run_is_rejected(self, engine, script, ui_state):
        start = script.add_node("start")
        mark = script.add_node("ui_set_value", config={"componentId": "running", "value": True})
        delay = script.add_node("delay", config={"ms": 5000})
        chain(script, start.id, mark.id, delay.id)
        token = CancellationToken()
        results = []

        worker = threading.Thread(target=lambda: results.append(engine.run(script, start.id, cancel=token)))
        worker.start()
        try:
            for _ in range(500):
                if ui_state.get_value("running"):
                    break
                token.wait(0.01)
            second = engine.run(script, start.id)
            assert second.status is RunStatus.FAILED
            assert "already in progress" in second.error
        finally:
            token.cancel()
            worker.join()
        assert results[0].status is RunStatus.CANCELLED

    def test_clear_session_cancels_runs_in_flight(self, engine, script, ui_state):
        start = script.add_node("start")
        mark = script.add_node("ui_set_value", config={"componentId": "running", "value": True})
        delay = script.add_node("delay", config={"ms": 5000})
        log = script.add_node("log", config={"message": "after delay"})
        chain(script, start.id, mark.id, delay.id, log.id)
        results = []

        worker = threading.Thread(target=lambda: results.append(engine.run(script, start.id)))
        worker.start()
        for _ in range(500):
            if ui_state.get_value("running"):
                break
            CancellationToken().wait(0.01)
        engine.clear_session()
        worker.join(timeout=2)

        assert not worker.is_alive()
        assert results[0].status is RunStatus.CANCELLED
        assert results[0].logs == []

    def test_cancel_all_without_runs(self, engine):
        assert engine.cancel_all() == 0

    def test_dispatch_runs_matching_entries(self, engine, script):
        first = script.add_node("event_ui", config={"componentId": "btn-1"})
        second = script.add_node("event_ui", config={"componentId": "btn-2"})
        one = script.add_node("log", config={"message": "one"})
        two = script.add_node("log")
        chain(script, first.id, one.id)
        chain(script, second.id, two.id)
        script.connect_ports(second.id, "componentId", two.id, "message")

        results = engine.dispatch(script, TriggerEvent.ui("btn-2"))

        assert [result.logs for result in results] == [["btn-2"]]
        assert engine.dispatch(script, TriggerEvent.hotkey_pressed("F1")) == ()
