from __future__ import annotations

import pytest

from probeflow.actions import RunStatus
from probeflow.actions.arithmetic import compare_values
from probeflow.nodes import Pointer, Script

from .conftest import chain


def evaluate(engine, node_type, port="result", **config):
    """
    Run ``start -> log`` with the log message wired to one pure node.
    """

    script = Script()
    start = script.add_node("start")
    node = script.add_node(node_type, config=config)
    log = script.add_node("log")
    chain(script, start.id, log.id)
    script.connect_ports(node.id, port, log.id, "message")
    result = engine.run(script, start.id)
    assert result.status is RunStatus.COMPLETED, result.error
    return result.output(node.id, port)


class TestMath:
    @pytest.mark.parametrize(
        "operation,a,b,expected",
        [
            ("subtract", 3, 5, -2),
            ("divide", 7, -2, -3),
            ("modulo", -7, 2, -1),
            ("power", 2, 10, 1024),
            ("shift_left", 1, 4, 16),
            ("bit_xor", 6, 3, 5),
            ("max", 2, 9, 9),
        ],
    )
    def test_integer_operations(self, engine, operation, a, b, expected):
        assert evaluate(engine, "math", operation=operation, a=a, b=b) == expected

    def test_float_operand_switches_to_float(self, engine):
        assert evaluate(engine, "math", operation="divide", a=7.0, b=2) == 3.5

    def test_round_half_away_from_zero(self, engine):
        assert evaluate(engine, "math", operation="round", a=-2.5) == -3.0

    def test_integer_overflow_wraps(self, engine):
        assert evaluate(engine, "math", operation="add", a=2**63 - 1, b=1) == -(2**63)

    def test_pointer_arithmetic_stays_pointer(self, engine, script):
        start = script.add_node("start")
        base = script.add_node("const_pointer", config={"value": "0x400000"})
        add = script.add_node("math", config={"operation": "add", "b": 0x10})
        log = script.add_node("log")
        chain(script, start.id, log.id)
        script.connect_ports(base.id, "value", add.id, "a")
        script.connect_ports(add.id, "result", log.id, "message")
        result = engine.run(script, start.id)
        assert result.output(add.id, "result") == Pointer(0x400010)
        assert result.logs == ["0x400010"]

    def test_non_numeric_operand(self, engine, script):
        start = script.add_node("start")
        math = script.add_node("math", config={"a": "abc"})
        log = script.add_node("log")
        chain(script, start.id, log.id)
        script.connect_ports(math.id, "result", log.id, "message")
        result = engine.run(script, start.id)
        assert result.status is RunStatus.FAILED
        assert "not a number" in result.error


class TestCompareAndLogic:
    def test_compare_values(self):
        assert compare_values(1, 1.0) == 0
        assert compare_values(None, 0) == -1
        assert compare_values("b", "a") == 1
        assert compare_values(Pointer(5), 4) == 1

    def test_compare_node(self, engine):
        assert evaluate(engine, "compare", operation="<", a=1, b=2) is True

    @pytest.mark.parametrize(
        "operation,a,b,expected",
        [("and", True, False, False), ("or", True, False, True), ("xor", True, True, False), ("nand", True, True, False)],
    )
    def test_logic(self, engine, operation, a, b, expected):
        assert evaluate(engine, "logic", operation=operation, a=a, b=b) is expected

    def test_logic_not_ignores_b(self, engine):
        assert evaluate(engine, "logic", operation="not", a=False) is True


class TestStrings:
    def test_format_only_replaces_connected_args(self, engine, script):
        start = script.add_node("start")
        value = script.add_node("const_number", config={"value": 42})
        text = script.add_node("string_format", config={"template": "{0} and {1}"})
        log = script.add_node("log")
        chain(script, start.id, log.id)
        script.connect_ports(value.id, "value", text.id, "arg0")
        script.connect_ports(text.id, "result", log.id, "message")
        assert engine.run(script, start.id).logs == ["42 and {1}"]

    def test_concat(self, engine):
        assert evaluate(engine, "string_concat", a="hp=", b=10) == "hp=10"

    @pytest.mark.parametrize("fmt,expected", [("hex", "0xff"), ("binary", "0b11111111"), ("decimal", "255")])
    def test_to_string_formats(self, engine, fmt, expected):
        assert evaluate(engine, "to_string", format=fmt, value=255) == expected

    def test_to_string_hex_of_negative_is_masked(self, engine):
        assert evaluate(engine, "to_string", format="hex", value=-1) == "0xffffffffffffffff"

    @pytest.mark.parametrize(
        "text,radix,expected,ok",
        [("42", 10, 42, True), ("-0x10", 10, -16, True), ("ff", 16, 255, True), ("nope", 10, 0, False)],
    )
    def test_parse_int(self, engine, text, radix, expected, ok):
        assert evaluate(engine, "parse_int", port="value", string=text, radix=radix) == expected
        assert evaluate(engine, "parse_int", port="success", string=text, radix=radix) is ok

    def test_parse_float(self, engine):
        assert evaluate(engine, "parse_float", port="value", string="2.5") == 2.5

    def test_to_pointer(self, engine):
        assert evaluate(engine, "to_pointer", port="pointer", value="0x1234") == Pointer(0x1234)
        assert evaluate(engine, "to_pointer", port="pointer", value="garbage") == Pointer(0)


class TestContainers:
    def test_array_get(self, engine):
        assert evaluate(engine, "array_get", port="element", array=[10, 20, 30], index=1) == 20

    def test_array_get_out_of_bounds(self, engine, script):
        start = script.add_node("start")
        get = script.add_node("array_get", config={"array": [1], "index": 5})
        log = script.add_node("log")
        chain(script, start.id, log.id)
        script.connect_ports(get.id, "element", log.id, "message")
        result = engine.run(script, start.id)
        assert result.status is RunStatus.FAILED
        assert "out of bounds" in result.error

    def test_array_find(self, engine):
        assert evaluate(engine, "array_find", port="index", array=[1, "x", 3], value="x") == 1
        assert evaluate(engine, "array_find", port="found", array=[1], value=True) is False

    def test_array_length_of_string(self, engine):
        assert evaluate(engine, "array_length", port="length", array="abcd") == 4

    def test_push_and_set_are_flow_nodes(self, engine, script):
        start = script.add_node("start")
        push = script.add_node("array_push", config={"array": [1, 2], "value": 3})
        update = script.add_node("array_set", config={"index": 0, "value": 9})
        log = script.add_node("log")
        chain(script, start.id, push.id, update.id, log.id)
        script.connect_ports(push.id, "array", update.id, "array")
        script.connect_ports(update.id, "array", log.id, "message")
        result = engine.run(script, start.id)
        assert result.output(push.id, "length") == 3
        assert result.logs == ["[9, 2, 3]"]

    def test_object_round_trip(self, engine, script):
        start = script.add_node("start")
        put = script.add_node("object_set", config={"propertyName": "hp", "value": 100})
        get = script.add_node("object_get", config={"propertyName": "hp"})
        keys = script.add_node("object_keys")
        log = script.add_node("log")
        second = script.add_node("log")
        chain(script, start.id, put.id, log.id, second.id)
        script.connect_ports(put.id, "object", get.id, "object")
        script.connect_ports(put.id, "object", keys.id, "object")
        script.connect_ports(get.id, "value", log.id, "message")
        script.connect_ports(keys.id, "keys", second.id, "message")
        assert engine.run(script, start.id).logs == ["100", "[hp]"]


class TestOutput:
    def test_notify_line(self, engine, script):
        start = script.add_node("start")
        notify = script.add_node("notify", config={"level": "warn", "title": "Heads up", "message": "low hp"})
        chain(script, start.id, notify.id)
        assert engine.run(script, start.id).logs == ["[warning] Heads up: low hp"]

    def test_log_mirrors_to_script_logger(self, engine, script, caplog):
        start = script.add_node("start")
        log = script.add_node("log", config={"message": "hello"})
        chain(script, start.id, log.id)
        with caplog.at_level("INFO", logger="probeflow.script"):
            engine.run(script, start.id)
        assert "hello" in caplog.text
