from __future__ import annotations

import itertools

import pytest

from probeflow.nodes import Pointer, ValueType, is_compatible
from probeflow.nodes.types import INTEGER_TYPES, parse_value_type
from probeflow.nodes.values import coerce, display, from_json, to_json, to_pointer, values_equal


class TestCompatibility:
    def test_reflexive(self):
        for value_type in ValueType:
            assert is_compatible(value_type, value_type)

    def test_symmetric(self):
        for left, right in itertools.product(ValueType, repeat=2):
            assert is_compatible(left, right) == is_compatible(right, left)

    def test_any_matches_everything(self):
        for value_type in ValueType:
            assert is_compatible(ValueType.ANY, value_type)

    def test_numeric_family(self):
        assert is_compatible(ValueType.INT8, ValueType.DOUBLE)
        assert is_compatible(ValueType.UINT64, ValueType.FLOAT)

    def test_pointer_and_numeric(self):
        assert is_compatible(ValueType.POINTER, ValueType.UINT64)
        assert is_compatible(ValueType.INT32, ValueType.POINTER)

    @pytest.mark.parametrize(
        "left,right",
        [
            (ValueType.STRING, ValueType.BOOLEAN),
            (ValueType.STRING, ValueType.INT32),
            (ValueType.POINTER, ValueType.STRING),
            (ValueType.ARRAY, ValueType.OBJECT),
            (ValueType.BOOLEAN, ValueType.DOUBLE),
        ],
    )
    def test_incompatible_pairs(self, left, right):
        assert not is_compatible(left, right)

    def test_parse_value_type_aliases(self):
        assert parse_value_type("bool") is ValueType.BOOLEAN
        assert parse_value_type("PTR") is ValueType.POINTER
        assert parse_value_type("nonsense", ValueType.ANY) is ValueType.ANY
        with pytest.raises(ValueError):
            parse_value_type("nonsense")


class TestValues:
    def test_pointer_wraps_to_u64(self):
        assert Pointer(-1) == 0xFFFFFFFFFFFFFFFF
        assert Pointer(0xFFFFFFFFFFFFFFFF) + 1 == 0
        assert str(Pointer(0x401000)) == "0x401000"

    def test_to_pointer(self):
        assert to_pointer("0x10") == 16
        assert to_pointer("32") == 32
        assert to_pointer("zz") is None
        assert to_pointer(True) is None

    def test_display(self):
        assert display(None) == "null"
        assert display(True) == "true"
        assert display(3.0) == "3"
        assert display([1, 2]) == "[1, 2]"
        assert display({"a": 1}) == "{a: 1}"

    def test_coerce_integer_types_wrap(self):
        for value_type in INTEGER_TYPES:
            assert isinstance(coerce("7", value_type), int)
        assert coerce(300, ValueType.UINT8) == 44

    def test_coerce_pointer(self):
        assert coerce("0x20", ValueType.POINTER) == Pointer(0x20)

    def test_json_pointer_round_trip(self):
        raw = to_json({"address": Pointer(0x1000)})
        assert raw == {"address": "0x1000"}
        assert from_json(raw["address"], ValueType.POINTER) == Pointer(0x1000)

    def test_values_equal_does_not_mix_booleans(self):
        assert values_equal(1, 1.0)
        assert not values_equal(True, 1)
