from __future__ import annotations

import json
from typing import cast

from probeflow.nodes.configs import ParseIntConfig, StringFormatConfig, ToStringConfig
from probeflow.nodes.values import U64_MASK, Pointer, display, to_json, to_pointer

from .base import ActionContext, NodeOutput

_PREFIXES = {"0x": 16, "0b": 2, "0o": 8}


class StringFormatAction:
    """
    Replaces ``{0}`` .. ``{3}`` with the connected ``argN`` inputs.
    """

    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(StringFormatConfig, context.config)
        result = config.template
        for index in range(4):
            port_name = f"arg{index}"
            if context.is_connected(port_name):
                result = result.replace(f"{{{index}}}", display(context.value(port_name)))
        return NodeOutput.pure(result=result)


class StringConcatAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        return NodeOutput.pure(result=display(context.value("a")) + display(context.value("b")))


class ToStringAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(ToStringConfig, context.config)
        value = context.value("value")
        integral = isinstance(value, int) and not isinstance(value, bool)

        if config.format == "hex" and integral:
            result = f"0x{int(value) & U64_MASK:x}"
        elif config.format == "binary" and integral:
            result = f"0b{int(value) & U64_MASK:b}"
        elif config.format == "decimal" and integral:
            result = str(int(value))
        elif config.format == "decimal" and isinstance(value, float):
            result = repr(value)
        elif config.format == "json":
            result = json.dumps(to_json(value))
        else:
            result = display(value)
        return NodeOutput.pure(result=result)


class ParseIntAction:
    """
    ``0x``, ``0b`` and ``0o`` prefixes override the configured radix.
    """

    def execute(self, context: ActionContext) -> NodeOutput:
        config = cast(ParseIntConfig, context.config)
        text = display(context.value("string")).strip()
        radix = config.radix
        negative = text.startswith("-")
        if negative:
            text = text[1:]
        prefix = text[:2].lower()
        if prefix in _PREFIXES:
            text, radix = text[2:], _PREFIXES[prefix]
        try:
            value = int(text, radix)
        except ValueError:
            return NodeOutput.pure(value=0, success=False)
        return NodeOutput.pure(value=-value if negative else value, success=True)


class ParseFloatAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        text = display(context.value("string")).strip()
        try:
            value = float(text)
        except ValueError:
            return NodeOutput.pure(value=0.0, success=False)
        return NodeOutput.pure(value=value, success=True)


class ToPointerAction:
    def execute(self, context: ActionContext) -> NodeOutput:
        pointer = to_pointer(context.value("value"))
        return NodeOutput.pure(pointer=pointer if pointer is not None else Pointer(0))
