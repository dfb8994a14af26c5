"""
In-process stand-in for the instrumentation agent.

``SimulatedAgent`` answers every target method the engine can send, against
a sparse little-endian byte map instead of a real process, so scripts with
memory, module and native-call nodes can be exercised offline.
"""

from __future__ import annotations

import logging
import math
import struct
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from probeflow.nodes import ValueType
from probeflow.nodes.configs import native_value_type
from probeflow.nodes.types import parse_value_type
from probeflow.nodes.values import Pointer, coerce, to_number, to_pointer, wrap_integer

from .session import AgentReply

logger = logging.getLogger(__name__)

MAX_SCAN_RESULTS = 1000
HEAP_BASE = 0x10000000

_FORMATS: Dict[str, str] = {
    "int8": "<b",
    "uint8": "<B",
    "int16": "<h",
    "uint16": "<H",
    "int32": "<i",
    "uint32": "<I",
    "int64": "<q",
    "uint64": "<Q",
    "float": "<f",
    "double": "<d",
    "pointer": "<Q",
    "boolean": "<?",
}


class AgentCallError(Exception):
    """
    Reported back to the engine as an ``error`` reply.
    """


@dataclass
class SimulatedModule:
    name: str
    base: int
    size: int
    path: str = ""
    exports: Dict[str, int] = field(default_factory=dict)

    def to_value(self) -> Dict[str, Any]:
        return {"name": self.name, "base": str(Pointer(self.base)), "size": self.size, "path": self.path}


def default_modules() -> List[SimulatedModule]:
    return [
        SimulatedModule(
            name="target",
            base=0x400000,
            size=0x20000,
            path="/opt/target/target",
            exports={"main": 0x401000, "update": 0x401200},
        ),
        SimulatedModule(
            name="libc.so.6",
            base=0x7F0000000000,
            size=0x1C0000,
            path="/usr/lib/libc.so.6",
            exports={"malloc": 0x7F0000010000, "free": 0x7F0000010100, "strlen": 0x7F0000010200},
        ),
    ]


class SimulatedAgent:
    """
    Implements the agent channel protocol (``call(method, args)``).
    """

    def __init__(
        self,
        modules: Optional[Iterable[SimulatedModule]] = None,
        latency_ms: int = 0,
    ) -> None:
        self.latency_ms = latency_ms
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._lock = threading.RLock()
        self._memory: Dict[int, int] = {}
        self._protection: Dict[int, Tuple[int, str]] = {}
        self._frozen: Dict[int, Tuple[str, Any]] = {}
        self._functions: Dict[int, Callable[..., Any]] = {}
        self._listeners: Dict[str, Dict[str, Any]] = {}
        self._next_listener = 1
        self._heap = HEAP_BASE
        self._modules: Dict[str, SimulatedModule] = {
            module.name: module for module in (modules if modules is not None else default_modules())
        }
        self._handlers: Dict[str, Callable[[Dict[str, Any], Dict[str, Any]], Any]] = {
            "memoryRead": self._memory_read,
            "memoryWrite": self._memory_write,
            "memoryScan": self._memory_scan,
            "memoryFreeze": self._memory_freeze,
            "memoryProtect": self._memory_protect,
            "memoryAlloc": self._memory_alloc,
            "pointerAdd": self._pointer_add,
            "pointerRead": self._pointer_read,
            "pointerWrite": self._pointer_write,
            "getModule": self._get_module,
            "findSymbol": self._find_symbol,
            "getBaseAddress": self._get_base_address,
            "enumerateModules": self._enumerate_modules,
            "enumerateExports": self._enumerate_exports,
            "callNative": self._call_native,
            "interceptorAttach": self._interceptor_attach,
            "interceptorDetach": self._interceptor_detach,
        }

    # Channel protocol

    def call(self, method: str, args: List[Any]) -> Mapping[str, Any]:
        if self.latency_ms:
            time.sleep(self.latency_ms / 1000.0)
        request = args[0] if args and isinstance(args[0], Mapping) else {}
        config = dict(request.get("config") or {})
        inputs = dict(request.get("inputs") or {})
        handler = self._handlers.get(method)
        if handler is None:
            return AgentReply.failure(f"unknown method {method}")
        with self._lock:
            self.calls.append((method, inputs))
            try:
                return AgentReply.success(handler(config, inputs))
            except AgentCallError as exc:
                logger.debug("Simulated %s failed: %s", method, exc)
                return AgentReply.failure(str(exc))

    # Direct access, used to prepare fixtures

    def write_bytes(self, address: int, data: bytes) -> None:
        with self._lock:
            for offset, byte in enumerate(data):
                self._memory[(address + offset) & 0xFFFFFFFFFFFFFFFF] = byte

    def read_bytes(self, address: int, size: int) -> bytes:
        with self._lock:
            return bytes(self._memory.get(address + offset, 0) for offset in range(size))

    def write_value(self, address: int, value_type: str, value: Any) -> None:
        self.write_bytes(address, _pack(value_type, value))

    def read_value(self, address: int, value_type: str) -> Any:
        return _unpack(value_type, self.read_bytes(address, struct.calcsize(_format(value_type))))

    def register_function(self, address: int, function: Callable[..., Any]) -> None:
        self._functions[int(address)] = function

    @property
    def listeners(self) -> Dict[str, Dict[str, Any]]:
        return dict(self._listeners)

    def frozen(self) -> Dict[int, Tuple[str, Any]]:
        return dict(self._frozen)

    # Handlers

    def _memory_read(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        self._apply_frozen()
        address = _address(inputs, "address")
        return {"value": self.read_value(address, _value_type_name(config.get("valueType")))}

    def _memory_write(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        address = _address(inputs, "address")
        self._check_writable(address)
        self.write_value(address, _value_type_name(config.get("valueType")), inputs.get("value"))
        return {}

    def _memory_scan(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        scan_type = str(config.get("scanType") or "value")
        value = inputs.get("value")
        if scan_type == "pattern":
            needle = _parse_pattern(str(value or ""))
        elif scan_type == "string":
            needle = [byte for byte in str(value or "").encode("utf-8")]
        else:
            needle = list(_pack(_value_type_name(config.get("valueType")), value))
        if not needle:
            raise AgentCallError("empty scan pattern")

        results: List[str] = []
        for start in sorted(self._memory):
            if all(
                expected is None or self._memory.get(start + offset) == expected
                for offset, expected in enumerate(needle)
            ):
                results.append(str(Pointer(start)))
                if len(results) >= MAX_SCAN_RESULTS:
                    break
        return {"results": results, "count": len(results)}

    def _memory_freeze(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        address = _address(inputs, "address")
        enabled = inputs.get("enabled")
        if enabled is False:
            self._frozen.pop(address, None)
            return {}
        value_type = _value_type_name(config.get("valueType"))
        self._frozen[address] = (value_type, inputs.get("value"))
        self.write_value(address, value_type, inputs.get("value"))
        return {}

    def _memory_protect(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        address = _address(inputs, "address")
        size = int(to_number(inputs.get("size")) or 0)
        if size <= 0:
            raise AgentCallError("protect size must be positive")
        protection = str(config.get("protection") or "rwx")
        if any(flag not in "rwx-" for flag in protection):
            raise AgentCallError(f"invalid protection {protection!r}")
        self._protection[address] = (size, protection)
        return {"success": True}

    def _memory_alloc(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        size = int(to_number(inputs.get("size", config.get("size"))) or 0)
        if size <= 0:
            raise AgentCallError("allocation size must be positive")
        address = self._heap
        self._heap += (size + 15) & ~15
        self.write_bytes(address, bytes(size))
        return {"address": str(Pointer(address))}

    def _pointer_add(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        pointer = _address(inputs, "pointer")
        offset = to_number(inputs.get("offset"))
        if offset is None:
            raise AgentCallError("offset is not a number")
        return {"result": str(Pointer(pointer + int(offset)))}

    def _pointer_read(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        self._apply_frozen()
        pointer = _address(inputs, "pointer")
        read_type = str(config.get("readType") or "uint32")
        if read_type == "utf8":
            return {"value": self._read_string(pointer, 1).decode("utf-8", errors="replace")}
        if read_type == "utf16":
            return {"value": self._read_string(pointer, 2).decode("utf-16-le", errors="replace")}
        value = self.read_value(pointer, read_type)
        if read_type == "pointer":
            value = str(Pointer(value))
        return {"value": value}

    def _pointer_write(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        pointer = _address(inputs, "pointer")
        self._check_writable(pointer)
        write_type = str(config.get("writeType") or "uint32")
        value = inputs.get("value")
        if write_type == "utf8":
            self.write_bytes(pointer, str(value).encode("utf-8") + b"\x00")
        elif write_type == "utf16":
            self.write_bytes(pointer, str(value).encode("utf-16-le") + b"\x00\x00")
        else:
            self.write_value(pointer, write_type, value)
        return {}

    def _get_module(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        module = self._module(inputs.get("name"))
        return {"module": module.name, "base": str(Pointer(module.base)), "size": module.size}

    def _find_symbol(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        module = self._module(inputs.get("module"))
        symbol = str(inputs.get("symbol") or "")
        if symbol not in module.exports:
            raise AgentCallError(f"symbol {symbol!r} not found in {module.name}")
        return {"address": str(Pointer(module.exports[symbol]))}

    def _get_base_address(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        return {"address": str(Pointer(self._module(inputs.get("moduleName")).base))}

    def _enumerate_modules(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        modules = [module.to_value() for module in self._modules.values()]
        return {"modules": modules, "count": len(modules)}

    def _enumerate_exports(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        module = self._module(inputs.get("moduleName"))
        exports = [
            {"type": "function", "name": name, "address": str(Pointer(address))}
            for name, address in sorted(module.exports.items())
        ]
        return {"exports": exports, "count": len(exports)}

    def _call_native(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        address = _address(inputs, "address")
        function = self._functions.get(address)
        if function is None:
            raise AgentCallError(f"no native function at {Pointer(address)}")

        arg_types = list(config.get("argTypes") or [])
        count = int(config.get("argCount") or 0)
        args: List[Any] = []
        for index in range(count):
            native = arg_types[index] if index < len(arg_types) else "pointer"
            args.append(coerce(inputs.get(f"arg{index}"), native_value_type(native)))

        result = function(*args)
        return_type = str(config.get("returnType") or "void")
        if return_type == "void":
            return {"return": None}
        result = coerce(result, native_value_type(return_type))
        return {"return": str(result) if isinstance(result, Pointer) else result}

    def _interceptor_attach(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        address = _address(inputs, "address")
        listener_id = f"listener-{self._next_listener}"
        self._next_listener += 1
        self._listeners[listener_id] = {
            "address": Pointer(address),
            "onEnter": bool(config.get("onEnter", True)),
            "onLeave": bool(config.get("onLeave", True)),
        }
        return {"listenerId": listener_id}

    def _interceptor_detach(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Dict[str, Any]:
        listener_id = str(inputs.get("listenerId") or "")
        return {"success": self._listeners.pop(listener_id, None) is not None}

    # Helpers

    def _module(self, name: Any) -> SimulatedModule:
        module = self._modules.get(str(name or ""))
        if module is None:
            raise AgentCallError(f"module {name!r} not found")
        return module

    def _apply_frozen(self) -> None:
        for address, (value_type, value) in self._frozen.items():
            self.write_value(address, value_type, value)

    def _check_writable(self, address: int) -> None:
        for start, (size, protection) in self._protection.items():
            if start <= address < start + size and "w" not in protection:
                raise AgentCallError(f"access violation writing {Pointer(address)}")

    def _read_string(self, address: int, width: int) -> bytes:
        data = bytearray()
        while len(data) < 4096:
            chunk = self.read_bytes(address + len(data), width)
            if chunk == bytes(width):
                break
            data.extend(chunk)
        return bytes(data)


def _address(inputs: Mapping[str, Any], name: str) -> int:
    pointer = to_pointer(inputs.get(name))
    if pointer is None:
        raise AgentCallError(f"invalid address in '{name}': {inputs.get(name)!r}")
    if pointer == 0:
        raise AgentCallError(f"access violation: null pointer in '{name}'")
    return int(pointer)


def _value_type_name(raw: Any) -> str:
    value_type = parse_value_type(raw, ValueType.INT32)
    if value_type.value not in _FORMATS:
        raise AgentCallError(f"unsupported value type {value_type.value}")
    return value_type.value


def _format(value_type: str) -> str:
    try:
        return _FORMATS[value_type]
    except KeyError:
        raise AgentCallError(f"unsupported value type {value_type}") from None


def _pack(value_type: str, value: Any) -> bytes:
    fmt = _format(value_type)
    if value_type in ("float", "double"):
        number = to_number(value)
        if number is None:
            raise AgentCallError(f"cannot write {value!r} as {value_type}")
        return struct.pack(fmt, float(number))
    if value_type == "boolean":
        return struct.pack(fmt, bool(value))
    if value_type == "pointer":
        pointer = to_pointer(value)
        if pointer is None:
            raise AgentCallError(f"cannot write {value!r} as pointer")
        return struct.pack(fmt, int(pointer))
    number = to_number(value)
    if number is None or isinstance(number, float) and not math.isfinite(number):
        raise AgentCallError(f"cannot write {value!r} as {value_type}")
    return struct.pack(fmt, wrap_integer(int(number), ValueType(value_type)))


def _unpack(value_type: str, data: bytes) -> Any:
    (value,) = struct.unpack(_format(value_type), data)
    return value


def _parse_pattern(text: str) -> List[Optional[int]]:
    """
    ``"48 8B ?? 05"`` style byte patterns; ``??`` matches any byte.
    """

    pattern: List[Optional[int]] = []
    for token in text.split():
        if token in ("?", "??"):
            pattern.append(None)
            continue
        try:
            pattern.append(int(token, 16))
        except ValueError:
            raise AgentCallError(f"invalid pattern byte {token!r}") from None
    return pattern
