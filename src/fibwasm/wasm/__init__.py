"""Pure-Python decoder and interpreter for WASM binaries."""

from __future__ import annotations

from fibwasm.wasm.errors import (
    BadVersion,
    EndOfData,
    IntSizeViolation,
    InvalidInput,
    MissingExport,
    StackViolation,
    Trap,
    TypeMismatch,
    UnexpectedData,
    UnknownOpcode,
    UnknownSection,
    WasmError,
)
from fibwasm.wasm.interp import Instance, instantiate
from fibwasm.wasm.parser import decode_module, parse_wasm
from fibwasm.wasm.types import FunctionType, Module, PrimitiveType, Value

__all__ = [
    "BadVersion",
    "EndOfData",
    "FunctionType",
    "Instance",
    "IntSizeViolation",
    "InvalidInput",
    "MissingExport",
    "Module",
    "PrimitiveType",
    "StackViolation",
    "Trap",
    "TypeMismatch",
    "UnexpectedData",
    "UnknownOpcode",
    "UnknownSection",
    "Value",
    "WasmError",
    "decode_module",
    "instantiate",
    "parse_wasm",
]
