"""Errors raised while decoding or running a WASM module.

The messages double as the CLI's error output.
"""

from __future__ import annotations


class WasmError(Exception):
    """Base class for decoding and execution errors."""

    default_message = "Unknown error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidInput(WasmError):
    """The input does not start with the WASM magic number."""

    default_message = "Invalid input"


class BadVersion(WasmError):
    """The binary format version is not 1."""

    default_message = "Bad version"


class UnknownSection(WasmError):
    """A section id outside the known range."""

    default_message = "Unknown section"


class UnknownOpcode(WasmError):
    """An instruction opcode the interpreter does not implement."""

    def __init__(self, opcode: int) -> None:
        self.opcode = opcode
        super().__init__(f"Unknown opcode: 0x{opcode:X}")


class EndOfData(WasmError):
    """The input ended in the middle of a structure."""

    default_message = "End of data"


class IntSizeViolation(WasmError):
    """A LEB128 integer is too long or out of range for its type."""

    default_message = "Int size violation"


class StackViolation(WasmError):
    """An instruction found too few (or, at function end, too many) values."""

    default_message = "Stack violation"


class UnexpectedData(WasmError):
    """Well-formed bytes that the decoder does not accept here."""

    default_message = "Unexpected data"


class TypeMismatch(WasmError):
    """An operand or argument has the wrong value type."""

    default_message = "Operand type mismatch"


class MissingExport(WasmError):
    """The requested export does not exist or is not a function."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No exported function named {name!r}")


class Trap(WasmError):
    """A runtime trap: unreachable, division by zero, call stack exhausted."""

    default_message = "Trap"
