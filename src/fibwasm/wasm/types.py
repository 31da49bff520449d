"""Value and module types for the WASM interpreter."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from fibwasm.wasm.errors import UnexpectedData


class PrimitiveType(Enum):
    """WASM number types, keyed by their binary encoding."""

    I32 = 0x7F
    I64 = 0x7E
    F32 = 0x7D
    F64 = 0x7C

    @property
    def bits(self) -> int:
        return 32 if self in {PrimitiveType.I32, PrimitiveType.F32} else 64

    @property
    def is_int(self) -> bool:
        return self in {PrimitiveType.I32, PrimitiveType.I64}

    def __str__(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Value:
    """A typed value on the operand stack.

    Integers are stored as their unsigned bit pattern; ``signed`` gives the
    two's-complement reading.
    """

    type: PrimitiveType
    value: int | float

    @classmethod
    def i32(cls, value: int) -> Value:
        return cls(PrimitiveType.I32, value & 0xFFFFFFFF)

    @classmethod
    def i64(cls, value: int) -> Value:
        return cls(PrimitiveType.I64, value & 0xFFFFFFFFFFFFFFFF)

    @classmethod
    def zero(cls, type_: PrimitiveType) -> Value:
        return cls(type_, 0 if type_.is_int else 0.0)

    @classmethod
    def from_python(cls, type_: PrimitiveType, value: int | float) -> Value:
        """Wrap a host argument; ints are reduced to the type's width."""
        if type_.is_int:
            return cls(type_, int(value) & ((1 << type_.bits) - 1))
        return cls(type_, float(value))

    @property
    def signed(self) -> int | float:
        if not self.type.is_int:
            return self.value
        bits = self.type.bits
        if self.value >= 1 << (bits - 1):
            return self.value - (1 << bits)
        return self.value

    def __str__(self) -> str:
        return f"({self.type}:{self.signed})"


@dataclass(frozen=True)
class FunctionType:
    params: tuple[PrimitiveType, ...]
    results: tuple[PrimitiveType, ...]

    def __str__(self) -> str:
        params = " ".join(str(p) for p in self.params)
        results = " ".join(str(r) for r in self.results)
        return f"[{params}] -> [{results}]"


@dataclass
class Instruction:
    """A decoded instruction.

    Structured instructions (block, loop, if, else) carry the index of their
    matching ``end``; ``if`` also records its ``else``.
    """

    opcode: int
    name: str
    immediate: int | float | None = None
    arity: int = 0
    end: int = -1
    else_: int | None = None


@dataclass
class Function:
    type_index: int
    type: FunctionType
    locals: list[PrimitiveType] = field(default_factory=list)
    body: list[Instruction] = field(default_factory=list)


class ExportKind(Enum):
    FUNCTION = 0x00
    TABLE = 0x01
    MEMORY = 0x02
    GLOBAL = 0x03


@dataclass(frozen=True)
class Export:
    name: str
    kind: ExportKind
    index: int


@dataclass
class Module:
    """A decoded module: function types, functions and exports."""

    types: list[FunctionType] = field(default_factory=list)
    functions: list[Function] = field(default_factory=list)
    exports: dict[str, Export] = field(default_factory=dict)

    def add_export(self, export: Export) -> None:
        if export.name in self.exports:
            msg = f"Duplicate export name: {export.name!r}"
            raise UnexpectedData(msg)
        self.exports[export.name] = export
