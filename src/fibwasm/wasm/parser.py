"""Decoder for the WASM binary format.

Handles the sections a self-contained numeric module needs: types,
functions, exports and code. Tables, memories, globals, element and data
segments are skipped; imports are rejected since the interpreter has no
host functions to bind them to.
"""

from __future__ import annotations

from pathlib import Path

from fibwasm.wasm.errors import (
    BadVersion,
    InvalidInput,
    UnexpectedData,
    UnknownOpcode,
    UnknownSection,
)
from fibwasm.wasm.reader import ByteReader
from fibwasm.wasm.types import (
    Export,
    ExportKind,
    Function,
    FunctionType,
    Instruction,
    Module,
    PrimitiveType,
)

MAGIC = b"\x00asm"
VERSION = b"\x01\x00\x00\x00"

SECTION_CUSTOM = 0
SECTION_TYPE = 1
SECTION_IMPORT = 2
SECTION_FUNCTION = 3
SECTION_EXPORT = 7
SECTION_CODE = 10
SECTION_DATACOUNT = 12

FUNC_TYPE_TAG = 0x60
EMPTY_BLOCK = 0x40

# Immediate kinds
NONE, BLOCK, INDEX, I32, I64, F32, F64 = range(7)

OPCODES: dict[int, tuple[str, int]] = {
    0x00: ("unreachable", NONE),
    0x01: ("nop", NONE),
    0x02: ("block", BLOCK),
    0x03: ("loop", BLOCK),
    0x04: ("if", BLOCK),
    0x05: ("else", NONE),
    0x0B: ("end", NONE),
    0x0C: ("br", INDEX),
    0x0D: ("br_if", INDEX),
    0x0F: ("return", NONE),
    0x10: ("call", INDEX),
    0x1A: ("drop", NONE),
    0x1B: ("select", NONE),
    0x20: ("local.get", INDEX),
    0x21: ("local.set", INDEX),
    0x22: ("local.tee", INDEX),
    0x41: ("i32.const", I32),
    0x42: ("i64.const", I64),
    0x43: ("f32.const", F32),
    0x44: ("f64.const", F64),
    0xA7: ("i32.wrap_i64", NONE),
    0xAC: ("i64.extend_i32_s", NONE),
    0xAD: ("i64.extend_i32_u", NONE),
}

INT_TESTS = ("eqz",)
INT_COMPARES = (
    "eq", "ne", "lt_s", "lt_u", "gt_s", "gt_u", "le_s", "le_u", "ge_s", "ge_u",
)
INT_UNOPS = ("clz", "ctz", "popcnt")
INT_BINOPS = (
    "add", "sub", "mul", "div_s", "div_u", "rem_s", "rem_u",
    "and", "or", "xor", "shl", "shr_s", "shr_u", "rotl", "rotr",
)


def _register_int_ops(prefix: str, compare_base: int, arith_base: int) -> None:
    for offset, op in enumerate(INT_TESTS + INT_COMPARES):
        OPCODES[compare_base + offset] = (f"{prefix}.{op}", NONE)
    for offset, op in enumerate(INT_UNOPS + INT_BINOPS):
        OPCODES[arith_base + offset] = (f"{prefix}.{op}", NONE)


_register_int_ops("i32", 0x45, 0x67)
_register_int_ops("i64", 0x50, 0x79)


def read_value_type(reader: ByteReader) -> PrimitiveType:
    code = reader.read_byte()
    try:
        return PrimitiveType(code)
    except ValueError:
        msg = f"Unknown value type: 0x{code:02X}"
        raise UnexpectedData(msg) from None


def read_function_type(reader: ByteReader) -> FunctionType:
    tag = reader.read_byte()
    if tag != FUNC_TYPE_TAG:
        msg = f"Expected function type, got 0x{tag:02X}"
        raise UnexpectedData(msg)
    params = tuple(read_value_type(reader) for _ in range(reader.read_u32()))
    results = tuple(read_value_type(reader) for _ in range(reader.read_u32()))
    return FunctionType(params, results)


def read_block_arity(reader: ByteReader) -> int:
    """Read a block type and return how many values the block yields."""
    if reader.peek_byte() == EMPTY_BLOCK:
        reader.read_byte()
        return 0
    if reader.peek_byte() & 0x40:
        read_value_type(reader)
        return 1
    # Type-index block types carry parameters; not supported.
    msg = "Multi-value block types are not supported"
    raise UnexpectedData(msg)


def read_instruction(reader: ByteReader) -> Instruction:
    opcode = reader.read_byte()
    if opcode not in OPCODES:
        raise UnknownOpcode(opcode)
    name, kind = OPCODES[opcode]
    inst = Instruction(opcode, name)
    if kind == BLOCK:
        inst.arity = read_block_arity(reader)
    elif kind == INDEX:
        inst.immediate = reader.read_u32()
    elif kind == I32:
        inst.immediate = reader.read_s32()
    elif kind == I64:
        inst.immediate = reader.read_s64()
    elif kind == F32:
        inst.immediate = reader.read_f32()
    elif kind == F64:
        inst.immediate = reader.read_f64()
    return inst


def read_body(reader: ByteReader) -> list[Instruction]:
    """Decode instructions up to the function's final ``end``.

    Matches every block/loop/if with its ``end`` (and ``else``) so the
    interpreter can jump without rescanning.
    """
    body: list[Instruction] = []
    open_blocks: list[int] = []
    while True:
        inst = read_instruction(reader)
        body.append(inst)
        position = len(body) - 1
        if inst.name in {"block", "loop", "if"}:
            open_blocks.append(position)
        elif inst.name == "else":
            if not open_blocks or body[open_blocks[-1]].name != "if":
                msg = "else without a matching if"
                raise UnexpectedData(msg)
            owner = body[open_blocks[-1]]
            if owner.else_ is not None:
                msg = "if with more than one else"
                raise UnexpectedData(msg)
            owner.else_ = position
        elif inst.name == "end":
            if not open_blocks:
                return body
            owner = body[open_blocks.pop()]
            owner.end = position
            if owner.else_ is not None:
                body[owner.else_].end = position


def _read_type_section(reader: ByteReader, module: Module) -> None:
    for _ in range(reader.read_u32()):
        module.types.append(read_function_type(reader))


def _read_function_section(reader: ByteReader, module: Module) -> None:
    for _ in range(reader.read_u32()):
        type_index = reader.read_u32()
        if type_index >= len(module.types):
            msg = f"Function type index out of range: {type_index}"
            raise UnexpectedData(msg)
        module.functions.append(Function(type_index, module.types[type_index]))


def _read_export_section(reader: ByteReader, module: Module) -> None:
    for _ in range(reader.read_u32()):
        name = reader.read_name()
        kind_code = reader.read_byte()
        try:
            kind = ExportKind(kind_code)
        except ValueError:
            msg = f"Unknown export kind: 0x{kind_code:02X}"
            raise UnexpectedData(msg) from None
        module.add_export(Export(name, kind, reader.read_u32()))


def _read_code_section(reader: ByteReader, module: Module) -> None:
    count = reader.read_u32()
    if count != len(module.functions):
        msg = f"Code section has {count} bodies for {len(module.functions)} functions"
        raise UnexpectedData(msg)
    for function in module.functions:
        size = reader.read_u32()
        body = ByteReader(reader.read_bytes(size))
        for _ in range(body.read_u32()):
            repeat = body.read_u32()
            function.locals.extend([read_value_type(body)] * repeat)
        function.body = read_body(body)
        if not body.at_end():
            msg = "Trailing bytes after function body"
            raise UnexpectedData(msg)


SECTION_READERS = {
    SECTION_TYPE: _read_type_section,
    SECTION_FUNCTION: _read_function_section,
    SECTION_EXPORT: _read_export_section,
    SECTION_CODE: _read_code_section,
}


def decode_module(content: bytes) -> Module:
    """Decode a WASM binary into a Module.

    Raises:
        InvalidInput: The magic number is missing.
        BadVersion: The format version is not 1.
        UnknownSection: A section id above the data-count section.
        UnknownOpcode: An instruction the interpreter does not implement.
        EndOfData: The input is truncated.
    """
    if content[: len(MAGIC)] != MAGIC:
        raise InvalidInput
    if content[len(MAGIC) : len(MAGIC) + len(VERSION)] != VERSION:
        raise BadVersion
    reader = ByteReader(content, len(MAGIC) + len(VERSION))

    module = Module()
    while not reader.at_end():
        section_id = reader.read_byte()
        if section_id > SECTION_DATACOUNT:
            msg = f"Unknown section: {section_id}"
            raise UnknownSection(msg)
        section = ByteReader(reader.read_bytes(reader.read_u32()))
        if section_id == SECTION_IMPORT:
            msg = "Imports are not supported"
            raise UnexpectedData(msg)
        read_section = SECTION_READERS.get(section_id)
        if read_section is None:
            continue
        read_section(section, module)
        if not section.at_end():
            msg = f"Trailing bytes in section {section_id}"
            raise UnexpectedData(msg)

    if any(not f.body for f in module.functions):
        msg = "Function section without matching code section"
        raise UnexpectedData(msg)
    for export in module.exports.values():
        if export.kind == ExportKind.FUNCTION and export.index >= len(module.functions):
            msg = f"Export {export.name!r} refers to missing function {export.index}"
            raise UnexpectedData(msg)
    return module


def parse_wasm(path: str | Path) -> Module:
    """Read and decode a .wasm file."""
    return decode_module(Path(path).read_bytes())
