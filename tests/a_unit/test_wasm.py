"""Unit tests for the WASM decoder and interpreter (fibwasm.wasm).

Modules are assembled by hand from bytes so these run without wasm-tools.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from fibwasm.core import fib_dispatch
from fibwasm.runner import interpret_export
from fibwasm.wasm import (
    BadVersion,
    EndOfData,
    IntSizeViolation,
    InvalidInput,
    MissingExport,
    PrimitiveType,
    StackViolation,
    Trap,
    TypeMismatch,
    UnexpectedData,
    UnknownOpcode,
    UnknownSection,
    Value,
    decode_module,
    instantiate,
)
from fibwasm.wasm.cli import main as wasm_main
from fibwasm.wasm.reader import ByteReader

HEADER = b"\x00asm\x01\x00\x00\x00"
I32 = 0x7F
I64 = 0x7E


def uleb(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if not value:
            out.append(byte)
            return bytes(out)
        out.append(byte | 0x80)


def sleb(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if (value == 0 and not byte & 0x40) or (value == -1 and byte & 0x40):
            out.append(byte)
            return bytes(out)
        out.append(byte | 0x80)


def vec(items: list[bytes]) -> bytes:
    return uleb(len(items)) + b"".join(items)


def section(section_id: int, payload: bytes) -> bytes:
    return bytes([section_id]) + uleb(len(payload)) + payload


def name(text: str) -> bytes:
    data = text.encode()
    return uleb(len(data)) + data


@dataclass
class Func:
    params: bytes
    results: bytes
    body: bytes
    locals: bytes = b"\x00"
    export: str | None = None


def assemble(*funcs: Func) -> bytes:
    """Build a module with one type per function."""
    types = [
        b"\x60" + vec([bytes([p]) for p in f.params]) + vec([bytes([r]) for r in f.results])
        for f in funcs
    ]
    exports = [name(f.export) + b"\x00" + uleb(i) for i, f in enumerate(funcs) if f.export]
    codes = []
    for f in funcs:
        entry = f.locals + f.body
        codes.append(uleb(len(entry)) + entry)
    return (
        HEADER
        + section(1, vec(types))
        + section(3, vec([uleb(i) for i in range(len(funcs))]))
        + section(7, vec(exports))
        + section(10, vec(codes))
    )


def local_get(i: int) -> bytes:
    return b"\x20" + uleb(i)


def local_set(i: int) -> bytes:
    return b"\x21" + uleb(i)


def i64_const(value: int) -> bytes:
    return b"\x42" + sleb(value)


def i32_const(value: int) -> bytes:
    return b"\x41" + sleb(value)


# $fib_step: params a, b, count; local next
FIB_STEP = Func(
    params=bytes([I64, I64, I64]),
    results=bytes([I64]),
    locals=b"\x01\x01" + bytes([I64]),
    body=(
        b"\x02\x40"  # block $done
        + b"\x03\x40"  # loop $step
        + local_get(2) + b"\x50" + b"\x0d\x01"  # br_if $done (i64.eqz count)
        + local_get(0) + local_get(1) + b"\x7c" + local_set(3)
        + local_get(1) + local_set(0)
        + local_get(3) + local_set(1)
        + local_get(2) + i64_const(1) + b"\x7d" + local_set(2)
        + b"\x0c\x00"  # br $step
        + b"\x0b"
        + b"\x0b"
        + local_get(1)
        + b"\x0b"
    ),
)

FIB_DISPATCH = Func(
    params=bytes([I64]),
    results=bytes([I64]),
    export="fib_dispatch",
    body=(
        local_get(0) + i64_const(2) + b"\x54"  # i64.lt_u
        + b"\x04\x40" + local_get(0) + b"\x0f" + b"\x0b"
        + i64_const(0) + i64_const(1)
        + local_get(0) + i64_const(1) + b"\x7d"
        + b"\x10\x00"  # call $fib_step
        + b"\x0b"
    ),
)

FIB_MODULE = assemble(FIB_STEP, FIB_DISPATCH)


def run_i32(body: bytes) -> int:
    """Run a () -> i32 function body and return the signed result."""
    module = assemble(Func(b"", bytes([I32]), body + b"\x0b", export="run"))
    return instantiate(module).call("run").signed


class TestByteReader:
    """Tests for LEB128 decoding."""

    def test_unsigned_multibyte(self) -> None:
        assert ByteReader(b"\xe5\x8e\x26").read_u32() == 624485

    def test_signed_negative(self) -> None:
        assert ByteReader(b"\x7f").read_s64() == -1
        assert ByteReader(b"\xc0\xbb\x78").read_s64() == -123456

    def test_signed_extremes(self) -> None:
        assert ByteReader(sleb(-(1 << 63))).read_s64() == -(1 << 63)
        assert ByteReader(sleb((1 << 63) - 1)).read_s64() == (1 << 63) - 1

    def test_too_many_bytes(self) -> None:
        with pytest.raises(IntSizeViolation):
            ByteReader(b"\x80\x80\x80\x80\x80\x00").read_u32()

    def test_value_too_large(self) -> None:
        with pytest.raises(IntSizeViolation):
            ByteReader(b"\xff\xff\xff\xff\x7f").read_u32()

    def test_signed_out_of_range(self) -> None:
        with pytest.raises(IntSizeViolation):
            ByteReader(sleb(1 << 31)).read_s32()

    def test_truncated(self) -> None:
        with pytest.raises(EndOfData):
            ByteReader(b"\x80").read_u32()


class TestDecodeModule:
    """Tests for decode_module."""

    def test_empty_module(self) -> None:
        module = decode_module(HEADER)
        assert module.functions == []
        assert module.exports == {}

    @pytest.mark.parametrize("content", [b"", b"\x00as", b"\x00wasm\x01\x00\x00\x00"])
    def test_bad_magic(self, content: bytes) -> None:
        with pytest.raises(InvalidInput, match="Invalid input"):
            decode_module(content)

    def test_bad_version(self) -> None:
        with pytest.raises(BadVersion, match="Bad version"):
            decode_module(b"\x00asm\x02\x00\x00\x00")

    def test_unknown_section(self) -> None:
        with pytest.raises(UnknownSection):
            decode_module(HEADER + section(13, b""))

    def test_truncated(self) -> None:
        with pytest.raises(EndOfData):
            decode_module(FIB_MODULE[:-3])

    def test_truncated_section_header(self) -> None:
        with pytest.raises(EndOfData):
            decode_module(HEADER + b"\x01")

    def test_unknown_opcode(self) -> None:
        module = assemble(Func(b"", b"", b"\x92\x0b"))
        with pytest.raises(UnknownOpcode, match="Unknown opcode: 0x92") as excinfo:
            decode_module(module)
        assert excinfo.value.opcode == 0x92

    def test_custom_section_skipped(self) -> None:
        module = decode_module(HEADER + section(0, name("meta") + b"\x01\x02"))
        assert module.functions == []

    def test_import_rejected(self) -> None:
        with pytest.raises(UnexpectedData):
            decode_module(HEADER + section(2, vec([])))

    def test_duplicate_export(self) -> None:
        content = (
            HEADER
            + section(1, vec([b"\x60\x00\x00"]))
            + section(3, vec([b"\x00"]))
            + section(7, vec([name("f") + b"\x00\x00", name("f") + b"\x00\x00"]))
            + section(10, vec([b"\x02\x00\x0b"]))
        )
        with pytest.raises(UnexpectedData, match="Duplicate export"):
            decode_module(content)

    def test_missing_code_section(self) -> None:
        content = HEADER + section(1, vec([b"\x60\x00\x00"])) + section(3, vec([b"\x00"]))
        with pytest.raises(UnexpectedData):
            decode_module(content)

    def test_fib_module_structure(self) -> None:
        module = decode_module(FIB_MODULE)
        step, dispatch = module.functions
        assert step.locals == [PrimitiveType.I64]
        assert [str(t) for t in dispatch.type.params] == ["i64"]
        assert list(module.exports) == ["fib_dispatch"]
        block, loop = step.body[0], step.body[1]
        assert block.end == len(step.body) - 3
        assert loop.end == len(step.body) - 4

    def test_if_else_matching(self) -> None:
        body = local_get(0) + b"\x04\x7e" + i64_const(1) + b"\x05" + i64_const(2) + b"\x0b\x0b"
        module = decode_module(assemble(Func(bytes([I32]), bytes([I64]), body)))
        code = module.functions[0].body
        assert code[1].else_ == 3
        assert code[1].end == 5
        assert code[3].end == 5


class TestValue:
    """Tests for Value."""

    def test_str_is_signed(self) -> None:
        assert str(Value.i64((1 << 64) - 1)) == "(i64:-1)"
        assert str(Value.i32(5)) == "(i32:5)"

    def test_wraps_to_width(self) -> None:
        assert Value.i32(1 << 32).value == 0
        assert Value.i64(-1).value == (1 << 64) - 1


class TestFibModule:
    """Tests for running the Fibonacci module in the interpreter."""

    @pytest.mark.parametrize("index", [0, 1, 2, 3, 10, 20, 92, 93, 94, 95, 1000])
    def test_matches_python(self, index: int) -> None:
        result = instantiate(FIB_MODULE).call("fib_dispatch", index)
        assert result.type == PrimitiveType.I64
        assert result.value == fib_dispatch(index)

    def test_wrapped_value(self) -> None:
        assert instantiate(FIB_MODULE).call("fib_dispatch", 94).value == 1293530146158671551

    def test_interpret_export(self) -> None:
        assert interpret_export(FIB_MODULE, [10, 20]) == [55, 6765]

    def test_step_function_not_exported(self) -> None:
        with pytest.raises(MissingExport):
            instantiate(FIB_MODULE).call("fib_step", 0, 1, 5)

    def test_wrong_argument_count(self) -> None:
        with pytest.raises(TypeMismatch):
            instantiate(FIB_MODULE).call("fib_dispatch")


class TestInstance:
    """Tests for interpreter semantics."""

    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            (i32_const(0) + i32_const(1) + b"\x6b", -1),  # sub wraps
            (i32_const(0x7FFFFFFF) + i32_const(1) + b"\x6a", -(1 << 31)),  # add wraps
            (i32_const(-7) + i32_const(2) + b"\x6d", -3),  # div_s truncates
            (i32_const(-7) + i32_const(2) + b"\x6f", -1),  # rem_s
            (i32_const(-8) + i32_const(1) + b"\x75", -4),  # shr_s
            (i32_const(-(1 << 31)) + i32_const(1) + b"\x77", 1),  # rotl
            (i32_const(1) + b"\x67", 31),  # clz
            (i32_const(-1) + i32_const(0) + b"\x49", 0),  # lt_u
            (i32_const(-1) + i32_const(0) + b"\x48", 1),  # lt_s
            (i32_const(3) + i32_const(4) + i32_const(0) + b"\x1b", 4),  # select
        ],
    )
    def test_i32_ops(self, body: bytes, expected: int) -> None:
        assert run_i32(body) == expected

    def test_block_result(self) -> None:
        # block (result i32) i32.const 7 br 0 i32.const 9 end
        body = b"\x02\x7f" + i32_const(7) + b"\x0c\x00" + i32_const(9) + b"\x0b"
        assert run_i32(body) == 7

    def test_br_if_from_function_body_returns(self) -> None:
        body = i32_const(5) + i32_const(1) + b"\x0d\x00" + b"\x1a" + i32_const(6)
        assert run_i32(body) == 5

    @pytest.mark.parametrize(("arg", "expected"), [(0, 2), (5, 1)])
    def test_if_else(self, arg: int, expected: int) -> None:
        body = local_get(0) + b"\x04\x7e" + i64_const(1) + b"\x05" + i64_const(2) + b"\x0b\x0b"
        module = assemble(Func(bytes([I32]), bytes([I64]), body, export="pick"))
        assert instantiate(module).call("pick", arg).value == expected

    def test_stack_underflow(self) -> None:
        with pytest.raises(StackViolation):
            run_i32(b"\x6a")

    def test_values_left_on_stack(self) -> None:
        module = assemble(Func(b"", b"", i32_const(1) + b"\x0b", export="run"))
        with pytest.raises(StackViolation):
            instantiate(module).call("run")

    def test_operand_type_mismatch(self) -> None:
        with pytest.raises(TypeMismatch):
            run_i32(i32_const(1) + i64_const(1) + b"\x7c" + b"\xa7")

    def test_divide_by_zero_traps(self) -> None:
        with pytest.raises(Trap, match="divide by zero"):
            run_i32(i32_const(1) + i32_const(0) + b"\x6d")

    def test_unreachable_traps(self) -> None:
        with pytest.raises(Trap, match="unreachable"):
            run_i32(b"\x00")

    def test_unbounded_recursion_traps(self) -> None:
        module = assemble(Func(b"", b"", b"\x10\x00\x0b", export="run"))
        with pytest.raises(Trap, match="call stack exhausted"):
            instantiate(module).call("run")

    def test_no_result_returns_none(self) -> None:
        module = assemble(Func(b"", b"", b"\x01\x0b", export="run"))
        assert instantiate(module).call("run") is None


class TestCli:
    """Tests for the fibwasm-wasm command."""

    def test_prints_final_value(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = tmp_path / "fib.wasm"
        path.write_bytes(FIB_MODULE)
        assert wasm_main([str(path), "10"]) == 0
        assert capsys.readouterr().out == "Final value: (i64:55)\n"

    def test_decode_error(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = tmp_path / "bad.wasm"
        path.write_bytes(b"\x00asm\x02\x00\x00\x00")
        assert wasm_main([str(path)]) == 1
        assert capsys.readouterr().out == "Bad version\n"

    def test_missing_export(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = tmp_path / "fib.wasm"
        path.write_bytes(FIB_MODULE)
        assert wasm_main([str(path), "--call", "main"]) == 1
        assert "No exported function named 'main'" in capsys.readouterr().out

    def test_missing_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert wasm_main([str(tmp_path / "nope.wasm")]) == 1
        assert capsys.readouterr().out.startswith("Error:")
