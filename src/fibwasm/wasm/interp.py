"""Stack-machine interpreter for decoded WASM modules.

Integer arithmetic wraps to the operand width, so an ``i64.add`` here
behaves exactly like the host's. Floats can be pushed and moved around
but have no arithmetic.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from fibwasm.wasm.errors import (
    MissingExport,
    StackViolation,
    Trap,
    TypeMismatch,
    UnexpectedData,
)
from fibwasm.wasm.parser import decode_module
from fibwasm.wasm.types import (
    ExportKind,
    Function,
    Instruction,
    Module,
    PrimitiveType,
    Value,
)

MAX_CALL_DEPTH = 150

I32 = PrimitiveType.I32
I64 = PrimitiveType.I64


def _signed(value: int, bits: int) -> int:
    return value - (1 << bits) if value >= 1 << (bits - 1) else value


def _div_s(a: int, b: int, bits: int) -> int:
    if b == 0:
        raise Trap("integer divide by zero")
    sa, sb = _signed(a, bits), _signed(b, bits)
    if sa == -(1 << (bits - 1)) and sb == -1:
        raise Trap("integer overflow")
    quotient = abs(sa) // abs(sb)
    return -quotient if (sa < 0) != (sb < 0) else quotient


def _div_u(a: int, b: int, bits: int) -> int:
    if b == 0:
        raise Trap("integer divide by zero")
    return a // b


def _rem_s(a: int, b: int, bits: int) -> int:
    if b == 0:
        raise Trap("integer divide by zero")
    sa, sb = _signed(a, bits), _signed(b, bits)
    remainder = abs(sa) % abs(sb)
    return -remainder if sa < 0 else remainder


def _rem_u(a: int, b: int, bits: int) -> int:
    if b == 0:
        raise Trap("integer divide by zero")
    return a % b


def _rotl(a: int, b: int, bits: int) -> int:
    k = b % bits
    return (a << k) | (a >> (bits - k))


def _rotr(a: int, b: int, bits: int) -> int:
    k = b % bits
    return (a >> k) | (a << (bits - k))


BINOPS: dict[str, Callable[[int, int, int], int]] = {
    "add": lambda a, b, bits: a + b,
    "sub": lambda a, b, bits: a - b,
    "mul": lambda a, b, bits: a * b,
    "div_s": _div_s,
    "div_u": _div_u,
    "rem_s": _rem_s,
    "rem_u": _rem_u,
    "and": lambda a, b, bits: a & b,
    "or": lambda a, b, bits: a | b,
    "xor": lambda a, b, bits: a ^ b,
    "shl": lambda a, b, bits: a << (b % bits),
    "shr_s": lambda a, b, bits: _signed(a, bits) >> (b % bits),
    "shr_u": lambda a, b, bits: a >> (b % bits),
    "rotl": _rotl,
    "rotr": _rotr,
}

COMPARES: dict[str, Callable[[int, int, int], bool]] = {
    "eq": lambda a, b, bits: a == b,
    "ne": lambda a, b, bits: a != b,
    "lt_u": lambda a, b, bits: a < b,
    "gt_u": lambda a, b, bits: a > b,
    "le_u": lambda a, b, bits: a <= b,
    "ge_u": lambda a, b, bits: a >= b,
    "lt_s": lambda a, b, bits: _signed(a, bits) < _signed(b, bits),
    "gt_s": lambda a, b, bits: _signed(a, bits) > _signed(b, bits),
    "le_s": lambda a, b, bits: _signed(a, bits) <= _signed(b, bits),
    "ge_s": lambda a, b, bits: _signed(a, bits) >= _signed(b, bits),
}

UNOPS: dict[str, Callable[[int, int], int]] = {
    "clz": lambda a, bits: bits - a.bit_length(),
    "ctz": lambda a, bits: (a & -a).bit_length() - 1 if a else bits,
    "popcnt": lambda a, bits: bin(a).count("1"),
}


@dataclass
class Label:
    """A branch target on the control stack."""

    arity: int
    height: int
    target: int
    is_loop: bool = False


class Frame:
    """Execution state of one function call."""

    def __init__(self, function: Function, args: list[Value]) -> None:
        self.function = function
        self.locals = args + [Value.zero(t) for t in function.locals]
        self.stack: list[Value] = []
        self.labels: list[Label] = []
        self.pc = 0

    def push(self, value: Value) -> None:
        self.stack.append(value)

    def pop(self, expected: PrimitiveType | None = None) -> Value:
        if not self.stack:
            raise StackViolation
        value = self.stack.pop()
        if expected is not None and value.type != expected:
            msg = f"Expected {expected}, got {value}"
            raise TypeMismatch(msg)
        return value

    def take(self, count: int) -> list[Value]:
        """Pop ``count`` values, returned in push order."""
        if len(self.stack) < count:
            raise StackViolation
        if count == 0:
            return []
        values = self.stack[-count:]
        del self.stack[-count:]
        return values

    def local(self, index: int) -> int:
        if index >= len(self.locals):
            msg = f"Local index out of range: {index}"
            raise UnexpectedData(msg)
        return index


class Instance:
    """An instantiated module whose exports can be called."""

    def __init__(self, module: Module) -> None:
        self.module = module
        self.depth = 0

    def call(self, name: str, *args: int | float) -> Value | None:
        """Call an exported function with host arguments.

        Returns the single result, or None for functions without results.
        """
        export = self.module.exports.get(name)
        if export is None or export.kind != ExportKind.FUNCTION:
            raise MissingExport(name)
        function = self.module.functions[export.index]
        params = function.type.params
        if len(args) != len(params):
            msg = f"{name} expects {len(params)} arguments, got {len(args)}"
            raise TypeMismatch(msg)
        values = [Value.from_python(t, a) for t, a in zip(params, args)]
        results = self.invoke(function, values)
        return results[0] if results else None

    def invoke(self, function: Function, args: list[Value]) -> list[Value]:
        """Run ``function`` to completion and return its results."""
        for param, arg in zip(function.type.params, args, strict=True):
            if arg.type != param:
                msg = f"Expected {param}, got {arg}"
                raise TypeMismatch(msg)
        if self.depth >= MAX_CALL_DEPTH:
            raise Trap("call stack exhausted")
        self.depth += 1
        try:
            return self._execute(Frame(function, list(args)))
        finally:
            self.depth -= 1

    def _execute(self, frame: Frame) -> list[Value]:
        body = frame.function.body
        results = frame.function.type.results
        while True:
            inst = body[frame.pc]
            name = inst.name

            if name == "end":
                if not frame.labels:
                    values = frame.take(len(results))
                    if frame.stack:
                        raise StackViolation
                    return self._check_results(values, results)
                frame.labels.pop()
            elif name == "return":
                return self._check_results(frame.take(len(results)), results)
            elif name in {"br", "br_if"}:
                if name == "br" or frame.pop(I32).value:
                    if self._branch(frame, inst.immediate):
                        return self._check_results(
                            frame.take(len(results)), results
                        )
                    continue
            elif not self._step(frame, inst):
                continue
            frame.pc += 1

    def _step(self, frame: Frame, inst: Instruction) -> bool:
        """Execute one non-branching instruction.

        Returns False when the instruction already moved ``frame.pc``.
        """
        name = inst.name
        if name == "nop":
            pass
        elif name == "unreachable":
            raise Trap("unreachable")
        elif name == "block":
            frame.labels.append(Label(inst.arity, len(frame.stack), inst.end + 1))
        elif name == "loop":
            frame.labels.append(Label(0, len(frame.stack), frame.pc + 1, True))
        elif name == "if":
            condition = frame.pop(I32).value
            frame.labels.append(Label(inst.arity, len(frame.stack), inst.end + 1))
            if not condition:
                # Skip to the else branch, or to the end which pops the label.
                frame.pc = inst.end if inst.else_ is None else inst.else_ + 1
                return False
        elif name == "else":
            # The then branch finished; its end pops the label.
            frame.pc = inst.end
            return False
        elif name == "call":
            self._call(frame, inst.immediate)
        elif name == "drop":
            frame.pop()
        elif name == "select":
            condition = frame.pop(I32).value
            second = frame.pop()
            first = frame.pop()
            if first.type != second.type:
                msg = f"select operands differ: {first} {second}"
                raise TypeMismatch(msg)
            frame.push(first if condition else second)
        elif name == "local.get":
            frame.push(frame.locals[frame.local(inst.immediate)])
        elif name in {"local.set", "local.tee"}:
            index = frame.local(inst.immediate)
            value = frame.pop(frame.locals[index].type)
            frame.locals[index] = value
            if name == "local.tee":
                frame.push(value)
        elif name.endswith(".const"):
            type_ = PrimitiveType[name.split(".")[0].upper()]
            frame.push(Value.from_python(type_, inst.immediate))
        elif name == "i32.wrap_i64":
            frame.push(Value.i32(frame.pop(I64).value))
        elif name == "i64.extend_i32_s":
            frame.push(Value.i64(frame.pop(I32).signed))
        elif name == "i64.extend_i32_u":
            frame.push(Value.i64(frame.pop(I32).value))
        else:
            self._numeric(frame, name)
        return True

    def _numeric(self, frame: Frame, name: str) -> None:
        prefix, op = name.split(".")
        type_ = PrimitiveType[prefix.upper()]
        bits = type_.bits
        mask = (1 << bits) - 1
        if op == "eqz":
            frame.push(Value.i32(int(frame.pop(type_).value == 0)))
        elif op in UNOPS:
            frame.push(Value(type_, UNOPS[op](frame.pop(type_).value, bits)))
        elif op in COMPARES:
            b = frame.pop(type_).value
            a = frame.pop(type_).value
            frame.push(Value.i32(int(COMPARES[op](a, b, bits))))
        else:
            b = frame.pop(type_).value
            a = frame.pop(type_).value
            frame.push(Value(type_, BINOPS[op](a, b, bits) & mask))

    def _branch(self, frame: Frame, depth: int) -> bool:
        """Branch to the label ``depth`` levels out.

        Returns True when the branch targets the function body itself,
        which acts as a return.
        """
        if depth == len(frame.labels):
            return True
        if depth > len(frame.labels):
            msg = f"Branch depth out of range: {depth}"
            raise UnexpectedData(msg)
        label = frame.labels[-1 - depth]
        values = frame.take(label.arity)
        if len(frame.stack) < label.height:
            raise StackViolation
        del frame.stack[label.height :]
        frame.stack.extend(values)
        # A loop label stays active: the branch re-enters the loop body.
        keep = len(frame.labels) - depth
        if not label.is_loop:
            keep -= 1
        del frame.labels[keep:]
        frame.pc = label.target
        return False

    def _call(self, frame: Frame, index: int) -> None:
        if index >= len(self.module.functions):
            msg = f"Call to missing function {index}"
            raise UnexpectedData(msg)
        callee = self.module.functions[index]
        args = frame.take(len(callee.type.params))
        frame.stack.extend(self.invoke(callee, args))

    @staticmethod
    def _check_results(
        values: list[Value], expected: tuple[PrimitiveType, ...]
    ) -> list[Value]:
        for value, type_ in zip(values, expected):
            if value.type != type_:
                msg = f"Expected {type_} result, got {value}"
                raise TypeMismatch(msg)
        return values


def instantiate(content: bytes) -> Instance:
    """Decode a WASM binary and return a callable instance."""
    return Instance(decode_module(content))
