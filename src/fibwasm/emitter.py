"""WAT emitter for fibwasm.

Provides the WATEmitter class that writes WebAssembly Text (WAT) to a
stream. The module builder decides what to emit; the emitter only knows
WAT syntax and indentation.
"""

from __future__ import annotations

from typing import TextIO

from fibwasm.core import U64_BITS, to_u64


def i64_literal(value: int) -> int:
    """Return the signed i64 literal with the same bits as ``value``.

    Values at or above 2**63 become negative literals.
    """
    value = to_u64(value)
    if value >= 1 << (U64_BITS - 1):
        return value - (1 << U64_BITS)
    return value


class WATEmitter:
    """Generates WebAssembly Text (WAT) code.

    Handles line and text emission with automatic indentation, comments
    and i64 constants.
    """

    def __init__(self, stream: TextIO) -> None:
        """Initialize the emitter.

        Args:
            stream: Output stream where WAT code is written.
        """
        self.stream = stream
        self.indent = 0

    # =========================================================================
    # Core Emission
    # =========================================================================

    def line(self, code: str) -> None:
        """Emit a single line of WAT code with proper indentation."""
        self.stream.write(" " * self.indent + code + "\n")

    def text(self, code: str) -> None:
        """Emit multi-line WAT code, preserving internal structure."""
        for ln in code.strip().split("\n"):
            self.stream.write(" " * self.indent + ln + "\n")

    def comment(self, text: str) -> None:
        """Emit a WAT comment."""
        self.line(f";; {text}")

    def indent_inc(self, amount: int = 2) -> None:
        """Increase indentation level."""
        self.indent += amount

    def indent_dec(self, amount: int = 2) -> None:
        """Decrease indentation level."""
        self.indent = max(0, self.indent - amount)

    # =========================================================================
    # Literals
    # =========================================================================

    def emit_i64(self, value: int) -> None:
        """Emit an i64 constant, wrapping ``value`` to 64 bits."""
        self.line(f"(i64.const {i64_literal(value)})")
