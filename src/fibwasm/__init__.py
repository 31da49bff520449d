"""fibwasm: 64-bit Fibonacci with an embeddable WebAssembly export."""

from __future__ import annotations

import pathlib
import sys

from fibwasm.core import fib_dispatch
from fibwasm.module import compile_fib_module


def main() -> None:
    """Entry point for fibwasm CLI: print or write the WAT module."""
    if len(sys.argv) > 2:
        print("Usage: fibwasm [output.wat]")
        sys.exit(1)

    wat_code = compile_fib_module()

    if len(sys.argv) == 2:
        pathlib.Path(sys.argv[1]).write_text(wat_code)
    else:
        print(wat_code, end="")


__all__ = ["compile_fib_module", "fib_dispatch", "main"]
