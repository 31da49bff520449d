"""Command-line interface for the WASM interpreter.

Provides the `fibwasm-wasm` command: decode a .wasm file and call one of
its exported functions.
"""

from __future__ import annotations

import argparse
import sys

from fibwasm.module import EXPORT_NAME
from fibwasm.wasm.errors import WasmError
from fibwasm.wasm.interp import Instance
from fibwasm.wasm.parser import parse_wasm


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fibwasm-wasm",
        description="Run an exported function of a WASM module",
    )
    parser.add_argument("file", help="Path to the .wasm binary")
    parser.add_argument(
        "args",
        nargs="*",
        type=int,
        help="Integer arguments passed to the function",
    )
    parser.add_argument(
        "--call",
        default=EXPORT_NAME,
        help=f"Exported function to call (default: {EXPORT_NAME})",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = create_parser().parse_args(argv)

    try:
        instance = Instance(parse_wasm(args.file))
        result = instance.call(args.call, *args.args)
    except OSError as e:
        print(f"Error: {e}")
        return 1
    except WasmError as e:
        print(e)
        return 1

    print(f"Final value: {result}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
