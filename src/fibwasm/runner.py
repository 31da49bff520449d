"""WASM runner: assemble WAT and call the export from Node.js or the interpreter."""

from __future__ import annotations

import subprocess
import tempfile
from collections.abc import Iterable
from pathlib import Path

from fibwasm.core import to_u64
from fibwasm.module import EXPORT_NAME, compile_fib_module
from fibwasm.wasm.interp import instantiate

# Embedding host: instantiate with no imports, call one export per argument.
# i64 results arrive as signed BigInts and are printed as unsigned.
_JS_RUNNER = """\
import { readFileSync } from 'fs';

const [wasmPath, exportName, ...args] = process.argv.slice(2);
const wasmBuffer = readFileSync(wasmPath);

try {
  const { instance } = await WebAssembly.instantiate(wasmBuffer, {});
  const fn = instance.exports[exportName];
  if (typeof fn !== 'function') {
    console.error(`Missing export: ${exportName}`);
    process.exit(1);
  }
  for (const arg of args) {
    const value = fn(BigInt(arg));
    process.stdout.write(BigInt.asUintN(64, value).toString() + '\\n');
  }
} catch (err) {
  console.error('WASM execution error:', err);
  process.exit(1);
}
"""


def wat_to_wasm(wat_code: str) -> bytes:
    """Convert WAT to WASM binary using wasm-tools.

    Args:
        wat_code: WebAssembly Text format code.

    Returns:
        WASM binary bytes.

    Raises:
        subprocess.CalledProcessError: If wasm-tools fails.
    """
    with tempfile.NamedTemporaryFile(mode="w", suffix=".wat", delete=False) as wat_file:
        wat_file.write(wat_code)
        wat_path = Path(wat_file.name)

    wasm_path = wat_path.with_suffix(".wasm")

    try:
        subprocess.run(
            ["wasm-tools", "parse", str(wat_path), "-o", str(wasm_path)],
            check=True,
            capture_output=True,
            text=True,
        )
        return wasm_path.read_bytes()
    finally:
        wat_path.unlink(missing_ok=True)
        wasm_path.unlink(missing_ok=True)


def call_export(
    wasm_bytes: bytes,
    indices: Iterable[int],
    export: str = EXPORT_NAME,
) -> list[int]:
    """Call a one-argument i64 export of a WASM module with Node.js.

    Args:
        wasm_bytes: WASM binary bytes.
        indices: Arguments, one call each; wrapped to 64 bits.
        export: Name of the exported function.

    Returns:
        Results as unsigned 64-bit integers, in argument order.

    Raises:
        subprocess.CalledProcessError: If Node.js execution fails.
    """
    args = [str(to_u64(i)) for i in indices]

    with tempfile.NamedTemporaryFile(suffix=".wasm", delete=False) as wasm_file:
        wasm_file.write(wasm_bytes)
        wasm_path = Path(wasm_file.name)

    with tempfile.NamedTemporaryFile(mode="w", suffix=".mjs", delete=False) as js_file:
        js_file.write(_JS_RUNNER)
        js_path = Path(js_file.name)

    try:
        result = subprocess.run(
            ["node", str(js_path), str(wasm_path), export, *args],
            check=True,
            capture_output=True,
            text=True,
            encoding="utf-8",
        )
        return [int(ln) for ln in result.stdout.split()]
    finally:
        wasm_path.unlink(missing_ok=True)
        js_path.unlink(missing_ok=True)


def interpret_export(
    wasm_bytes: bytes,
    indices: Iterable[int],
    export: str = EXPORT_NAME,
) -> list[int]:
    """Call a one-argument i64 export with the in-process interpreter.

    Same contract as `call_export`, without Node.js.

    Raises:
        fibwasm.wasm.WasmError: If the module cannot be decoded or traps.
    """
    instance = instantiate(wasm_bytes)
    return [instance.call(export, to_u64(i)).value for i in indices]


def run_fib_dispatch(indices: Iterable[int]) -> list[int]:
    """Build the Fibonacci module, assemble it and call ``fib_dispatch``."""
    wasm_bytes = wat_to_wasm(compile_fib_module())
    return call_export(wasm_bytes, indices)
