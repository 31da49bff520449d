"""WAT module builder for the embeddable Fibonacci export."""

from __future__ import annotations

from io import StringIO
from typing import TYPE_CHECKING

from fibwasm.emitter import WATEmitter

if TYPE_CHECKING:
    from typing import TextIO

EXPORT_NAME = "fib_dispatch"

# (a, b, count) -> b after count steps; i64.add wraps modulo 2**64
FIB_STEP_CODE = """\
(func $fib_step (param $a i64) (param $b i64) (param $count i64) (result i64)
  (local $next i64)
  (block $done
    (loop $step
      (br_if $done (i64.eqz (local.get $count)))
      (local.set $next (i64.add (local.get $a) (local.get $b)))
      (local.set $a (local.get $b))
      (local.set $b (local.get $next))
      (local.set $count (i64.sub (local.get $count) (i64.const 1)))
      (br $step)
    )
  )
  (local.get $b)
)
"""


def compile_fib_module(export_name: str = EXPORT_NAME) -> str:
    """Build the WAT module exporting the Fibonacci dispatcher.

    Args:
        export_name: Name the dispatcher is exported under.

    Returns:
        WAT (WebAssembly Text) code.
    """
    output = StringIO()
    emit_module(output, export_name)
    return output.getvalue()


def emit_module(stream: TextIO, export_name: str = EXPORT_NAME) -> None:
    """Write the module to ``stream``.

    The step function stays internal; the dispatcher is the only export.
    """
    emitter = WATEmitter(stream)

    emitter.line("(module")
    emitter.indent_inc()

    emitter.comment("fib_step: advance (a, b) by count steps")
    emitter.text(FIB_STEP_CODE)
    emitter.line("")
    emit_dispatch(emitter, export_name)

    emitter.indent_dec()
    emitter.line(")")


def emit_dispatch(emitter: WATEmitter, export_name: str) -> None:
    """Emit the exported dispatcher function."""
    emitter.comment("fib_dispatch: indices 0 and 1 are their own value")
    emitter.line(
        f'(func $fib_dispatch (export "{export_name}") '
        "(param $fib_index i64) (result i64)"
    )
    emitter.indent_inc()

    emitter.line("(if (i64.lt_u (local.get $fib_index) (i64.const 2))")
    emitter.indent_inc()
    emitter.line("(then (return (local.get $fib_index)))")
    emitter.indent_dec()
    emitter.line(")")

    emitter.line("(call $fib_step")
    emitter.indent_inc()
    emitter.emit_i64(0)
    emitter.emit_i64(1)
    emitter.line("(i64.sub (local.get $fib_index) (i64.const 1))")
    emitter.indent_dec()
    emitter.line(")")

    emitter.indent_dec()
    emitter.line(")")
