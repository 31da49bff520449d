"""Fibonacci over unsigned 64-bit integers.

Values behave like C ``unsigned long long``: every addition wraps modulo
2**64 and no overflow is ever reported.
"""

from __future__ import annotations

U64_BITS = 64
U64_MASK = (1 << U64_BITS) - 1


def to_u64(value: int) -> int:
    """Reduce an integer to the unsigned 64-bit range."""
    return value & U64_MASK


def fib_step(a: int, b: int, count: int) -> int:
    """Advance the pair ``(a, b)`` by ``count`` Fibonacci steps.

    Each step replaces ``(a, b, count)`` with ``(b, a + b, count - 1)``;
    when ``count`` reaches zero, ``b`` is the result.

    Args:
        a: The value preceding ``b`` in the sequence.
        b: The current Fibonacci value.
        count: Number of steps left to take.

    Returns:
        ``b`` after ``count`` steps, modulo 2**64.
    """
    a = to_u64(a)
    b = to_u64(b)
    count = to_u64(count)
    while count:
        a, b = b, (a + b) & U64_MASK
        count -= 1
    return b


def fib_dispatch(fib_index: int) -> int:
    """Return the Fibonacci number at ``fib_index`` (``fib(0) == 0``).

    Indices past 93 no longer fit in 64 bits; their result is the true
    value modulo 2**64.
    """
    fib_index = to_u64(fib_index)
    if fib_index < 2:
        return fib_index
    return fib_step(0, 1, fib_index - 1)
