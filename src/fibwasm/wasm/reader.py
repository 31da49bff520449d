"""Cursor over a byte buffer with the WASM binary primitives.

Integers are LEB128-encoded; floats are little-endian IEEE 754.
"""

from __future__ import annotations

import struct

from fibwasm.wasm.errors import EndOfData, IntSizeViolation, UnexpectedData


class ByteReader:
    """Sequential reader for WASM binary data."""

    def __init__(self, content: bytes, offset: int = 0) -> None:
        self.content = content
        self.offset = offset

    def at_end(self) -> bool:
        return self.offset >= len(self.content)

    def remaining(self) -> int:
        return len(self.content) - self.offset

    def peek_byte(self) -> int:
        if self.at_end():
            raise EndOfData
        return self.content[self.offset]

    def read_byte(self) -> int:
        value = self.peek_byte()
        self.offset += 1
        return value

    def read_bytes(self, count: int) -> bytes:
        if count > self.remaining():
            raise EndOfData
        data = self.content[self.offset : self.offset + count]
        self.offset += count
        return data

    def read_unsigned(self, bits: int) -> int:
        """Read an unsigned LEB128 integer of at most ``bits`` bits."""
        max_bytes = -(-bits // 7)
        result = 0
        shift = 0
        for _ in range(max_bytes):
            byte = self.read_byte()
            result |= (byte & 0x7F) << shift
            shift += 7
            if not byte & 0x80:
                break
        else:
            raise IntSizeViolation
        if result >> bits:
            raise IntSizeViolation
        return result

    def read_signed(self, bits: int) -> int:
        """Read a signed LEB128 integer of at most ``bits`` bits."""
        max_bytes = -(-bits // 7)
        result = 0
        shift = 0
        for _ in range(max_bytes):
            byte = self.read_byte()
            result |= (byte & 0x7F) << shift
            shift += 7
            if not byte & 0x80:
                break
        else:
            raise IntSizeViolation
        if byte & 0x40:
            result -= 1 << shift
        if not -(1 << (bits - 1)) <= result < 1 << (bits - 1):
            raise IntSizeViolation
        return result

    def read_u32(self) -> int:
        return self.read_unsigned(32)

    def read_s32(self) -> int:
        return self.read_signed(32)

    def read_s64(self) -> int:
        return self.read_signed(64)

    def read_f32(self) -> float:
        return struct.unpack("<f", self.read_bytes(4))[0]

    def read_f64(self) -> float:
        return struct.unpack("<d", self.read_bytes(8))[0]

    def read_name(self) -> str:
        """Read a length-prefixed UTF-8 name."""
        data = self.read_bytes(self.read_u32())
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UnexpectedData(f"Malformed UTF-8 name: {e}") from e
