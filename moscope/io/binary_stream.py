"""
Bounds-checked binary stream reader.

This module provides a BinaryStream class that reads fixed-width integers,
fixed-size names and null-terminated strings from an in-memory buffer in a
selectable byte order. Every read is checked against the end of the stream
and raises TruncatedFile instead of returning short data.
"""

import struct
from typing import Union, Optional

from ..errors import TruncatedFile

Buffer = Union[bytes, bytearray, memoryview]


class BinaryStream:
    """
    Binary stream reader over a read-only buffer.

    The stream never copies the buffer it wraps. Sub-streams created with
    substream() share the same memory and report positions relative to
    their own start, while base_offset keeps track of where they sit in the
    outermost buffer for diagnostics.

    Attributes:
        byte_order: struct byte order prefix ('<' or '>')
        is_32bit: Whether pointer-sized reads are 4 bytes wide
        base_offset: Offset of this stream within the top-level buffer
    """

    def __init__(self, data: Buffer, byte_order: str = '<', base_offset: int = 0):
        """
        Initialize a BinaryStream.

        Args:
            data: Raw bytes or a memoryview over them
            byte_order: '<' for little endian, '>' for big endian
            base_offset: Offset of data inside the enclosing buffer
        """
        if byte_order not in ('<', '>'):
            raise ValueError(f"Invalid byte order: {byte_order!r}")

        self._data = data if isinstance(data, memoryview) else memoryview(data)
        self._position = 0
        self.byte_order = byte_order
        self.is_32bit = False
        self.base_offset = base_offset

    # ========== Position and Length ==========

    @property
    def position(self) -> int:
        """Get current stream position."""
        return self._position

    @position.setter
    def position(self, value: int) -> None:
        """Set stream position."""
        if value < 0 or value > len(self._data):
            raise TruncatedFile(
                f"Seek to 0x{value:x} outside stream of 0x{len(self._data):x} bytes",
                self.base_offset + max(value, 0)
            )
        self._position = value

    @property
    def length(self) -> int:
        """Get stream length."""
        return len(self._data)

    @property
    def remaining(self) -> int:
        """Number of bytes left after the current position."""
        return len(self._data) - self._position

    @property
    def absolute_position(self) -> int:
        """Current position within the top-level buffer."""
        return self.base_offset + self._position

    # ========== Primitive Readers ==========

    def _require(self, count: int) -> None:
        if count < 0 or self._position + count > len(self._data):
            raise TruncatedFile(
                f"Read of {count} bytes past end of {len(self._data)}-byte stream",
                self.absolute_position
            )

    def _unpack(self, fmt: str) -> int:
        size = struct.calcsize(fmt)
        self._require(size)
        value = struct.unpack_from(self.byte_order + fmt, self._data, self._position)[0]
        self._position += size
        return value

    def read_bytes(self, count: int) -> bytes:
        """Read raw bytes."""
        self._require(count)
        value = bytes(self._data[self._position:self._position + count])
        self._position += count
        return value

    def read_byte(self) -> int:
        """Read an unsigned byte."""
        return self._unpack('B')

    def read_uint16(self) -> int:
        """Read an unsigned 16-bit integer."""
        return self._unpack('H')

    def read_int32(self) -> int:
        """Read a signed 32-bit integer."""
        return self._unpack('i')

    def read_uint32(self) -> int:
        """Read an unsigned 32-bit integer."""
        return self._unpack('I')

    def read_uint64(self) -> int:
        """Read an unsigned 64-bit integer."""
        return self._unpack('Q')

    def read_uint_ptr(self) -> int:
        """Read a pointer-sized unsigned integer."""
        return self.read_uint32() if self.is_32bit else self.read_uint64()

    # ========== String Readers ==========

    def read_fixed_string(self, length: int) -> str:
        """Read a fixed-size, NUL padded name such as segname or sectname."""
        raw = self.read_bytes(length)
        end = raw.find(b'\x00')
        if end != -1:
            raw = raw[:end]
        return raw.decode('utf-8', errors='replace')

    def read_string_to_null(self, addr: Optional[int] = None, limit: Optional[int] = None) -> Optional[str]:
        """
        Read a null-terminated UTF-8 string.

        Args:
            addr: Optional position to seek to before reading
            limit: Optional position the string must not extend past

        Returns:
            The decoded string, or None if no terminator was found
            before the limit (the stream is left at the limit)
        """
        if addr is not None:
            self.position = addr

        end_limit = len(self._data) if limit is None else min(limit, len(self._data))
        start = self._position
        end = start
        while end < end_limit and self._data[end] != 0:
            end += 1

        value = bytes(self._data[start:end]).decode('utf-8', errors='replace')
        if end >= end_limit:
            self._position = end_limit
            return None
        self._position = end + 1
        return value

    # ========== Slicing ==========

    def substream(self, offset: int, size: int) -> 'BinaryStream':
        """Create a stream over [offset, offset + size) sharing this buffer."""
        if offset < 0 or size < 0 or offset + size > len(self._data):
            raise TruncatedFile(
                f"Range 0x{offset:x}+0x{size:x} exceeds stream of 0x{len(self._data):x} bytes",
                self.base_offset + offset
            )
        sub = BinaryStream(self._data[offset:offset + size], self.byte_order, self.base_offset + offset)
        sub.is_32bit = self.is_32bit
        return sub

    def get_data(self) -> memoryview:
        """Get the underlying data."""
        return self._data
