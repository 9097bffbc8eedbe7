"""
Bounds-checked sequential reader over an in-memory byte buffer.

Foundation for the binary (.puz) decoder, but knows nothing about any
puzzle format: it is pure cursor arithmetic plus ``struct`` decoding.

Every read that would cross the end of the buffer, and every seek outside
``[0, length]``, raises ``BinaryBoundsError`` with the offending offset and
requested size in its context. No ``IndexError`` or ``struct.error`` ever
leaves this module.
"""

from __future__ import annotations

import struct
from typing import Any

from xword_ingest.exceptions import BinaryBoundsError, ErrorContext

_U16LE = struct.Struct("<H")


class BinaryReader:
    """Sequential reader with a monotonic cursor.

    Args:
        data: ``bytes``, ``bytearray``, ``memoryview`` or any object
            supporting the buffer protocol. The content is copied once so
            later mutation of the caller's buffer cannot affect a parse.
    """

    def __init__(self, data: Any) -> None:
        if isinstance(data, bytes):
            self._buffer = data
        else:
            self._buffer = memoryview(data).tobytes()
        self._offset = 0

    # ------------------------------------------------------------------
    # Cursor state
    # ------------------------------------------------------------------

    @property
    def position(self) -> int:
        return self._offset

    @property
    def length(self) -> int:
        return len(self._buffer)

    @property
    def remaining(self) -> int:
        return len(self._buffer) - self._offset

    @property
    def has_more(self) -> bool:
        return self._offset < len(self._buffer)

    @property
    def buffer(self) -> bytes:
        return self._buffer

    def seek(self, position: int) -> None:
        """Move the cursor to an absolute position in ``[0, length]``."""
        if position < 0 or position > len(self._buffer):
            raise BinaryBoundsError(
                f"Cannot seek to position {position}: out of bounds "
                f"(buffer length: {len(self._buffer)})",
                context=ErrorContext(offset=position, details={"size": 0}),
            )
        self._offset = position

    # ------------------------------------------------------------------
    # Typed reads
    # ------------------------------------------------------------------

    def _require(self, size: int, what: str) -> None:
        if size < 0 or self._offset + size > len(self._buffer):
            raise BinaryBoundsError(
                f"Cannot read {what} at offset {self._offset}: buffer too short "
                f"(length: {len(self._buffer)}, requested: {size})",
                context=ErrorContext(offset=self._offset, details={"size": size}),
            )

    def read_u8(self) -> int:
        self._require(1, "byte")
        value = self._buffer[self._offset]
        self._offset += 1
        return value

    def peek_u8(self) -> int:
        """Return the next byte without advancing."""
        self._require(1, "byte")
        return self._buffer[self._offset]

    def read_u16le(self) -> int:
        self._require(2, "16-bit value")
        (value,) = _U16LE.unpack_from(self._buffer, self._offset)
        self._offset += 2
        return value

    def read_bytes(self, length: int) -> bytes:
        self._require(length, f"{length} bytes")
        value = self._buffer[self._offset:self._offset + length]
        self._offset += length
        return value

    def read_fixed_string(
        self,
        length: int,
        trim_at_null: bool = True,
        encoding: str = "latin-1",
    ) -> str:
        """Read ``length`` bytes as text, optionally cut at the first NUL."""
        raw = self.read_bytes(length)
        if trim_at_null:
            end = raw.find(b"\x00")
            if end != -1:
                raw = raw[:end]
        return raw.decode(encoding, errors="replace")

    def read_null_terminated_bytes(self) -> bytes:
        """Read up to (and consume) the next NUL byte; the NUL is not returned."""
        start = self._offset
        end = self._buffer.find(b"\x00", start)
        if end == -1:
            raise BinaryBoundsError(
                f"Cannot read null-terminated string at offset {start}: "
                "buffer ended without null terminator",
                context=ErrorContext(offset=start, details={"size": len(self._buffer) - start}),
            )
        self._offset = end + 1
        return self._buffer[start:end]

    def read_null_terminated_string(self, encoding: str = "latin-1") -> str:
        return self.read_null_terminated_bytes().decode(encoding, errors="replace")

    def skip_while(self, byte: int) -> int:
        """Advance past a run of ``byte`` values; return how many were skipped."""
        start = self._offset
        while self.has_more and self.peek_u8() == byte:
            self._offset += 1
        return self._offset - start

    def find(self, needle: bytes, start: int = 0) -> int:
        """Locate ``needle`` in the whole buffer without moving the cursor."""
        return self._buffer.find(needle, start)
