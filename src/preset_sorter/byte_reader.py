"""Bounds-checked cursor over an in-memory byte buffer.

Every header walker in :mod:`preset_sorter.metadata_readers` reads
through :class:`ByteCursor` so that truncated or corrupt headers raise
:class:`TruncatedDataError` instead of returning garbage.
"""

from __future__ import annotations

import struct
from typing import Tuple


class TruncatedDataError(ValueError):
    """Raised when a read would run past the end of the buffer."""


def syncsafe_int(data: bytes) -> int:
    """Decode a 7-bits-per-byte ID3 syncsafe integer."""
    value = 0
    for byte in data:
        value = (value << 7) | (byte & 0x7F)
    return value


class ByteCursor:
    def __init__(self, data: bytes, position: int = 0) -> None:
        self.data = data
        self.position = position

    def __len__(self) -> int:
        return len(self.data)

    @property
    def remaining(self) -> int:
        return max(0, len(self.data) - self.position)

    def seek(self, position: int) -> None:
        if position < 0 or position > len(self.data):
            raise TruncatedDataError(f"seek to {position} outside buffer of {len(self.data)} bytes")
        self.position = position

    def skip(self, count: int) -> None:
        self.seek(self.position + count)

    def read_bytes(self, count: int) -> bytes:
        if count < 0 or self.position + count > len(self.data):
            raise TruncatedDataError(
                f"read of {count} bytes at {self.position} exceeds buffer of {len(self.data)} bytes"
            )
        chunk = self.data[self.position : self.position + count]
        self.position += count
        return chunk

    def _unpack(self, fmt: str) -> int:
        size = struct.calcsize(fmt)
        return struct.unpack(fmt, self.read_bytes(size))[0]

    def read_u8(self) -> int:
        return self._unpack(">B")

    def read_u16_le(self) -> int:
        return self._unpack("<H")

    def read_u16_be(self) -> int:
        return self._unpack(">H")

    def read_i16_be(self) -> int:
        return self._unpack(">h")

    def read_u24_be(self) -> int:
        high, low = struct.unpack(">BH", self.read_bytes(3))
        return (high << 16) | low

    def read_u32_le(self) -> int:
        return self._unpack("<I")

    def read_u32_be(self) -> int:
        return self._unpack(">I")

    def read_syncsafe(self, count: int = 4) -> int:
        return syncsafe_int(self.read_bytes(count))

    def read_fourcc(self) -> str:
        return self.read_bytes(4).decode("latin-1")

    def read_chunk_header(self, big_endian: bool = False) -> Tuple[str, int]:
        """Read a RIFF/IFF style ``(id, size)`` pair."""
        chunk_id = self.read_fourcc()
        size = self.read_u32_be() if big_endian else self.read_u32_le()
        return chunk_id, size
