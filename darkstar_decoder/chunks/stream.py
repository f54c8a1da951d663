"""Bounds checked little-endian byte stream."""
import logging
import struct
from typing import Any, Dict, List, Tuple, Union

from .base import MalformedChunkError, TruncatedStreamError

logger = logging.getLogger(__name__)

_struct_cache: Dict[str, struct.Struct] = {}


def _get_struct(fmt: str) -> struct.Struct:
    packer = _struct_cache.get(fmt)
    if packer is None:
        packer = struct.Struct('<' + fmt)
        _struct_cache[fmt] = packer
    return packer


class ByteStream:
    """Cursor over an immutable (or fixed size writable) byte buffer.

    All multi-byte values are little-endian. Reads that would run past the end
    of the buffer raise TruncatedStreamError and leave the position untouched.
    """

    def __init__(self, data: Union[bytes, bytearray, memoryview], writable: bool = False):
        if writable and not isinstance(data, bytearray):
            raise TypeError("Writable streams require a bytearray")
        self._data = data
        self._view = memoryview(data)
        self._pos = 0
        self.writable = writable

    def __len__(self) -> int:
        return len(self._data)

    @property
    def size(self) -> int:
        return len(self._data)

    @property
    def position(self) -> int:
        return self._pos

    def set_position(self, pos: int) -> None:
        """Move the cursor. Positions beyond the end of the buffer are ignored."""
        if pos < 0 or pos > len(self._data):
            logger.debug(f"Ignoring seek to {pos} (stream size {len(self._data)})")
            return
        self._pos = pos

    def skip(self, count: int) -> None:
        """Advance the cursor, raising if that would leave the buffer."""
        self._check(count)
        self._pos += count

    def is_eof(self) -> bool:
        return self._pos >= len(self._data)

    def remaining(self) -> int:
        return max(0, len(self._data) - self._pos)

    def _check(self, count: int) -> None:
        if count < 0:
            raise MalformedChunkError(f"Negative read length {count} at offset {self._pos}")
        if self._pos + count > len(self._data):
            raise TruncatedStreamError(self._pos, count, len(self._data))

    # Reads

    def read_bytes(self, count: int) -> bytes:
        self._check(count)
        result = bytes(self._view[self._pos:self._pos + count])
        self._pos += count
        return result

    def read_scalar(self, fmt: str) -> Any:
        """Read one value described by a ``struct`` format character."""
        packer = _get_struct(fmt)
        self._check(packer.size)
        value = packer.unpack_from(self._data, self._pos)[0]
        self._pos += packer.size
        return value

    def read_array(self, fmt: str, count: int) -> Tuple:
        """Read ``count`` consecutive values of one ``struct`` format character."""
        if count < 0:
            raise MalformedChunkError(f"Negative element count {count} at offset {self._pos}")
        if count == 0:
            return ()
        packer = _get_struct(f'{count}{fmt}')
        self._check(packer.size)
        values = packer.unpack_from(self._data, self._pos)
        self._pos += packer.size
        return values

    def read_u8(self) -> int:
        return self.read_scalar('B')

    def read_u16(self) -> int:
        return self.read_scalar('H')

    def read_i16(self) -> int:
        return self.read_scalar('h')

    def read_u32(self) -> int:
        return self.read_scalar('I')

    def read_i32(self) -> int:
        return self.read_scalar('i')

    def read_f32(self) -> float:
        return self.read_scalar('f')

    def read_vec2(self) -> Tuple[float, float]:
        return self.read_array('f', 2)

    def read_vec3(self) -> Tuple[float, float, float]:
        return self.read_array('f', 3)

    def read_sstring(self) -> str:
        """Read a u16 length prefixed string padded to an even byte count.

        The string ends at the first NUL inside the consumed bytes.
        """
        start = self._pos
        size = self.read_u16()
        real_size = (size + 1) & ~1
        try:
            raw = self.read_bytes(real_size)
        except TruncatedStreamError:
            self._pos = start
            raise
        return raw.split(b'\x00', 1)[0].decode('utf-8', 'replace')

    def read_sstring32(self) -> str:
        """Read a u32 length prefixed string (no padding)."""
        start = self._pos
        size = self.read_u32()
        try:
            raw = self.read_bytes(size)
        except TruncatedStreamError:
            self._pos = start
            raise
        return raw.split(b'\x00', 1)[0].decode('utf-8', 'replace')

    def read_fixed_string(self, size: int) -> str:
        """Read a NUL padded string stored in a fixed width field."""
        return self.read_bytes(size).split(b'\x00', 1)[0].decode('utf-8', 'replace')

    def read_struct(self, layout) -> Any:
        """Parse one fixed size ``construct`` record."""
        return layout.parse(self.read_bytes(layout.sizeof()))

    def read_struct_array(self, layout, count: int) -> List[Any]:
        """Parse ``count`` consecutive fixed size ``construct`` records."""
        size = layout.sizeof()
        raw = self.read_bytes(size * count)
        return [layout.parse(raw[i * size:(i + 1) * size]) for i in range(count)]

    # Writes

    def _check_write(self, count: int) -> None:
        if not self.writable:
            raise TypeError("Stream is read-only")
        self._check(count)

    def write_bytes(self, data: bytes) -> None:
        self._check_write(len(data))
        self._data[self._pos:self._pos + len(data)] = data
        self._pos += len(data)

    def write_scalar(self, fmt: str, value: Any) -> None:
        packer = _get_struct(fmt)
        self._check_write(packer.size)
        packer.pack_into(self._data, self._pos, value)
        self._pos += packer.size

    def write_array(self, fmt: str, values) -> None:
        values = list(values)
        if not values:
            return
        packer = _get_struct(f'{len(values)}{fmt}')
        self._check_write(packer.size)
        packer.pack_into(self._data, self._pos, *values)
        self._pos += packer.size

    def write_sstring(self, text: str) -> None:
        """Write a u16 length prefixed string, padded with NUL to an even size."""
        raw = text.encode('utf-8')
        real_size = (len(raw) + 1) & ~1
        self._check_write(2 + real_size)
        self.write_scalar('H', len(raw))
        self.write_bytes(raw.ljust(real_size, b'\x00'))
