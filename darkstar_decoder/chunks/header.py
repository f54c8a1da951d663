"""Chunk header and four character tags."""
from dataclasses import dataclass
import struct

from .stream import ByteStream

ALIGN_DWORD = 0x80000000


def fourcc(name: bytes) -> int:
    """Convert a tag such as ``b'PERS'`` to its little-endian integer value."""
    if len(name) > 4:
        raise ValueError(f"Tag too long: {name!r}")
    return struct.unpack('<I', name.ljust(4, b'\x00'))[0]


def tag_name(tag: int) -> str:
    """Readable form of a tag, for log messages."""
    raw = struct.pack('<I', tag & 0xFFFFFFFF).rstrip(b'\x00')
    if raw and all(32 <= c < 127 for c in raw):
        return raw.decode('ascii')
    return f'0x{tag:08x}'


# Framing
TAG_PERS = fourcc(b'PERS')

# Palettes
TAG_RIFF = fourcc(b'RIFF')
TAG_PAL = fourcc(b'PAL ')
TAG_PPAL = fourcc(b'PPAL')
TAG_PL98 = fourcc(b'PL98')
TAG_HEAD = fourcc(b'head')
TAG_INFO = fourcc(b'info')
TAG_DATA = fourcc(b'data')

# Bitmaps
TAG_BM = fourcc(b'BM')
TAG_PBMP = fourcc(b'PBMP')
TAG_PIDX = fourcc(b'piDX')
TAG_DETL = fourcc(b'DETL')

# Terrain
TAG_GBLK = fourcc(b'GBLK')
TAG_GFIL = fourcc(b'GFIL')


@dataclass(frozen=True)
class ChunkHeader:
    """8 byte chunk header: tag and raw payload size.

    Bit 31 of the raw size requests dword alignment of the payload, otherwise
    payloads are padded to an even size.
    """
    tag: int
    raw_size: int

    SIZE = 8

    @classmethod
    def read(cls, stream: ByteStream) -> 'ChunkHeader':
        tag, raw_size = stream.read_array('I', 2)
        return cls(tag, raw_size)

    @classmethod
    def peek(cls, stream: ByteStream) -> 'ChunkHeader':
        start = stream.position
        header = cls.read(stream)
        stream.set_position(start)
        return header

    @property
    def dword_aligned(self) -> bool:
        return bool(self.raw_size & ALIGN_DWORD)

    @property
    def size(self) -> int:
        """Payload size without the alignment flag."""
        return self.raw_size & ~ALIGN_DWORD

    def padded_size(self) -> int:
        if self.raw_size & ALIGN_DWORD:
            return ((self.raw_size & ~ALIGN_DWORD) + 3) & ~3
        return (self.raw_size + 1) & ~1

    def seek_to_end(self, stream: ByteStream, start_pos: int) -> None:
        """Move to the end of this chunk given the offset of its header."""
        stream.set_position(start_pos + self.padded_size() + self.SIZE)

    def is_tag(self, tag: int) -> bool:
        return self.tag == tag

    def __str__(self) -> str:
        return f"{tag_name(self.tag)}[{self.size}]"
