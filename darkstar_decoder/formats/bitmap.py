"""Bitmap decoding (Microsoft BMP and chunked PBMP)."""
from dataclasses import dataclass
from enum import IntFlag
import logging
from typing import List, Optional, Tuple

from construct import Int16ul, Int32sl, Int32ul, Struct
import numpy as np
from PIL import Image

from ..chunks.base import MalformedChunkError, PersistObject, UnsupportedVersionError
from ..chunks.header import (
    ChunkHeader, TAG_BM, TAG_DATA, TAG_DETL, TAG_HEAD, TAG_PBMP, TAG_PIDX, TAG_RIFF, tag_name,
)
from ..chunks.stream import ByteStream
from .palette import NUM_COLORS, Palette, PaletteEntry, PaletteType

logger = logging.getLogger(__name__)

MAX_MIPS = 9
PALETTE_INDEX_MARKER = 0xF5F7


class BitmapFlags(IntFlag):
    TRANSPARENT = 0x1
    FUZZY = 0x2
    TRANSLUCENT = 0x4
    OWN_MEM = 0x8
    ADDITIVE = 0x10
    SUBTRACTIVE = 0x20
    ALPHA8 = 0x40


# Windows BITMAPFILEHEADER (2 byte packed)
BitmapFileHeader = Struct(
    "type" / Int16ul,
    "size" / Int32ul,
    "reserved1" / Int16ul,
    "reserved2" / Int16ul,
    "off_bits" / Int32ul,
)

# Windows BITMAPINFOHEADER
BitmapInfoHeader = Struct(
    "size" / Int32ul,
    "width" / Int32sl,
    "height" / Int32sl,
    "planes" / Int16ul,
    "bit_count" / Int16ul,
    "compression" / Int32ul,
    "size_image" / Int32ul,
    "x_pels_per_meter" / Int32sl,
    "y_pels_per_meter" / Int32sl,
    "clr_used" / Int32ul,
    "clr_important" / Int32ul,
)


def get_stride(width: int, bit_depth: int) -> int:
    """Row size in bytes, padded to a multiple of 4."""
    return 4 * ((width * bit_depth + 31) // 32)


@dataclass
class Bitmap(PersistObject):
    """Decoded bitmap with all mip levels in one pixel buffer."""
    width: int = 0
    height: int = 0
    bit_depth: int = 8
    flags: int = 0
    stride: int = 0
    mip_levels: int = 1
    palette_index: int = -1
    pixels: bytes = b''
    palette: Optional[Palette] = None
    bgr: bool = False
    source_format: str = ''

    @classmethod
    def read(cls, stream: ByteStream, version: int = 0, registry=None) -> 'Bitmap':
        start = stream.position
        header = ChunkHeader.read(stream)

        if (header.tag & 0xFFFF) == TAG_BM:
            stream.set_position(start)
            return cls.read_ms_bmp(stream)
        elif header.tag != TAG_PBMP:
            raise MalformedChunkError(f"Not a bitmap chunk: {tag_name(header.tag)}")

        return cls._read_pbmp(stream)

    @classmethod
    def read_ms_bmp(cls, stream: ByteStream) -> 'Bitmap':
        """Read a Windows BMP file. Rows are flipped to top-down order."""
        file_header = stream.read_struct(BitmapFileHeader)
        info = stream.read_struct(BitmapInfoHeader)
        if (file_header.type & 0xFFFF) != TAG_BM:
            raise MalformedChunkError(f"Bad BMP signature 0x{file_header.type:04x}")
        if info.width < 0:
            raise MalformedChunkError(f"Negative BMP width {info.width}")

        bitmap = cls(
            width=info.width,
            height=abs(info.height),
            bit_depth=info.bit_count,
            stride=get_stride(info.width, info.bit_count),
            bgr=True,
            source_format='BMP',
        )
        if file_header.reserved1 == PALETTE_INDEX_MARKER and file_header.reserved2 != 0xFFFF:
            bitmap.palette_index = file_header.reserved2

        if info.bit_count == 8:
            cols_to_read = min(info.clr_used, NUM_COLORS)
            colors = stream.read_array('I', cols_to_read) + (0,) * (NUM_COLORS - cols_to_read)
            stream.skip((info.clr_used - cols_to_read) * 4)
            bitmap.palette = Palette(
                entries=[PaletteEntry(colors, type=PaletteType.NOREMAP)], source_format='BMP'
            )

        pixels = bytearray(bitmap.stride * bitmap.height)
        # Positive heights are stored bottom-up
        for i in range(max(info.height, 0)):
            row = bitmap.height - i - 1
            pixels[row * bitmap.stride:(row + 1) * bitmap.stride] = stream.read_bytes(bitmap.stride)
        if info.height < 0:
            pixels[:] = stream.read_bytes(len(pixels))
        bitmap.pixels = bytes(pixels)

        logger.debug(f"BMP {bitmap.width}x{bitmap.height}x{bitmap.bit_depth}")
        return bitmap

    @classmethod
    def _read_pbmp(cls, stream: ByteStream) -> 'Bitmap':
        bitmap = cls(source_format='PBMP')
        expected_chunks = 0xFFFFFFFF - 1

        while not stream.is_eof() and expected_chunks != 0:
            start_pos = stream.position
            block = ChunkHeader.read(stream)
            expected_chunks -= 1

            if block.tag == TAG_HEAD:
                pbmp_version, bitmap.width, bitmap.height, bitmap.bit_depth, bitmap.flags = \
                    stream.read_array('I', 5)
                expected_chunks = pbmp_version & 0xFFFFFF
                if pbmp_version >> 24 != 0:
                    raise UnsupportedVersionError('PBMP', pbmp_version >> 24)
            elif block.tag == TAG_DETL:
                bitmap.mip_levels = stream.read_u32()
            elif block.tag == TAG_PIDX:
                bitmap.palette_index = stream.read_i32()
            elif block.tag == TAG_DATA:
                bitmap.pixels = stream.read_bytes(block.size)
            elif block.tag == TAG_RIFF:
                stream.set_position(start_pos)
                bitmap.palette = Palette.read_ms_pal(stream)
            else:
                logger.debug(f"Skipping PBMP chunk {block}")
            block.seek_to_end(stream, start_pos)

        if not 1 <= bitmap.mip_levels <= MAX_MIPS:
            raise MalformedChunkError(f"Invalid mip level count {bitmap.mip_levels}")
        bitmap.stride = get_stride(bitmap.width, bitmap.bit_depth)

        end = sum(length for _, length in bitmap.mip_ranges())
        if end > len(bitmap.pixels):
            raise MalformedChunkError(
                f"Pixel data holds {len(bitmap.pixels)} bytes, mips need {end}"
            )

        logger.debug(
            f"PBMP {bitmap.width}x{bitmap.height}x{bitmap.bit_depth}, "
            f"{bitmap.mip_levels} mips, palette index {bitmap.palette_index}"
        )
        return bitmap

    def mip_ranges(self) -> List[Tuple[int, int]]:
        """(offset, length) of every mip level inside ``pixels``."""
        ranges = []
        offset = 0
        size = self.stride * self.height
        for _ in range(self.mip_levels):
            ranges.append((offset, size))
            offset += size
            size //= 4
        return ranges

    def mip_range(self, level: int) -> Tuple[int, int]:
        if not 0 <= level < self.mip_levels:
            raise IndexError(f"Mip level {level} out of range")
        return self.mip_ranges()[level]

    def mip(self, level: int = 0) -> np.ndarray:
        """Read-only byte view of one mip level."""
        offset, length = self.mip_range(level)
        return np.frombuffer(self.pixels, dtype=np.uint8, count=length, offset=offset)

    def to_image(self, palette: Optional[Palette] = None) -> Image.Image:
        """Convert the top mip level to a PIL image.

        Args:
            palette: Palette for 8-bit bitmaps; defaults to the embedded one

        Returns:
            RGBA image for 8 and 32-bit bitmaps, RGB for 24-bit
        """
        rows = self.mip(0).reshape(self.height, self.stride)

        if self.bit_depth == 8:
            embedded = palette is None
            palette = palette or self.palette
            if palette is None:
                raise ValueError("8-bit bitmap needs a palette")
            table = palette.to_rgba_table(self.palette_index)
            if embedded and self.bgr:
                table[:, [0, 2]] = table[:, [2, 0]]
            table[:, 3] = 255
            if self.flags & BitmapFlags.TRANSPARENT:
                table[0, 3] = 0
            rgba = table[rows[:, :self.width]]
            return Image.fromarray(np.ascontiguousarray(rgba))

        elif self.bit_depth in (24, 32):
            channels = self.bit_depth // 8
            pixels = rows[:, :self.width * channels].reshape(self.height, self.width, channels)
            if self.bgr:
                pixels = pixels[:, :, [2, 1, 0] + ([3] if channels == 4 else [])]
            return Image.fromarray(np.ascontiguousarray(pixels))

        raise ValueError(f"Unsupported bit depth {self.bit_depth}")
