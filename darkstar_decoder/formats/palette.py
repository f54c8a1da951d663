"""Palette decoding (Microsoft RIFF PAL, PPAL and PL98 palette tables)."""
from dataclasses import dataclass, field
from enum import IntEnum
import logging
from typing import List, Optional, Tuple

import numpy as np

from ..chunks.base import MalformedChunkError, PersistObject, UnsupportedVersionError
from ..chunks.header import (
    ChunkHeader, TAG_DATA, TAG_HEAD, TAG_INFO, TAG_PAL, TAG_PL98, TAG_PPAL, TAG_RIFF, tag_name,
)
from ..chunks.stream import ByteStream

logger = logging.getLogger(__name__)

NUM_COLORS = 256

# colIdx plus four float channels
BASE_LOOKUP_SIZE = 256 + (4 * (256 * 4))


class PaletteType(IntEnum):
    NOREMAP = 0
    SHADEHAZE = 1
    TRANSLUCENT = 2
    COLORQUANT = 3
    ALPHAQUANT = 4
    ADDITIVEQUANT = 5
    ADDITIVE = 6
    SUBTRACTIVEQUANT = 7
    SUBTRACTIVE = 8


TRANSLUCENT_TYPES = (PaletteType.TRANSLUCENT, PaletteType.ADDITIVE, PaletteType.SUBTRACTIVE)
REMAP_TYPES = (PaletteType.SHADEHAZE,) + TRANSLUCENT_TYPES
KNOWN_TYPES = frozenset(int(t) for t in PaletteType)


@dataclass(frozen=True)
class RemapView:
    """Byte range inside a palette's remap blob."""
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass
class PaletteEntry:
    """One 256 colour palette and its remap tables.

    Colours are stored as ``r | g << 8 | b << 16 | flags << 24``.
    """
    colors: Tuple[int, ...]
    index: int = -1
    type: int = PaletteType.NOREMAP
    shade_map: Optional[RemapView] = None
    haze_map: Optional[RemapView] = None
    trans_map: Optional[RemapView] = None
    quant_map: Optional[RemapView] = None
    col_idx: Optional[RemapView] = None
    col_r: Optional[RemapView] = None
    col_g: Optional[RemapView] = None
    col_b: Optional[RemapView] = None
    col_a: Optional[RemapView] = None

    def rgba(self, color_index: int) -> Tuple[int, int, int, int]:
        value = self.colors[color_index]
        return value & 0xFF, (value >> 8) & 0xFF, (value >> 16) & 0xFF, (value >> 24) & 0xFF


@dataclass
class Palette(PersistObject):
    """Decoded palette table."""
    entries: List[PaletteEntry] = field(default_factory=list)
    shade_shift: int = 0
    shade_levels: int = 1
    haze_levels: int = 0
    haze_color: int = 0
    allowed_matches: bytes = b''
    remap_data: bytes = b''
    color_weights: Optional[Tuple[float, ...]] = None
    weight_start: int = 0
    weight_end: int = 0
    source_format: str = ''

    @classmethod
    def read(cls, stream: ByteStream, version: int = 0, registry=None) -> 'Palette':
        start = stream.position
        header = ChunkHeader.read(stream)

        if header.tag == TAG_RIFF:
            stream.set_position(start)
            return cls.read_ms_pal(stream)
        elif header.tag == TAG_PPAL:
            return cls._read_ppal(stream)
        elif header.tag == TAG_PL98:
            return cls._read_pl98(stream, header)

        raise MalformedChunkError(f"Not a palette chunk: {tag_name(header.tag)}")

    @classmethod
    def read_ms_pal(cls, stream: ByteStream) -> 'Palette':
        """Read a Microsoft RIFF palette starting at its RIFF header."""
        header = ChunkHeader.read(stream)
        if header.tag != TAG_RIFF:
            raise MalformedChunkError(f"Expected RIFF, found {tag_name(header.tag)}")
        header = ChunkHeader.read(stream)
        if header.tag != TAG_PAL:
            raise MalformedChunkError(f"Expected PAL, found {tag_name(header.tag)}")

        num_colors = stream.read_u16()
        pal_version = stream.read_u16()
        cols_to_read = min(num_colors, NUM_COLORS)
        colors = stream.read_array('I', cols_to_read) + (0,) * (NUM_COLORS - cols_to_read)
        stream.skip((num_colors - cols_to_read) * 4)
        logger.debug(f"MS palette version 0x{pal_version:x} with {num_colors} colors")

        return cls(entries=[PaletteEntry(colors)], source_format='RIFF')

    @classmethod
    def _read_ppal(cls, stream: ByteStream) -> 'Palette':
        header = ChunkHeader.read(stream)
        if header.tag != TAG_HEAD:
            raise MalformedChunkError(f"PPAL missing head chunk, found {tag_name(header.tag)}")

        ppal_version = stream.read_u8()
        if ppal_version not in (3, 7):
            raise UnsupportedVersionError('PPAL', ppal_version)
        stream.read_u16()
        shade_shift = stream.read_u8()

        start_pos = stream.position
        header = ChunkHeader.read(stream)
        if header.tag == TAG_INFO:
            header.seek_to_end(stream, start_pos)
            header = ChunkHeader.read(stream)
        if header.tag != TAG_DATA:
            raise MalformedChunkError(f"PPAL missing data chunk, found {tag_name(header.tag)}")

        colors = stream.read_array('I', NUM_COLORS)
        return cls(
            entries=[PaletteEntry(colors, index=-1, type=PaletteType.NOREMAP)],
            shade_shift=shade_shift,
            shade_levels=1 << shade_shift,
            haze_levels=0,
            source_format='PPAL',
        )

    def calc_lookup_size(self, palette_type: int) -> int:
        """Number of remap blob bytes an entry of this type owns."""
        if palette_type == PaletteType.SHADEHAZE:
            return (256 * self.shade_levels * (self.haze_levels + 1)) + BASE_LOOKUP_SIZE
        elif palette_type in TRANSLUCENT_TYPES:
            return 65536 + BASE_LOOKUP_SIZE
        elif palette_type in KNOWN_TYPES:
            return 256 + BASE_LOOKUP_SIZE
        raise MalformedChunkError(f"Unknown palette type {palette_type}")

    @classmethod
    def _read_pl98(cls, stream: ByteStream, header: ChunkHeader) -> 'Palette':
        # The PL98 header size field holds the entry count
        count = header.raw_size
        shade_shift, haze_levels, haze_color = stream.read_array('i', 3)
        if not 0 <= shade_shift < 16 or haze_levels < 0:
            raise MalformedChunkError(
                f"Invalid PL98 shade shift {shade_shift} / haze levels {haze_levels}"
            )
        palette = cls(
            shade_shift=shade_shift,
            shade_levels=1 << shade_shift,
            haze_levels=haze_levels,
            haze_color=haze_color,
            allowed_matches=stream.read_bytes(32),
            source_format='PL98',
        )

        lookup_size = 0
        for _ in range(count):
            colors = stream.read_array('I', NUM_COLORS)
            index = stream.read_i32()
            palette_type = stream.read_u32()
            entry = PaletteEntry(colors, index=index, type=palette_type)
            lookup_size += palette.calc_lookup_size(palette_type)
            palette.entries.append(entry)

        palette.remap_data = stream.read_bytes(lookup_size)
        palette._assign_views()

        if stream.read_u8():
            palette.color_weights = stream.read_array('f', NUM_COLORS)
            palette.weight_start, palette.weight_end = stream.read_array('I', 2)
        stream.read_u32()

        logger.debug(
            f"PL98 palette: {count} entries, {palette.shade_levels} shade levels, "
            f"{palette.haze_levels} haze levels, {lookup_size} remap bytes"
        )
        return palette

    def _assign_views(self) -> None:
        """Lay out typed views over the remap blob.

        Remap tables of the remap-bearing entries come first, then their colour
        lookup tables, then the tables of the no-remap and quantised entries.
        """
        offset = 0

        def take(length: int) -> RemapView:
            nonlocal offset
            view = RemapView(offset, length)
            offset += length
            return view

        def take_base(entry: PaletteEntry) -> None:
            entry.col_idx = take(256)
            entry.col_r = take(256 * 4)
            entry.col_g = take(256 * 4)
            entry.col_b = take(256 * 4)
            entry.col_a = take(256 * 4)

        for entry in self.entries:
            if entry.type == PaletteType.SHADEHAZE:
                entry.haze_map = take(256 * self.shade_levels * self.haze_levels)
                entry.shade_map = take(256 * self.shade_levels)
            elif entry.type in TRANSLUCENT_TYPES:
                entry.trans_map = take(65536)

        for entry in self.entries:
            if entry.type in REMAP_TYPES:
                take_base(entry)

        for entry in self.entries:
            if entry.type not in REMAP_TYPES:
                entry.quant_map = take(256)
                take_base(entry)

        if offset != len(self.remap_data):
            raise MalformedChunkError(
                f"Remap layout covers {offset} bytes, blob holds {len(self.remap_data)}"
            )

    def remap_array(self, view: RemapView, dtype=np.uint8) -> np.ndarray:
        """Read-only numpy view of a remap table."""
        dtype = np.dtype(dtype).newbyteorder('<')
        return np.frombuffer(
            self.remap_data, dtype=dtype,
            count=view.length // dtype.itemsize, offset=view.offset,
        )

    def get_palette_by_index(self, index: int) -> PaletteEntry:
        """Entry with the given index, or the first entry if none matches."""
        for entry in self.entries:
            if entry.index == index:
                return entry
        if not self.entries:
            raise IndexError("Palette has no entries")
        return self.entries[0]

    def lookup_rgb(self, color_index: int, palette_index: int = -1) -> Tuple[int, int, int]:
        return self.get_palette_by_index(palette_index).rgba(color_index)[:3]

    def lookup_rgba(self, color_index: int, palette_index: int = -1) -> Tuple[int, int, int, int]:
        return self.get_palette_by_index(palette_index).rgba(color_index)

    def to_rgba_table(self, palette_index: int = -1) -> np.ndarray:
        """256x4 uint8 colour table for image conversion."""
        colors = np.array(self.get_palette_by_index(palette_index).colors, dtype='<u4')
        return colors.view(np.uint8).reshape(NUM_COLORS, 4).copy()
