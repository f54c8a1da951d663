"""
Tests for palette decoding
"""
import struct

import numpy as np
import pytest

from darkstar_decoder.chunks.base import MalformedChunkError, UnsupportedVersionError
from darkstar_decoder.chunks.registry import decode
from darkstar_decoder.chunks.stream import ByteStream
from darkstar_decoder.formats.palette import BASE_LOOKUP_SIZE, Palette, PaletteType

from chunk_builders import create_ms_pal, create_test_chunk, grey_colors, pack_colors

SHADE_HAZE_SIZE = 256 * 16 * 5 + BASE_LOOKUP_SIZE
NOREMAP_SIZE = 256 + BASE_LOOKUP_SIZE
TRANSLUCENT_SIZE = 65536 + BASE_LOOKUP_SIZE


def create_ppal(version: int = 3, shade_shift: int = 2, with_info: bool = True) -> bytes:
    head = create_test_chunk(b'head', struct.pack('<BHB', version, 0, shade_shift))
    info = create_test_chunk(b'info', b'abc') if with_info else b''
    data = create_test_chunk(b'data', pack_colors(grey_colors()))
    return create_test_chunk(b'PPAL', head + info + data)


def create_pl98(entries, remap: bytes, shade_shift: int = 4, haze_levels: int = 4,
                weights: bool = False) -> bytes:
    """PL98 palette; the header size field holds the entry count"""
    data = b'PL98' + struct.pack('<I', len(entries))
    data += struct.pack('<3i', shade_shift, haze_levels, 0x00FF00)
    data += bytes(range(32))
    for colors, index, palette_type in entries:
        data += pack_colors(colors) + struct.pack('<iI', index, palette_type)
    data += remap
    if weights:
        data += struct.pack('<B', 1) + struct.pack('<256f', *([0.5] * 256)) + struct.pack('<II', 3, 200)
    else:
        data += struct.pack('<B', 0)
    data += struct.pack('<I', 0)
    return data


def red_colors():
    return [0xFF] * 256


class TestMsPalette:
    """Microsoft RIFF palettes"""

    def test_decode(self):
        palette = decode(create_ms_pal(grey_colors()))
        assert isinstance(palette, Palette)
        assert palette.source_format == 'RIFF'
        assert len(palette.entries) == 1
        assert palette.lookup_rgb(5) == (5, 5, 5)
        assert palette.lookup_rgba(200) == (200, 200, 200, 0)

    def test_surplus_colors_skipped(self):
        """Only 256 colours are kept; the rest are skipped"""
        data = create_ms_pal(list(grey_colors()) + [0x123456] * 44) + b'\x2a'
        stream = ByteStream(data)
        palette = Palette.read(stream)
        assert len(palette.entries[0].colors) == 256
        assert stream.read_u8() == 0x2a

    def test_short_palette_padded(self):
        palette = decode(create_ms_pal([0x010203] * 16))
        assert palette.entries[0].colors[15] == 0x010203
        assert palette.entries[0].colors[16] == 0

    def test_missing_pal_header(self):
        data = create_test_chunk(b'RIFF', create_test_chunk(b'junk', b'\x00' * 4))
        with pytest.raises(MalformedChunkError):
            decode(data)


class TestPpalPalette:
    """PPAL palettes"""

    def test_decode_with_info(self):
        palette = decode(create_ppal())
        assert palette.source_format == 'PPAL'
        assert palette.shade_shift == 2
        assert palette.shade_levels == 4
        assert palette.entries[0].index == -1
        assert palette.lookup_rgb(9) == (9, 9, 9)

    def test_decode_without_info(self):
        palette = decode(create_ppal(version=7, with_info=False))
        assert palette.lookup_rgb(255) == (255, 255, 255)

    def test_unsupported_version(self):
        with pytest.raises(UnsupportedVersionError):
            decode(create_ppal(version=5))


class TestPl98Palette:
    """PL98 palettes with remap tables"""

    def build(self, weights=False):
        entries = [
            (grey_colors(), 0, PaletteType.SHADEHAZE),
            (red_colors(), 5, PaletteType.NOREMAP),
            (grey_colors(), 7, PaletteType.TRANSLUCENT),
        ]
        remap = bytearray(SHADE_HAZE_SIZE + NOREMAP_SIZE + TRANSLUCENT_SIZE)
        # shade-haze red channel follows its own remap tables and the translucent one
        col_r = 256 * 16 * 4 + 256 * 16 + 65536 + 256
        remap[col_r:col_r + 1024] = struct.pack('<256f', *range(256))
        return create_pl98(entries, bytes(remap), weights=weights)

    def test_lookup_sizes(self):
        """Lookup size depends on type, shade levels and haze levels"""
        palette = Palette(shade_levels=16, haze_levels=4)
        assert palette.calc_lookup_size(PaletteType.SHADEHAZE) == 256 * 16 * 5 + 4352
        assert palette.calc_lookup_size(PaletteType.TRANSLUCENT) == 65536 + 4352
        assert palette.calc_lookup_size(PaletteType.ADDITIVE) == 65536 + 4352
        assert palette.calc_lookup_size(PaletteType.NOREMAP) == 256 + 4352
        assert palette.calc_lookup_size(PaletteType.COLORQUANT) == 256 + 4352
        with pytest.raises(MalformedChunkError):
            palette.calc_lookup_size(9)

    def test_decode_entries(self):
        palette = decode(self.build())
        assert palette.source_format == 'PL98'
        assert palette.shade_levels == 16
        assert palette.haze_levels == 4
        assert palette.haze_color == 0x00FF00
        assert palette.allowed_matches == bytes(range(32))
        assert [e.index for e in palette.entries] == [0, 5, 7]
        assert len(palette.remap_data) == SHADE_HAZE_SIZE + NOREMAP_SIZE + TRANSLUCENT_SIZE
        assert palette.color_weights is None

    def test_view_layout(self):
        """Remap tables first, then remap entry lookups, then the rest"""
        palette = decode(self.build())
        shade, plain, trans = palette.entries

        assert (shade.haze_map.offset, shade.haze_map.length) == (0, 256 * 16 * 4)
        assert shade.shade_map.offset == 256 * 16 * 4
        assert trans.trans_map.offset == 256 * 16 * 5
        assert shade.col_idx.offset == 256 * 16 * 5 + 65536
        assert trans.col_idx.offset == shade.col_a.end
        assert plain.quant_map.offset == trans.col_a.end
        assert plain.col_a.end == len(palette.remap_data)
        assert plain.shade_map is None
        assert plain.trans_map is None

    def test_remap_array(self):
        palette = decode(self.build())
        red = palette.remap_array(palette.entries[0].col_r, np.float32)
        assert red.shape == (256,)
        assert red[10] == 10.0
        assert palette.remap_array(palette.entries[2].trans_map).shape == (65536,)

    def test_get_palette_by_index(self):
        palette = decode(self.build())
        assert palette.get_palette_by_index(5).type == PaletteType.NOREMAP
        assert palette.lookup_rgb(3, palette_index=5) == (0xFF, 0, 0)
        # Unknown indices fall back to the first entry
        assert palette.get_palette_by_index(42) is palette.entries[0]

    def test_color_weights(self):
        palette = decode(self.build(weights=True))
        assert len(palette.color_weights) == 256
        assert palette.color_weights[0] == 0.5
        assert (palette.weight_start, palette.weight_end) == (3, 200)

    def test_rgba_table(self):
        palette = decode(self.build())
        table = palette.to_rgba_table(5)
        assert table.shape == (256, 4)
        assert table.dtype == np.uint8
        assert tuple(table[0]) == (0xFF, 0, 0, 0)

    def test_unknown_entry_type(self):
        data = create_pl98([(grey_colors(), 0, 12)], b'')
        with pytest.raises(MalformedChunkError):
            decode(data)

    def test_invalid_shade_shift(self):
        data = create_pl98([(grey_colors(), 0, PaletteType.NOREMAP)], b'\x00' * NOREMAP_SIZE,
                           shade_shift=40)
        with pytest.raises(MalformedChunkError):
            decode(data)
