"""Terrain block decoding (GBLK chunks)."""
from dataclasses import dataclass, field
import logging
from typing import Optional

import numpy as np

from ...chunks.base import MalformedChunkError, PersistObject
from ...chunks.header import ChunkHeader, TAG_GBLK, tag_name
from ...chunks.stream import ByteStream
from ...codec.lzh import lzh_unpack

logger = logging.getLogger(__name__)

MAX_VERSION = 5
MAX_BLOCK_SIZE = 1024
MAX_LIGHT_SCALE = 8


def _read_lzh(stream: ByteStream, text_size: int, max_overrun: int) -> bytes:
    """Read a compressed size prefixed LZH payload."""
    compressed_size = stream.read_u32()
    payload = ByteStream(stream.read_bytes(compressed_size))
    return lzh_unpack(payload, text_size, max_overrun)


def _read_delta_heights(stream: ByteStream, width: int, rows: int) -> np.ndarray:
    """Row-delta compressed heights.

    Each row stores a scale, its first and last heights and ``width - 2``
    signed byte deltas for the heights in between.
    """
    heights = np.empty((rows, width), dtype=np.float32)
    for y in range(rows):
        scale, first, last = stream.read_array('f', 3)
        deltas = np.frombuffer(stream.read_bytes(width - 2), dtype=np.int8).astype(np.float32)
        heights[y, 0] = first
        heights[y, 1:width - 1] = np.float32(first) + np.cumsum(deltas * np.float32(scale), dtype=np.float32)
        heights[y, width - 1] = last
    return heights


@dataclass
class TerrainBlock(PersistObject):
    """One square of terrain: heights, material squares and a light map.

    ``heights`` is a (size_y + 1, size_x + 1) float32 grid, the material
    arrays are (size_y, size_x) and the light map, when present, is
    ((size_y << light_scale) + 1, (size_x << light_scale) + 1) uint16.
    """
    version: int = 0
    detail_count: int = 0
    light_scale: int = 0
    height_min: float = 0.0
    height_max: float = 0.0
    size_x: int = 0
    size_y: int = 0
    heights: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=np.float32))
    material_flags: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=np.uint8))
    material_index: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=np.uint8))
    light_map: Optional[np.ndarray] = None

    @classmethod
    def read(cls, stream: ByteStream, version: int = 0, registry=None) -> 'TerrainBlock':
        header = ChunkHeader.read(stream)
        if header.tag != TAG_GBLK:
            raise MalformedChunkError(f"Not a terrain block: {tag_name(header.tag)}")
        max_overrun = registry.lzh_max_overrun if registry is not None else 2

        block_version = stream.read_u32()
        cls.check_version('GBLK', block_version, 1, MAX_VERSION)
        detail_count, light_scale = stream.read_array('i', 2)
        height_min, height_max = stream.read_array('f', 2)
        size_x, size_y = stream.read_array('i', 2)

        if not 0 < size_x <= MAX_BLOCK_SIZE or not 0 < size_y <= MAX_BLOCK_SIZE:
            raise MalformedChunkError(f"Invalid terrain block size {size_x}x{size_y}")
        if not 0 <= light_scale <= MAX_LIGHT_SCALE:
            raise MalformedChunkError(f"Invalid light scale {light_scale}")

        block = cls(
            version=block_version,
            detail_count=detail_count,
            light_scale=light_scale,
            height_min=height_min,
            height_max=height_max,
            size_x=size_x,
            size_y=size_y,
        )

        width, rows = size_x + 1, size_y + 1
        if block_version == 1:
            block.heights = np.frombuffer(
                stream.read_bytes(width * rows * 4), dtype='<f4'
            ).reshape(rows, width).astype(np.float32)
        elif block_version <= 3:
            block.heights = _read_delta_heights(stream, width, rows)
        else:
            data = _read_lzh(stream, width * rows * 4, max_overrun)
            block.heights = np.frombuffer(data, dtype='<f4').reshape(rows, width).astype(np.float32)

        material_size = size_x * size_y * 2
        if block_version >= 5:
            materials = _read_lzh(stream, material_size, max_overrun)
        else:
            materials = stream.read_bytes(material_size)
        pairs = np.frombuffer(materials, dtype=np.uint8).reshape(size_y, size_x, 2)
        block.material_flags = pairs[:, :, 0].copy()
        block.material_index = pairs[:, :, 1].copy()

        if block_version >= 3:
            light_w = (size_x << light_scale) + 1
            light_h = (size_y << light_scale) + 1
            if block_version >= 5:
                light = _read_lzh(stream, light_w * light_h * 2, max_overrun)
            else:
                light = stream.read_bytes(light_w * light_h * 2)
            block.light_map = np.frombuffer(light, dtype='<u2').reshape(light_h, light_w).astype(np.uint16)

        logger.debug(
            f"GBLK v{block_version}: {size_x}x{size_y} squares, light scale {light_scale}"
        )
        return block

    def height_at(self, x: int, y: int) -> float:
        """Height of grid point (x, y).

        Raises:
            IndexError: If the point is outside the block
        """
        if not 0 <= x <= self.size_x or not 0 <= y <= self.size_y:
            raise IndexError(f"Grid point ({x}, {y}) outside {self.size_x}x{self.size_y} block")
        return float(self.heights[y, x])
