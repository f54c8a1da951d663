"""Terrain block layout decoding (GFIL chunks)."""
from dataclasses import dataclass, field
import logging
from typing import List, Optional

import numpy as np

from ...chunks.base import MalformedChunkError, PersistObject
from ...chunks.header import ChunkHeader, TAG_GFIL, tag_name
from ...chunks.stream import ByteStream

logger = logging.getLogger(__name__)

MAX_VERSION = 2


@dataclass
class TerrainBlockList(PersistObject):
    """Grid of named terrain blocks.

    ``block_map`` is a (blocks_y, blocks_x) int32 array of indices into
    ``names``; -1 marks an empty cell.
    """
    version: int = 0
    blocks_x: int = 0
    blocks_y: int = 0
    block_shift: int = 0
    detail_count: int = 0
    origin_x: int = 0
    origin_y: int = 0
    names: List[str] = field(default_factory=list)
    block_map: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=np.int32))

    @classmethod
    def read(cls, stream: ByteStream, version: int = 0, registry=None) -> 'TerrainBlockList':
        header = ChunkHeader.read(stream)
        if header.tag != TAG_GFIL:
            raise MalformedChunkError(f"Not a terrain block list: {tag_name(header.tag)}")

        list_version = stream.read_u32()
        cls.check_version('GFIL', list_version, 1, MAX_VERSION)
        blocks_x, blocks_y, block_shift, detail_count = stream.read_array('i', 4)
        cls.check_count('block column', blocks_x)
        cls.check_count('block row', blocks_y)

        block_list = cls(
            version=list_version,
            blocks_x=blocks_x,
            blocks_y=blocks_y,
            block_shift=block_shift,
            detail_count=detail_count,
        )
        if list_version >= 2:
            block_list.origin_x, block_list.origin_y = stream.read_array('i', 2)

        name_count = stream.read_u32()
        block_list.names = [stream.read_sstring() for _ in range(name_count)]

        indices = np.frombuffer(
            stream.read_bytes(blocks_x * blocks_y * 4), dtype='<i4'
        ).reshape(blocks_y, blocks_x).astype(np.int32)
        if indices.size and (indices.min() < -1 or indices.max() >= name_count):
            raise MalformedChunkError(f"Block map references names outside 0..{name_count - 1}")
        block_list.block_map = indices

        logger.debug(
            f"GFIL v{list_version}: {blocks_x}x{blocks_y} blocks, {name_count} names"
        )
        return block_list

    def block_name(self, x: int, y: int) -> Optional[str]:
        """Name of the block at cell (x, y), or None for an empty cell."""
        index = int(self.block_map[y, x])
        if index < 0:
            return None
        return self.names[index]
