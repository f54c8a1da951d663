"""Terrain decoders.

GFIL chunks lay out a grid of named blocks; each GBLK chunk holds one
block's heights, material squares and light map.
"""
from .block import TerrainBlock
from .block_list import TerrainBlockList

__all__ = ['TerrainBlock', 'TerrainBlockList']
