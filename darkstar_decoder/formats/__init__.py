# darkstar_decoder/formats/__init__.py
"""Per-format decoders."""
from .bitmap import Bitmap
from .interior import InteriorGeom
from .material import Material, MaterialList
from .mesh import CelAnimMesh, prepare_meshes
from .palette import Palette, PaletteType
from .shape import Shape
from .terrain import TerrainBlock, TerrainBlockList

__all__ = [
    'Bitmap',
    'CelAnimMesh',
    'InteriorGeom',
    'Material',
    'MaterialList',
    'Palette',
    'PaletteType',
    'Shape',
    'TerrainBlock',
    'TerrainBlockList',
    'prepare_meshes',
]
