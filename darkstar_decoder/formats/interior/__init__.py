"""ITRGeometry (interior BSP geometry) decoder."""
from .parser import InteriorGeom

__all__ = ['InteriorGeom']
