"""Interior geometry decoding (ITRGeometry)."""
from dataclasses import dataclass, field
import logging
from typing import Any, List, Tuple

import numpy as np

from ...chunks.base import MalformedChunkError, PersistObject
from ...chunks.stream import ByteStream
from .records import (
    BSPNodeRecord,
    EmptyLeafRecord,
    HeaderRecord,
    PlaneRecord,
    SolidLeafRecord,
    SurfaceRecord,
    VertexRecord,
)

logger = logging.getLogger(__name__)

MAX_VERSION = 1


@dataclass
class InteriorGeom(PersistObject):
    """BSP geometry of an interior.

    Surfaces, BSP nodes, leaves, vertices and planes are kept as decoded
    records; point lists are (N, 3) and (N, 2) float32 arrays.
    """
    persist_name = 'ITRGeometry'

    version: int = 0
    build_id: int = 0
    texture_scale: float = 0.0
    min_bounds: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    max_bounds: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    highest_mip_level: int = 0
    flags: int = 0
    surfaces: List[Any] = field(default_factory=list)
    nodes: List[Any] = field(default_factory=list)
    solid_leaves: List[Any] = field(default_factory=list)
    empty_leaves: List[Any] = field(default_factory=list)
    pvs_bits: bytes = b''
    vertices: List[Any] = field(default_factory=list)
    points3: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.float32))
    points2: np.ndarray = field(default_factory=lambda: np.zeros((0, 2), dtype=np.float32))
    planes: List[Any] = field(default_factory=list)

    @classmethod
    def read(cls, stream: ByteStream, version: int, registry=None) -> 'InteriorGeom':
        cls.check_version('ITRGeometry', version, 0, MAX_VERSION)
        header = stream.read_struct(HeaderRecord)
        for name in ('surfaces', 'nodes', 'solid_leaves', 'empty_leaves', 'pvs_bytes',
                     'vertices', 'points3', 'points2', 'planes'):
            cls.check_count(name, header[f"num_{name}"])

        geom = cls(
            version=version,
            build_id=header.build_id,
            texture_scale=header.texture_scale,
            min_bounds=tuple(header.min_bounds),
            max_bounds=tuple(header.max_bounds),
            highest_mip_level=header.highest_mip_level,
        )
        if version >= 1:
            geom.flags = stream.read_u32()

        geom.surfaces = stream.read_struct_array(SurfaceRecord, header.num_surfaces)
        geom.nodes = stream.read_struct_array(BSPNodeRecord, header.num_nodes)
        geom.solid_leaves = stream.read_struct_array(SolidLeafRecord, header.num_solid_leaves)
        geom.empty_leaves = stream.read_struct_array(EmptyLeafRecord, header.num_empty_leaves)
        geom.pvs_bits = stream.read_bytes(header.num_pvs_bytes)
        geom.vertices = stream.read_struct_array(VertexRecord, header.num_vertices)
        geom.points3 = np.frombuffer(
            stream.read_bytes(header.num_points3 * 12), dtype='<f4'
        ).reshape(header.num_points3, 3).astype(np.float32)
        geom.points2 = np.frombuffer(
            stream.read_bytes(header.num_points2 * 8), dtype='<f4'
        ).reshape(header.num_points2, 2).astype(np.float32)
        geom.planes = stream.read_struct_array(PlaneRecord, header.num_planes)

        geom.validate()
        logger.debug(
            f"ITRGeometry v{version}: {len(geom.surfaces)} surfaces, {len(geom.nodes)} nodes, "
            f"{len(geom.solid_leaves)} solid / {len(geom.empty_leaves)} empty leaves"
        )
        return geom

    def validate(self) -> None:
        """Check that surfaces and leaves stay inside the shared arrays."""
        for i, surface in enumerate(self.surfaces):
            if surface.vertex_index + surface.vertex_count > len(self.vertices):
                raise MalformedChunkError(f"Surface {i} vertices run past the vertex list")
            if surface.plane_index >= len(self.planes):
                raise MalformedChunkError(f"Surface {i} references missing plane {surface.plane_index}")
        for i, leaf in enumerate(self.empty_leaves):
            if leaf.pvs_index + leaf.pvs_count > len(self.pvs_bits):
                raise MalformedChunkError(f"Empty leaf {i} PVS runs past the PVS data")

    def leaf_pvs(self, leaf_index: int) -> bytes:
        """Potentially visible set bytes of an empty leaf."""
        leaf = self.empty_leaves[leaf_index]
        return self.pvs_bits[leaf.pvs_index:leaf.pvs_index + leaf.pvs_count]
