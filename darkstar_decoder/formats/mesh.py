"""Cel animated mesh decoding (TS::CelAnimMesh) and render preparation."""
from dataclasses import dataclass, field
import logging
from typing import Dict, List, Tuple

from construct import Array, Float32l, Int32sl, Struct
import numpy as np

from ..chunks.base import MalformedChunkError, PersistObject
from ..chunks.stream import ByteStream

logger = logging.getLogger(__name__)

MAX_INDEX = 0xFFFF

VertexIndexPair = Struct(
    "vi" / Int32sl,
    "ti" / Int32sl,
)

# 28 bytes
FaceRecord = Struct(
    "verts" / Array(3, VertexIndexPair),
    "material" / Int32sl,
)

# 28 bytes, version 3 and later
FrameRecord = Struct(
    "first_vert" / Int32sl,
    "scale" / Float32l[3],
    "origin" / Float32l[3],
)


@dataclass
class Face:
    verts: Tuple[Tuple[int, int], ...]   # (vertex index, texture vertex index)
    material: int


@dataclass
class MeshFrame:
    first_vert: int
    scale: Tuple[float, float, float]
    origin: Tuple[float, float, float]


@dataclass
class CelAnimMesh(PersistObject):
    """Mesh whose vertex positions are stored quantised, one block per frame.

    ``verts`` is an (N, 4) uint8 array of x, y, z and encoded normal index,
    ``tex_verts`` an (N, 2) float32 array.
    """
    persist_name = 'TS::CelAnimMesh'

    verts_per_frame: int = 0
    tex_verts_per_frame: int = 0
    radius: float = 0.0
    verts: np.ndarray = field(default_factory=lambda: np.zeros((0, 4), dtype=np.uint8))
    tex_verts: np.ndarray = field(default_factory=lambda: np.zeros((0, 2), dtype=np.float32))
    faces: List[Face] = field(default_factory=list)
    frames: List[MeshFrame] = field(default_factory=list)

    @classmethod
    def read(cls, stream: ByteStream, version: int, registry=None) -> 'CelAnimMesh':
        cls.check_version('TS::CelAnimMesh', version, 0, 3)
        num_verts, verts_per_frame, num_tex_verts, num_faces, num_frames = stream.read_array('i', 5)
        for name, count in (('vertex', num_verts), ('texture vertex', num_tex_verts),
                            ('face', num_faces), ('frame', num_frames)):
            cls.check_count(name, count)

        if version >= 2:
            tex_verts_per_frame = stream.read_i32()
        else:
            tex_verts_per_frame = num_tex_verts

        if version < 3:
            v2_scale = stream.read_vec3()
            v2_origin = stream.read_vec3()

        mesh = cls(
            verts_per_frame=verts_per_frame,
            tex_verts_per_frame=tex_verts_per_frame,
            radius=stream.read_f32(),
        )

        mesh.verts = np.frombuffer(stream.read_bytes(num_verts * 4), dtype=np.uint8).reshape(num_verts, 4)
        mesh.tex_verts = np.frombuffer(
            stream.read_bytes(num_tex_verts * 8), dtype='<f4'
        ).reshape(num_tex_verts, 2)

        for record in stream.read_struct_array(FaceRecord, num_faces):
            mesh.faces.append(Face(
                verts=tuple((pair.vi, pair.ti) for pair in record.verts),
                material=record.material,
            ))

        if version < 3:
            if num_frames == 0:
                mesh.frames.append(MeshFrame(0, v2_scale, v2_origin))
            else:
                for first_vert in stream.read_array('i', num_frames):
                    mesh.frames.append(MeshFrame(first_vert, v2_scale, v2_origin))
        else:
            for record in stream.read_struct_array(FrameRecord, num_frames):
                mesh.frames.append(MeshFrame(
                    record.first_vert, tuple(record.scale), tuple(record.origin)
                ))

        logger.debug(
            f"CelAnimMesh v{version}: {num_verts} verts, {num_tex_verts} tex verts, "
            f"{num_faces} faces, {len(mesh.frames)} frames"
        )
        return mesh


@dataclass
class Primitive:
    """Run of consecutive faces sharing one material."""
    start_verts: int = 0
    start_inds: int = 0
    num_verts: int = 0
    num_inds: int = 0
    material: int = -1


@dataclass
class PreparedMesh:
    """Render-ready index data derived from a CelAnimMesh."""
    vert_map: List[int]
    tex_vert_map: List[int]
    triangles: np.ndarray
    primitives: List[Primitive]
    fixed_frame_offsets: List[int]
    tex_vert_frames: int = 1

    @property
    def real_verts_per_frame(self) -> int:
        return len(self.vert_map)

    @property
    def real_tex_verts_per_frame(self) -> int:
        return len(self.tex_vert_map)


def unpack_vert_structure(mesh: CelAnimMesh) -> Tuple[List[int], List[int], np.ndarray, List[Primitive]]:
    """Split faces into per-material primitives with unique (vertex, texture vertex) pairs.

    Returns:
        Tuple of vertex map, texture vertex map, (N, 3) uint16 triangle
        indices into the maps, and the primitive list
    """
    vert_map: List[int] = []
    tex_vert_map: List[int] = []
    triangles: List[Tuple[int, int, int]] = []
    primitives: List[Primitive] = []

    current = Primitive()
    pair_to_vert: Dict[Tuple[int, int], int] = {}

    for face in mesh.faces:
        if current.num_inds != 0 and current.material != face.material:
            primitives.append(current)
            current = Primitive()

        if current.num_inds == 0:
            current.start_inds = len(triangles) * 3
            current.start_verts = 0
            current.num_verts = 0
            current.material = face.material
            pair_to_vert.clear()

        triangle = []
        for pair in face.verts:
            idx = pair_to_vert.get(pair)
            if idx is None:
                idx = len(vert_map)
                if idx >= MAX_INDEX:
                    raise MalformedChunkError(f"Mesh needs more than {MAX_INDEX} vertices")
                pair_to_vert[pair] = idx
                vert_map.append(pair[0])
                tex_vert_map.append(pair[1])
                current.num_verts += 1
            triangle.append(idx)

        triangles.append(tuple(triangle))
        current.num_inds += 3

    if current.num_inds != 0:
        primitives.append(current)

    tris = np.array(triangles, dtype=np.uint16).reshape(len(triangles), 3)
    return vert_map, tex_vert_map, tris, primitives


def compute_fixed_frame_offsets(mesh: CelAnimMesh, real_verts_per_frame: int) -> List[int]:
    """Offset of each frame's unpacked vertices in a packed buffer.

    Frames repeating the previous frame's first vertex share its offset.
    """
    offsets: List[int] = []
    prev_vert = -1
    vert_count = 0
    for idx, frame in enumerate(mesh.frames):
        if frame.first_vert < 0 or frame.first_vert < prev_vert:
            raise MalformedChunkError(
                f"Frame {idx} first vertex {frame.first_vert} out of order"
            )
        if frame.first_vert == prev_vert:
            offsets.append(offsets[idx - 1])
            continue
        offsets.append(vert_count)
        prev_vert = frame.first_vert
        vert_count += real_verts_per_frame
    return offsets


def prepare_mesh(mesh: CelAnimMesh) -> PreparedMesh:
    vert_map, tex_vert_map, triangles, primitives = unpack_vert_structure(mesh)
    for prim in primitives:
        prim.num_verts = len(vert_map)

    tex_vert_frames = 1
    if mesh.tex_verts_per_frame > 0:
        tex_vert_frames = len(mesh.tex_verts) // mesh.tex_verts_per_frame

    return PreparedMesh(
        vert_map=vert_map,
        tex_vert_map=tex_vert_map,
        triangles=triangles,
        primitives=primitives,
        fixed_frame_offsets=compute_fixed_frame_offsets(mesh, len(vert_map)),
        tex_vert_frames=tex_vert_frames,
    )


def prepare_meshes(shape) -> Dict[int, PreparedMesh]:
    """Prepare every mesh of a shape that has faces, keyed by mesh index."""
    prepared = {}
    for index, mesh in enumerate(shape.meshes):
        if not mesh.faces:
            logger.debug(f"Mesh {index} has no faces")
            continue
        prepared[index] = prepare_mesh(mesh)
    return prepared


def frame_positions(mesh: CelAnimMesh, prepared: PreparedMesh, frame_index: int) -> np.ndarray:
    """Unpacked (N, 3) float32 positions of one mesh frame."""
    frame = mesh.frames[frame_index]
    indices = np.asarray(prepared.vert_map, dtype=np.int64) + frame.first_vert
    if len(indices) and indices.max() >= len(mesh.verts):
        raise MalformedChunkError(f"Frame {frame_index} references vertices past the mesh end")
    packed = mesh.verts[indices, :3].astype(np.float32)
    return packed * np.asarray(frame.scale, dtype=np.float32) + np.asarray(frame.origin, dtype=np.float32)


def frame_tex_coords(mesh: CelAnimMesh, prepared: PreparedMesh, tex_frame: int) -> np.ndarray:
    """(N, 2) texture coordinates of one texture frame."""
    offset = tex_frame * mesh.tex_verts_per_frame
    indices = np.asarray(prepared.tex_vert_map, dtype=np.int64) + offset
    if len(indices) and indices.max() >= len(mesh.tex_verts):
        raise MalformedChunkError(f"Texture frame {tex_frame} references texture vertices past the mesh end")
    return mesh.tex_verts[indices]
