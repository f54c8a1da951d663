"""
Helpers that build Darkstar chunks for the test suite
"""
import struct
from typing import Iterable, Sequence

ALIGN_DWORD = 0x80000000


def create_test_chunk(name: bytes, data: bytes, align_dword: bool = False) -> bytes:
    """Create a chunk with the given tag and payload, padded like the engine writes it"""
    size = len(data)
    if align_dword:
        padded = (size + 3) & ~3
        raw_size = size | ALIGN_DWORD
    else:
        padded = (size + 1) & ~1
        raw_size = size
    return name.ljust(4, b'\x00') + struct.pack('<I', raw_size) + data + b'\x00' * (padded - size)


def sstring(text: str) -> bytes:
    """u16 length prefixed string padded to an even size"""
    raw = text.encode('utf-8')
    return struct.pack('<H', len(raw)) + raw + b'\x00' * (len(raw) & 1)


def create_pers_chunk(class_name: str, version: int, payload: bytes) -> bytes:
    """Create a PERS framed persistent object"""
    return create_test_chunk(b'PERS', sstring(class_name) + struct.pack('<I', version) + payload)


def fixed_string(text: str, size: int) -> bytes:
    return text.encode('ascii').ljust(size, b'\x00')


def pack_colors(colors: Iterable[int]) -> bytes:
    colors = list(colors)
    return struct.pack(f'<{len(colors)}I', *colors)


def grey_colors() -> Sequence[int]:
    """256 colours where entry i is (i, i, i) with flags 0"""
    return [i | (i << 8) | (i << 16) for i in range(256)]


def create_ms_pal(colors: Sequence[int]) -> bytes:
    """Microsoft RIFF palette file"""
    pal = create_test_chunk(b'PAL ', struct.pack('<HH', len(colors), 0x300) + pack_colors(colors))
    return create_test_chunk(b'RIFF', pal)


# Shape version 8 records

def node_record(name: int, parent: int, num_subsequences: int = 0,
                first_subsequence: int = 0, default_transform: int = 0) -> bytes:
    return struct.pack('<5h', name, parent, num_subsequences, first_subsequence, default_transform)


def sequence_record(name: int, cyclic: int, duration: float, priority: int = 0) -> bytes:
    return struct.pack('<2if5i', name, cyclic, duration, priority, 0, 0, 0, 0)


def subsequence_record(sequence_idx: int, num_keyframes: int, first_keyframe: int) -> bytes:
    return struct.pack('<3h', sequence_idx, num_keyframes, first_keyframe)


def keyframe_record(pos: float, key: int, mat_index: int = 0) -> bytes:
    return struct.pack('<fHH', pos, key, mat_index)


def transform_record(quat=(0, 0, 0, 0x7FFF), pos=(0.0, 0.0, 0.0)) -> bytes:
    return struct.pack('<4h3f', *quat, *pos)


def object_record(name: int, flags: int, mesh_index: int, node_index: int,
                  num_subsequences: int = 0, first_subsequence: int = 0) -> bytes:
    return struct.pack('<hHih2x3f2h', name, flags, mesh_index, node_index,
                       0.0, 0.0, 0.0, num_subsequences, first_subsequence)


def detail_record(root_node: int, size: float) -> bytes:
    return struct.pack('<if', root_node, size)


def shape_v8(nodes=(), sequences=(), subsequences=(), keyframes=(), transforms=(),
             names=(), objects=(), details=(), meshes=(), materials: bytes = b'',
             always_node: int = -1, radius: float = 1.0) -> bytes:
    """Version 8 TS::Shape payload built from packed records"""
    header = struct.pack(
        '<11I', len(nodes), len(sequences), len(subsequences), len(keyframes),
        len(transforms), len(names), len(objects), len(details), len(meshes),
        0,  # transitions
        0,  # frame triggers
    )
    header += struct.pack('<f3f3f3f', radius, 0.0, 0.0, 0.0,
                          -radius, -radius, -radius, radius, radius, radius)
    body = b''.join(nodes) + b''.join(sequences) + b''.join(subsequences)
    body += b''.join(keyframes) + b''.join(transforms)
    body += b''.join(fixed_string(n, 24) for n in names)
    body += b''.join(objects) + b''.join(details)
    body += struct.pack('<ii', 0, always_node)
    body += b''.join(meshes)
    body += struct.pack('<I', 1 if materials else 0) + materials
    return header + body


def mesh_v3(verts=(), tex_verts=(), faces=(), frames=(), verts_per_frame: int = 0,
            tex_verts_per_frame: int = 0, radius: float = 1.0) -> bytes:
    """Version 3 TS::CelAnimMesh payload

    verts are (x, y, z, normal) byte tuples, faces ((vi, ti) x 3, material)
    and frames (first_vert, scale, origin).
    """
    data = struct.pack('<5i', len(verts), verts_per_frame, len(tex_verts), len(faces), len(frames))
    data += struct.pack('<i', tex_verts_per_frame)
    data += struct.pack('<f', radius)
    data += b''.join(bytes(v) for v in verts)
    data += b''.join(struct.pack('<2f', *tv) for tv in tex_verts)
    for pairs, material in faces:
        data += b''.join(struct.pack('<2i', vi, ti) for vi, ti in pairs) + struct.pack('<i', material)
    for first_vert, scale, origin in frames:
        data += struct.pack('<i3f3f', first_vert, *scale, *origin)
    return data
