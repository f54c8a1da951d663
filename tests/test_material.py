"""
Tests for material list decoding
"""
import struct

import pytest

from darkstar_decoder.chunks.base import TruncatedStreamError, UnsupportedVersionError
from darkstar_decoder.chunks.stream import ByteStream
from darkstar_decoder.formats.material import FLAG_RGB, Material, MaterialList

from chunk_builders import fixed_string


def material_bytes(version: int, name: str, flags: int = FLAG_RGB) -> bytes:
    data = struct.pack('<IfI4B', flags, 0.5, 7, 1, 2, 3, 0)
    data += fixed_string(name, 16 if version < 2 else 32)
    if version == 1 or version > 2:
        data += struct.pack('<Iff', 2, 0.25, 0.75)
    if version not in (2, 3):
        data += struct.pack('<I', 0)
    return data


def material_list_bytes(version: int, num_details: int, names) -> bytes:
    data = struct.pack('<II', num_details, len(names) // num_details)
    return data + b''.join(material_bytes(version, n) for n in names)


class TestMaterial:
    """Per-version material records"""

    @pytest.mark.parametrize("version,size", [(0, 36), (1, 48), (2, 48), (3, 60), (4, 64)])
    def test_record_size(self, version, size):
        assert Material.record_size(version) == size
        assert len(material_bytes(version, 'x')) == size

    def test_version_0(self):
        material = Material.read(ByteStream(material_bytes(0, 'rock.bmp')), 0)
        assert material.filename == 'rock.bmp'
        assert material.elasticity == 0.0
        assert material.use_default_props == 0
        assert material.rgb == (1, 2, 3)
        assert material.kind == FLAG_RGB
        assert not material.is_textured

    def test_version_3_surface_properties(self):
        material = Material.read(ByteStream(material_bytes(3, 'metal.bmp')), 3)
        assert material.filename == 'metal.bmp'
        assert (material.type, material.elasticity, material.friction) == (2, 0.25, 0.75)
        assert material.use_default_props == 1


class TestMaterialList:
    """Material lists across detail levels"""

    def test_details(self):
        data = material_list_bytes(4, 2, ['a', 'b', 'c', 'd'])
        materials = MaterialList.read(ByteStream(data), 4)
        assert materials.num_details == 2
        assert materials.materials_per_detail == 2
        assert [m.filename for m in materials.for_detail(1)] == ['c', 'd']

    def test_truncated_list(self):
        """Counts that need more bytes than remain fail before reading"""
        data = struct.pack('<II', 1, 1000) + material_bytes(2, 'a')
        stream = ByteStream(data)
        with pytest.raises(TruncatedStreamError):
            MaterialList.read(stream, 2)
        assert stream.position == 8

    def test_unsupported_version(self):
        with pytest.raises(UnsupportedVersionError):
            MaterialList.read(ByteStream(struct.pack('<II', 0, 0)), 5)
