"""
Tests for persistent object dispatch
"""
import struct

import pytest

from darkstar_decoder.chunks.base import (
    DecodeError, MalformedChunkError, PersistObject, UnknownClassError, UnsupportedVersionError,
)
from darkstar_decoder.chunks.header import TAG_PBMP, fourcc
from darkstar_decoder.chunks.registry import PersistRegistry, decode, default_registry
from darkstar_decoder.chunks.stream import ByteStream
from darkstar_decoder.config import DecoderConfig
from darkstar_decoder.formats.bitmap import Bitmap
from darkstar_decoder.formats.material import MaterialList

from chunk_builders import create_pers_chunk, create_test_chunk, fixed_string


def material_v2(name: str, flags: int = 0x3) -> bytes:
    return struct.pack('<IfI4B', flags, 1.0, 0, 10, 20, 30, 0) + fixed_string(name, 32)


def material_list_v2(*names: str) -> bytes:
    payload = struct.pack('<II', 1, len(names)) + b''.join(material_v2(n) for n in names)
    return create_pers_chunk('TS::MaterialList', 2, payload)


class Counter(PersistObject):
    """Reads one u32 and records the version it was decoded with"""
    persist_name = 'Test::Counter'

    def __init__(self, value, version):
        self.value = value
        self.version = version

    @classmethod
    def read(cls, stream, version, registry=None):
        return cls(stream.read_u32(), version)


class TestRegistryLookup:
    """Registration and lookup"""

    def test_register_and_list(self):
        registry = PersistRegistry()
        registry.register_class('Test::Counter', Counter)
        registry.register_tag(fourcc(b'CNTR'), Counter)
        assert registry.create_class_by_name('Test::Counter') is Counter
        assert registry.create_class_by_name('Test::Missing') is None
        supported = registry.list_supported()
        assert supported['Test::Counter'] == 'Counter'
        assert supported['CNTR'] == 'Counter'

    def test_tag_falls_back_to_low_word(self):
        """Tags whose upper bytes vary (BM files) match on the low 16 bits"""
        registry = default_registry()
        assert registry.create_class_by_tag(fourcc(b'BM\x36\x00')) is Bitmap
        assert registry.create_class_by_tag(TAG_PBMP) is Bitmap

    def test_default_registry_formats(self):
        supported = default_registry().list_supported()
        for name in ('TS::Shape', 'TS::CelAnimMesh', 'TS::MaterialList', 'ITRGeometry',
                     'PL98', 'PPAL', 'RIFF', 'PBMP', 'GBLK', 'GFIL'):
            assert name in supported

    def test_config_sets_lzh_overrun(self):
        registry = default_registry(DecoderConfig(lzh_max_overrun=5))
        assert registry.lzh_max_overrun == 5


class TestRegistryDecode:
    """Decoding PERS framed objects"""

    def test_decode_pers_object(self):
        """PERS chunks dispatch on class name and pass the version through"""
        registry = PersistRegistry()
        registry.register_class('Test::Counter', Counter)
        obj = registry.decode(create_pers_chunk('Test::Counter', 3, struct.pack('<I', 42)))
        assert isinstance(obj, Counter)
        assert obj.value == 42
        assert obj.version == 3

    def test_decode_material_list(self):
        materials = decode(material_list_v2('wall.bmp', 'floor.bmp'))
        assert isinstance(materials, MaterialList)
        assert [m.filename for m in materials.materials] == ['wall.bmp', 'floor.bmp']
        assert materials.materials[0].rgb == (10, 20, 30)
        assert materials.materials[0].use_default_props == 1
        assert materials.materials[0].is_textured

    def test_unknown_class_raises(self):
        with pytest.raises(UnknownClassError):
            decode(create_pers_chunk('TS::Nothing', 0, b'\x00' * 4))

    def test_unknown_tag_raises(self):
        with pytest.raises(UnknownClassError):
            decode(create_test_chunk(b'ZZZZ', b'\x00' * 4))

    def test_unsupported_version_raises(self):
        payload = struct.pack('<II', 1, 0)
        with pytest.raises(UnsupportedVersionError) as excinfo:
            decode(create_pers_chunk('TS::MaterialList', 9, payload))
        assert excinfo.value.version == 9
        assert isinstance(excinfo.value, DecodeError)


class TestCreateFromStream:
    """Failure isolation between sibling objects"""

    def test_failure_returns_none_and_skips_chunk(self):
        """A broken object is skipped and the following object still decodes"""
        broken = create_pers_chunk('TS::Nothing', 0, b'\x01\x02\x03')
        data = broken + material_list_v2('sky.bmp')
        stream = ByteStream(data)
        registry = default_registry()

        assert registry.create_from_stream(stream) is None
        assert stream.position == len(broken)
        materials = registry.create_from_stream(stream)
        assert isinstance(materials, MaterialList)
        assert stream.is_eof()

    def test_truncated_payload_keeps_stream_in_sync(self):
        """A decoder that stops short still leaves the stream at the chunk end"""
        short = create_pers_chunk('TS::MaterialList', 2, struct.pack('<II', 1, 5) + material_v2('a'))
        stream = ByteStream(short + material_list_v2('b'))
        registry = default_registry()

        assert registry.create_from_stream(stream) is None
        assert stream.position == len(short)
        assert registry.create_from_stream(stream).materials[0].filename == 'b'

    def test_partial_read_is_skipped_to_chunk_end(self):
        """Objects that read less than their chunk still leave the stream after it"""
        registry = PersistRegistry()
        registry.register_class('Test::Counter', Counter)
        chunk = create_pers_chunk('Test::Counter', 0, struct.pack('<II', 1, 2))
        stream = ByteStream(chunk + chunk)
        assert registry.create_from_stream(stream).value == 1
        assert stream.position == len(chunk)
        assert registry.create_from_stream(stream).value == 1

    def test_malformed_errors_are_decode_errors(self):
        assert issubclass(MalformedChunkError, DecodeError)
