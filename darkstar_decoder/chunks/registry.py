"""
Persistent object registry and chunk dispatch
"""
import logging
from typing import Dict, Optional, Type, Union

from .base import DecodeError, PersistObject, UnknownClassError
from .header import ChunkHeader, TAG_PERS, tag_name
from .stream import ByteStream

logger = logging.getLogger(__name__)


class PersistRegistry:
    """
    Maps class names (``PERS`` framed chunks) and chunk tags to decoder classes.

    A registry is an ordinary value: build one with ``default_registry()`` or
    by hand, and pass it to ``decode``.
    """

    def __init__(self, lzh_max_overrun: int = 2):
        self.lzh_max_overrun = lzh_max_overrun
        self._by_name: Dict[str, Type[PersistObject]] = {}
        self._by_tag: Dict[int, Type[PersistObject]] = {}

    def register_class(self, name: str, decoder_class: Type[PersistObject]) -> None:
        """
        Register a decoder for a ``PERS`` class name

        Args:
            name: Class name as stored in the stream, e.g. ``TS::Shape``
            decoder_class: PersistObject subclass implementing ``read``
        """
        if name in self._by_name:
            logger.debug(f"Overriding decoder for class {name}")
        self._by_name[name] = decoder_class

    def register_tag(self, tag: int, decoder_class: Type[PersistObject]) -> None:
        """Register a decoder for a tag framed chunk"""
        self._by_tag[tag] = decoder_class

    def create_class_by_name(self, name: str) -> Optional[Type[PersistObject]]:
        return self._by_name.get(name)

    def create_class_by_tag(self, tag: int) -> Optional[Type[PersistObject]]:
        """Look up a tag, falling back to its low 16 bits for two character tags"""
        decoder_class = self._by_tag.get(tag)
        if decoder_class is None:
            decoder_class = self._by_tag.get(tag & 0xFFFF)
        return decoder_class

    def list_supported(self) -> Dict[str, str]:
        """Map every registered name and tag to its decoder class name"""
        supported = {name: cls.__name__ for name, cls in self._by_name.items()}
        for tag, cls in self._by_tag.items():
            supported[tag_name(tag)] = cls.__name__
        return supported

    def _decode_chunk(self, stream: ByteStream) -> PersistObject:
        chunk_start = stream.position
        header = ChunkHeader.read(stream)
        start = stream.position
        try:
            if header.tag == TAG_PERS:
                class_name = stream.read_sstring()
                version = stream.read_u32()
                decoder_class = self.create_class_by_name(class_name)
                if decoder_class is None:
                    raise UnknownClassError(f"No decoder registered for class {class_name!r}")
                logger.debug(f"Decoding {class_name} version {version} at offset {chunk_start}")
            else:
                decoder_class = self.create_class_by_tag(header.tag)
                if decoder_class is None:
                    raise UnknownClassError(f"No decoder registered for tag {tag_name(header.tag)}")
                # Tag framed objects parse their own outer header
                stream.set_position(chunk_start)
                version = 0
                logger.debug(f"Decoding {decoder_class.__name__} chunk at offset {chunk_start}")
            return decoder_class.read(stream, version, self)
        finally:
            stream.set_position(start + header.padded_size())

    def create_from_stream(self, stream: ByteStream) -> Optional[PersistObject]:
        """
        Decode the persistent object at the current stream position

        The stream is always left at the end of the chunk, whether or not the
        object could be decoded.

        Returns:
            Decoded object, or None if it could not be decoded
        """
        offset = stream.position
        try:
            return self._decode_chunk(stream)
        except DecodeError as e:
            logger.error(f"Failed to decode object at offset {offset}: {e}")
            return None

    def decode(self, data: Union[bytes, bytearray, ByteStream]) -> PersistObject:
        """
        Decode one persistent object, raising on failure

        Raises:
            DecodeError: If the object cannot be decoded
        """
        stream = data if isinstance(data, ByteStream) else ByteStream(bytes(data))
        return self._decode_chunk(stream)


def default_registry(config=None) -> PersistRegistry:
    """Build a registry populated with every known Darkstar format

    Args:
        config: Optional DecoderConfig supplying decoder limits
    """
    from ..formats.bitmap import Bitmap
    from ..formats.interior.parser import InteriorGeom
    from ..formats.material import MaterialList
    from ..formats.mesh import CelAnimMesh
    from ..formats.palette import Palette
    from ..formats.shape.parser import Shape
    from ..formats.terrain.block import TerrainBlock
    from ..formats.terrain.block_list import TerrainBlockList
    from .header import TAG_BM, TAG_GBLK, TAG_GFIL, TAG_PBMP, TAG_PL98, TAG_PPAL, TAG_RIFF

    registry = PersistRegistry()
    if config is not None:
        registry.lzh_max_overrun = config.lzh_max_overrun
    for decoder_class in (Shape, CelAnimMesh, MaterialList, InteriorGeom):
        registry.register_class(decoder_class.persist_name, decoder_class)

    for tag in (TAG_RIFF, TAG_PPAL, TAG_PL98):
        registry.register_tag(tag, Palette)
    registry.register_tag(TAG_PBMP, Bitmap)
    registry.register_tag(TAG_BM, Bitmap)
    registry.register_tag(TAG_GBLK, TerrainBlock)
    registry.register_tag(TAG_GFIL, TerrainBlockList)
    return registry


def decode(data: Union[bytes, bytearray], registry: Optional[PersistRegistry] = None) -> PersistObject:
    """Decode a single persistent object from a byte buffer"""
    if registry is None:
        registry = default_registry()
    return registry.decode(data)
