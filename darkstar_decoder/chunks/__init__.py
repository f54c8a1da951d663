# darkstar_decoder/chunks/__init__.py
"""Byte stream, chunk framing and persistent object dispatch."""
from .base import (
    CompressedSizeMismatchError,
    DecodeError,
    MalformedChunkError,
    PersistObject,
    TruncatedStreamError,
    UnknownClassError,
    UnsupportedVersionError,
)
from .header import ChunkHeader, fourcc, tag_name
from .registry import PersistRegistry, decode, default_registry
from .stream import ByteStream

__all__ = [
    'ByteStream',
    'ChunkHeader',
    'CompressedSizeMismatchError',
    'DecodeError',
    'MalformedChunkError',
    'PersistObject',
    'PersistRegistry',
    'TruncatedStreamError',
    'UnknownClassError',
    'UnsupportedVersionError',
    'decode',
    'default_registry',
    'fourcc',
    'tag_name',
]
