# darkstar_decoder/__init__.py
"""Decoders for Darkstar engine assets and a shape animation evaluator."""
from .anim.engine import ShapeAnimator, ThreadState
from .chunks import (
    ByteStream,
    ChunkHeader,
    CompressedSizeMismatchError,
    DecodeError,
    MalformedChunkError,
    PersistObject,
    PersistRegistry,
    TruncatedStreamError,
    UnknownClassError,
    UnsupportedVersionError,
    decode,
    default_registry,
)
from .codec.lzh import lzh_unpack
from .config import DecoderConfig, load_config
from .formats.mesh import prepare_meshes
from .utils.logging import setup_logging

__version__ = '0.1.0'

__all__ = [
    'ByteStream',
    'ChunkHeader',
    'CompressedSizeMismatchError',
    'DecodeError',
    'DecoderConfig',
    'MalformedChunkError',
    'PersistObject',
    'PersistRegistry',
    'ShapeAnimator',
    'ThreadState',
    'TruncatedStreamError',
    'UnknownClassError',
    'UnsupportedVersionError',
    'decode',
    'default_registry',
    'load_config',
    'lzh_unpack',
    'prepare_meshes',
    'setup_logging',
]
