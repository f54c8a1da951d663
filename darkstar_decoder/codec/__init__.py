"""LZH decompression."""
from .lzh import LzhDecoder, lzh_unpack

__all__ = ['LzhDecoder', 'lzh_unpack']
