"""Base persistent object and decode errors."""
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class DecodeError(Exception):
    """Raised when a chunk or persistent object cannot be decoded."""
    pass


class MalformedChunkError(DecodeError):
    """Chunk contents contradict their own header or counts."""
    pass


class UnsupportedVersionError(DecodeError):
    """Object version is outside the range a decoder understands."""

    def __init__(self, kind: str, version: int):
        super().__init__(f"Unsupported {kind} version {version}")
        self.kind = kind
        self.version = version


class TruncatedStreamError(DecodeError):
    """A read ran past the end of the underlying buffer."""

    def __init__(self, position: int, needed: int, size: int):
        super().__init__(
            f"Read of {needed} bytes at offset {position} exceeds stream size {size}"
        )
        self.position = position
        self.needed = needed
        self.size = size


class UnknownClassError(DecodeError):
    """No decoder is registered for a class name or chunk tag."""
    pass


class CompressedSizeMismatchError(DecodeError):
    """LZH payload does not produce the expected number of bytes."""
    pass


class PersistObject:
    """Base class for objects created through the persist registry.

    Subclasses implement ``read`` as a classmethod that consumes the object's
    payload from the stream and returns a fully populated instance.
    """

    #: Class name used in ``PERS`` framed chunks, if any
    persist_name: Optional[str] = None

    @classmethod
    def read(cls, stream, version: int, registry=None) -> 'PersistObject':
        """Decode an instance from the stream.

        Args:
            stream: ByteStream positioned at the object payload
            version: Version number from the enclosing ``PERS`` header,
                or 0 for tag framed objects
            registry: PersistRegistry used for nested objects

        Returns:
            Decoded object

        Raises:
            DecodeError: If the payload is invalid
        """
        raise NotImplementedError("Subclasses must implement read()")

    @staticmethod
    def check_version(kind: str, version: int, low: int, high: int) -> None:
        """Raise UnsupportedVersionError unless low <= version <= high."""
        if version < low or version > high:
            raise UnsupportedVersionError(kind, version)

    @staticmethod
    def check_count(kind: str, count: int) -> int:
        """Validate a signed element count read from the stream."""
        if count < 0:
            raise MalformedChunkError(f"Negative {kind} count: {count}")
        return count
