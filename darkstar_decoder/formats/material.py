"""Material list decoding (TS::MaterialList)."""
from dataclasses import dataclass, field
import logging
from typing import List, Tuple

from ..chunks.base import PersistObject, TruncatedStreamError
from ..chunks.stream import ByteStream

logger = logging.getLogger(__name__)

NAMESIZE_V1 = 16
NAMESIZE_V2 = 32

# Material flag fields
FLAG_MASK = 0xF
FLAG_NULL = 0x0
FLAG_PALETTE = 0x1
FLAG_RGB = 0x2
FLAG_TEXTURE = 0x3
FLAG_SHADING_MASK = 0xF00
FLAG_SHADING_NONE = 0x100
FLAG_SHADING_FLAT = 0x200
FLAG_SHADING_SMOOTH = 0x300
FLAG_TEXTURE_MASK = 0xF000
FLAG_TEXTURE_TRANSPARENT = 0x1000


@dataclass
class Material:
    """Single material entry.

    Field presence depends on the list version: v0 has a 16 byte file name,
    v1 and v3+ carry surface properties, v2 and v3 imply default properties.
    """
    flags: int = 0
    alpha: float = 0.0
    index: int = 0
    rgb: Tuple[int, int, int] = (0, 0, 0)
    filename: str = ''
    type: int = 0
    elasticity: float = 0.0
    friction: float = 0.0
    use_default_props: int = 1

    @staticmethod
    def record_size(version: int) -> int:
        size = 16 + (NAMESIZE_V1 if version < 2 else NAMESIZE_V2)
        if version == 1 or version > 2:
            size += 12
        if version != 2 and version != 3:
            size += 4
        return size

    @classmethod
    def read(cls, stream: ByteStream, version: int) -> 'Material':
        material = cls()
        material.flags = stream.read_u32()
        material.alpha = stream.read_f32()
        material.index = stream.read_u32()
        material.rgb = stream.read_array('B', 4)[:3]
        material.filename = stream.read_fixed_string(NAMESIZE_V1 if version < 2 else NAMESIZE_V2)
        if version == 1 or version > 2:
            material.type = stream.read_u32()
            material.elasticity = stream.read_f32()
            material.friction = stream.read_f32()
        if version != 2 and version != 3:
            material.use_default_props = stream.read_u32()
        else:
            material.use_default_props = 1
        return material

    @property
    def kind(self) -> int:
        return self.flags & FLAG_MASK

    @property
    def is_textured(self) -> bool:
        return self.kind == FLAG_TEXTURE


@dataclass
class MaterialList(PersistObject):
    """Materials for every detail level, ``num_details`` blocks of equal size."""
    persist_name = 'TS::MaterialList'

    num_details: int = 0
    materials: List[Material] = field(default_factory=list)

    @classmethod
    def read(cls, stream: ByteStream, version: int, registry=None) -> 'MaterialList':
        cls.check_version('TS::MaterialList', version, 0, 4)
        num_details = stream.read_u32()
        count = stream.read_u32()
        total = count * num_details
        needed = total * Material.record_size(version)
        if needed > stream.remaining():
            raise TruncatedStreamError(stream.position, needed, stream.size)
        materials = [Material.read(stream, version) for _ in range(total)]
        logger.debug(f"MaterialList v{version}: {count} materials x {num_details} details")
        return cls(num_details=num_details, materials=materials)

    @property
    def materials_per_detail(self) -> int:
        return len(self.materials) // self.num_details if self.num_details else 0

    def for_detail(self, detail: int) -> List[Material]:
        count = self.materials_per_detail
        return self.materials[detail * count:(detail + 1) * count]
