"""Shape record types and their fixed on-disk layouts."""
from dataclasses import dataclass
from typing import Tuple

from construct import Float32l, Int16sl, Int16ul, Int32sl, Padding, Struct

from ...anim.quat import Quat16

# Keyframe mat_index bits
KEYFRAME_FRAME_MATTERS = 1 << 12
KEYFRAME_MAT_MATTERS = 1 << 13
KEYFRAME_VIS_MATTERS = 1 << 14
KEYFRAME_VIS = 1 << 15
KEYFRAME_MAT_MASK = 0x0FFF

# Version 2 and earlier keyframe packing
KEYFRAME_VIS_V2 = 1 << 31
KEYFRAME_VALID_V2 = 1 << 30
KEYFRAME_KEY_MASK_V2 = 0x3FFFFFFF

# Version 3 to 7 keyframe packing
KEYFRAME_VIS_MATTERS_V7 = 1 << 30
KEYFRAME_MAT_MATTERS_V7 = 1 << 29
KEYFRAME_FRAME_MATTERS_V7 = 1 << 28
KEYFRAME_MAT_MASK_V7 = 0x0FFFFFFF

OBJECT_INVISIBLE_DEFAULT = 0x1

NAME_SIZE = 24

Vec3 = Float32l[3]

Quat16Record = Struct(
    "x" / Int16sl,
    "y" / Int16sl,
    "z" / Int16sl,
    "w" / Int16sl,
)

# Version 8 layouts

NodeRecord = Struct(
    "name" / Int16sl,
    "parent" / Int16sl,
    "num_subsequences" / Int16sl,
    "first_subsequence" / Int16sl,
    "default_transform" / Int16sl,
)

SequenceRecord = Struct(
    "name" / Int32sl,
    "cyclic" / Int32sl,
    "duration" / Float32l,
    "priority" / Int32sl,
    "first_trigger_frame" / Int32sl,
    "num_trigger_frames" / Int32sl,
    "num_ifl_subsequences" / Int32sl,
    "first_ifl_subsequence" / Int32sl,
)

SubSequenceRecord = Struct(
    "sequence_idx" / Int16sl,
    "num_keyframes" / Int16sl,
    "first_keyframe" / Int16sl,
)

KeyframeRecord = Struct(
    "pos" / Float32l,
    "key" / Int16ul,
    "mat_index" / Int16ul,
)

TransformRecord = Struct(
    "rot" / Quat16Record,
    "pos" / Vec3,
)

ObjectRecord = Struct(
    "name" / Int16sl,
    "flags" / Int16ul,
    "mesh_index" / Int32sl,
    "node_index" / Int16sl,
    Padding(2),
    "offset" / Vec3,
    "num_subsequences" / Int16sl,
    "first_subsequence" / Int16sl,
)

DetailRecord = Struct(
    "root_node" / Int32sl,
    "size" / Float32l,
)

TransitionRecord = Struct(
    "start_sequence" / Int32sl,
    "end_sequence" / Int32sl,
    "start_position" / Float32l,
    "end_position" / Float32l,
    "duration" / Float32l,
    "transform" / TransformRecord,
)

FrameTriggerRecord = Struct(
    "pos" / Float32l,
    "value" / Int32sl,
)


@dataclass
class Node:
    name: int
    parent: int
    num_subsequences: int
    first_subsequence: int
    default_transform: int


@dataclass
class Sequence:
    name: int
    cyclic: int
    duration: float
    priority: int
    first_trigger_frame: int = 0
    num_trigger_frames: int = 0
    num_ifl_subsequences: int = 0
    first_ifl_subsequence: int = 0


@dataclass
class SubSequence:
    sequence_idx: int
    num_keyframes: int
    first_keyframe: int


@dataclass
class Keyframe:
    """Keyframe position and payload.

    ``key`` is a transform index for node tracks and a mesh frame for object
    tracks. The low 12 bits of ``mat_index`` hold a material frame, the upper
    four bits are the FRAME/MAT/VIS_MATTERS and VIS flags.
    """
    pos: float
    key: int
    mat_index: int

    @property
    def visible(self) -> bool:
        return bool(self.mat_index & KEYFRAME_VIS)

    @property
    def vis_matters(self) -> bool:
        return bool(self.mat_index & KEYFRAME_VIS_MATTERS)

    @property
    def frame_matters(self) -> bool:
        return bool(self.mat_index & KEYFRAME_FRAME_MATTERS)

    @property
    def mat_matters(self) -> bool:
        return bool(self.mat_index & KEYFRAME_MAT_MATTERS)

    @property
    def material_frame(self) -> int:
        return self.mat_index & KEYFRAME_MAT_MASK


@dataclass
class Transform:
    rot: Quat16
    pos: Tuple[float, float, float]


@dataclass
class ShapeObject:
    name: int
    flags: int
    mesh_index: int
    node_index: int
    offset: Tuple[float, float, float]
    num_subsequences: int
    first_subsequence: int

    @property
    def invisible_by_default(self) -> bool:
        return bool(self.flags & OBJECT_INVISIBLE_DEFAULT)


@dataclass
class Detail:
    root_node: int
    size: float


@dataclass
class Transition:
    start_sequence: int
    end_sequence: int
    start_position: float
    end_position: float
    duration: float
    transform: Transform


@dataclass
class FrameTrigger:
    pos: float
    value: int


def to_i16(value: int) -> int:
    """Truncate to a signed 16-bit value the way a narrowing store does."""
    return ((value + 0x8000) & 0xFFFF) - 0x8000


def to_u16(value: int) -> int:
    return value & 0xFFFF


def quat_from_record(record) -> Quat16:
    return Quat16(record.x, record.y, record.z, record.w)


def transform_from_record(record) -> Transform:
    return Transform(quat_from_record(record.rot), tuple(record.pos))
