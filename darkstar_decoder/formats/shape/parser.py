"""Shape decoding (TS::Shape, versions 0 to 8)."""
from dataclasses import dataclass, field
import logging
from typing import List, Optional, Tuple

from ...anim.hierarchy import NodeChildren, build_node_children
from ...anim.quat import Quat16
from ...chunks.base import MalformedChunkError, PersistObject
from ...chunks.stream import ByteStream
from ..material import MaterialList
from ..mesh import CelAnimMesh
from .records import (
    Detail, DetailRecord, FrameTrigger, FrameTriggerRecord, Keyframe, KeyframeRecord,
    KEYFRAME_FRAME_MATTERS, KEYFRAME_FRAME_MATTERS_V7, KEYFRAME_KEY_MASK_V2,
    KEYFRAME_MAT_MASK_V7, KEYFRAME_MAT_MATTERS, KEYFRAME_MAT_MATTERS_V7, KEYFRAME_VALID_V2,
    KEYFRAME_VIS, KEYFRAME_VIS_MATTERS, KEYFRAME_VIS_MATTERS_V7, KEYFRAME_VIS_V2,
    NAME_SIZE, Node, NodeRecord, ObjectRecord, Quat16Record, Sequence, SequenceRecord,
    ShapeObject, SubSequence, SubSequenceRecord, Transform, TransformRecord, Transition,
    TransitionRecord, quat_from_record, to_i16, to_u16, transform_from_record,
)

logger = logging.getLogger(__name__)

MAX_VERSION = 8


def _read_nodes(stream: ByteStream, version: int, count: int) -> List[Node]:
    if version <= 7:
        return [Node(*(to_i16(v) for v in stream.read_array('i', 5))) for _ in range(count)]
    return [
        Node(r.name, r.parent, r.num_subsequences, r.first_subsequence, r.default_transform)
        for r in stream.read_struct_array(NodeRecord, count)
    ]


def _read_sequences(stream: ByteStream, version: int, count: int) -> List[Sequence]:
    if version >= 5:
        return [
            Sequence(r.name, r.cyclic, r.duration, r.priority, r.first_trigger_frame,
                     r.num_trigger_frames, r.num_ifl_subsequences, r.first_ifl_subsequence)
            for r in stream.read_struct_array(SequenceRecord, count)
        ]

    sequences = []
    for _ in range(count):
        name, cyclic = stream.read_array('i', 2)
        duration = stream.read_f32()
        priority = stream.read_i32()
        sequence = Sequence(name, cyclic, duration, priority)
        if version >= 4:
            sequence.first_trigger_frame, sequence.num_trigger_frames = stream.read_array('i', 2)
        sequences.append(sequence)
    return sequences


def _read_subsequences(stream: ByteStream, version: int, count: int) -> List[SubSequence]:
    if version <= 7:
        return [SubSequence(*(to_i16(v) for v in stream.read_array('i', 3))) for _ in range(count)]
    return [
        SubSequence(r.sequence_idx, r.num_keyframes, r.first_keyframe)
        for r in stream.read_struct_array(SubSequenceRecord, count)
    ]


def decode_keyframe_v2(pos: float, packed: int) -> Keyframe:
    """Keyframe from the version 0-2 packing: visibility bits above a 30 bit key."""
    mat_index = KEYFRAME_FRAME_MATTERS
    if not packed & KEYFRAME_VALID_V2:
        mat_index |= KEYFRAME_VIS_MATTERS
    if packed & KEYFRAME_VIS_V2:
        mat_index |= KEYFRAME_VIS
    return Keyframe(pos, to_u16(packed & KEYFRAME_KEY_MASK_V2), mat_index)


def decode_keyframe_v7(pos: float, key: int, packed: int) -> Keyframe:
    """Keyframe from the version 3-7 packing: flag bits above a 28 bit material index."""
    mat_index = to_u16(packed & KEYFRAME_MAT_MASK_V7)
    if packed & KEYFRAME_VIS_V2:
        mat_index |= KEYFRAME_VIS
    if packed & KEYFRAME_VIS_MATTERS_V7:
        mat_index |= KEYFRAME_VIS_MATTERS
    if packed & KEYFRAME_FRAME_MATTERS_V7:
        mat_index |= KEYFRAME_FRAME_MATTERS
    if packed & KEYFRAME_MAT_MATTERS_V7:
        mat_index |= KEYFRAME_MAT_MATTERS
    return Keyframe(pos, to_u16(key), mat_index)


def _read_keyframes(stream: ByteStream, version: int, count: int) -> List[Keyframe]:
    keyframes = []
    if version < 3:
        for _ in range(count):
            pos = stream.read_f32()
            keyframes.append(decode_keyframe_v2(pos, stream.read_u32()))
    elif version <= 7:
        for _ in range(count):
            pos = stream.read_f32()
            key, packed = stream.read_array('I', 2)
            keyframes.append(decode_keyframe_v7(pos, key, packed))
    else:
        keyframes = [Keyframe(r.pos, r.key, r.mat_index)
                     for r in stream.read_struct_array(KeyframeRecord, count)]
    return keyframes


def _read_v6_transform(stream: ByteStream) -> Transform:
    rot = Quat16.from_floats(*stream.read_array('f', 4))
    pos = stream.read_vec3()
    stream.read_vec3()  # scale, unused
    return Transform(rot, pos)


def _read_v7_transform(stream: ByteStream) -> Transform:
    rot = quat_from_record(stream.read_struct(Quat16Record))
    pos = stream.read_vec3()
    stream.read_vec3()  # scale, unused
    return Transform(rot, pos)


def _read_transforms(stream: ByteStream, version: int, count: int) -> List[Transform]:
    if version < 7:
        return [_read_v6_transform(stream) for _ in range(count)]
    elif version == 7:
        return [_read_v7_transform(stream) for _ in range(count)]
    return [transform_from_record(r) for r in stream.read_struct_array(TransformRecord, count)]


def _read_objects(stream: ByteStream, version: int, count: int) -> List[ShapeObject]:
    if version > 7:
        return [
            ShapeObject(r.name, r.flags, r.mesh_index, r.node_index, tuple(r.offset),
                        r.num_subsequences, r.first_subsequence)
            for r in stream.read_struct_array(ObjectRecord, count)
        ]

    objects = []
    for _ in range(count):
        name = stream.read_i16()
        flags = stream.read_u16()
        mesh_index = stream.read_i32()
        node_index = to_i16(stream.read_i32())
        stream.skip(4 + 4 * 3 * 3)  # flags and rotation matrix
        offset = stream.read_vec3()
        num_subsequences, first_subsequence = (to_i16(v) for v in stream.read_array('i', 2))
        objects.append(ShapeObject(name, flags, mesh_index, node_index, offset,
                                   num_subsequences, first_subsequence))
    return objects


def _read_transitions(stream: ByteStream, version: int, count: int) -> List[Transition]:
    if version > 7:
        return [
            Transition(r.start_sequence, r.end_sequence, r.start_position, r.end_position,
                       r.duration, transform_from_record(r.transform))
            for r in stream.read_struct_array(TransitionRecord, count)
        ]

    read_transform = _read_v6_transform if version < 7 else _read_v7_transform
    transitions = []
    for _ in range(count):
        start_sequence, end_sequence = stream.read_array('i', 2)
        start_position, end_position, duration = stream.read_array('f', 3)
        transitions.append(Transition(start_sequence, end_sequence, start_position,
                                      end_position, duration, read_transform(stream)))
    return transitions


@dataclass
class Shape(PersistObject):
    """Skeletal shape: node tree, animation tables, objects and meshes."""
    persist_name = 'TS::Shape'

    version: int = 0
    radius: float = 0.0
    center: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    min_bounds: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    max_bounds: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    nodes: List[Node] = field(default_factory=list)
    sequences: List[Sequence] = field(default_factory=list)
    subsequences: List[SubSequence] = field(default_factory=list)
    keyframes: List[Keyframe] = field(default_factory=list)
    transforms: List[Transform] = field(default_factory=list)
    names: List[str] = field(default_factory=list)
    objects: List[ShapeObject] = field(default_factory=list)
    details: List[Detail] = field(default_factory=list)
    transitions: List[Transition] = field(default_factory=list)
    frame_triggers: List[FrameTrigger] = field(default_factory=list)
    meshes: List[CelAnimMesh] = field(default_factory=list)
    materials: Optional[MaterialList] = None
    default_materials: int = 0
    always_node: int = -1
    node_children: NodeChildren = field(default_factory=NodeChildren)

    @classmethod
    def read(cls, stream: ByteStream, version: int, registry=None) -> 'Shape':
        cls.check_version('TS::Shape', version, 0, MAX_VERSION)
        if registry is None:
            from ...chunks.registry import default_registry
            registry = default_registry()

        (num_nodes, num_sequences, num_subsequences, num_keyframes, num_transforms,
         num_names, num_objects, num_details, num_meshes) = stream.read_array('I', 9)
        num_transitions = stream.read_u32() if version >= 2 else 0
        num_frame_triggers = stream.read_u32() if version >= 4 else 0

        shape = cls(version=version)
        shape.radius = stream.read_f32()
        shape.center = stream.read_vec3()
        if version > 7:
            shape.min_bounds = stream.read_vec3()
            shape.max_bounds = stream.read_vec3()
        else:
            shape.min_bounds = tuple(c - shape.radius for c in shape.center)
            shape.max_bounds = tuple(c + shape.radius for c in shape.center)

        shape.nodes = _read_nodes(stream, version, num_nodes)
        shape.sequences = _read_sequences(stream, version, num_sequences)
        shape.subsequences = _read_subsequences(stream, version, num_subsequences)
        shape.keyframes = _read_keyframes(stream, version, num_keyframes)
        shape.transforms = _read_transforms(stream, version, num_transforms)
        shape.names = [stream.read_fixed_string(NAME_SIZE) for _ in range(num_names)]
        shape.objects = _read_objects(stream, version, num_objects)
        shape.details = [Detail(r.root_node, r.size)
                         for r in stream.read_struct_array(DetailRecord, num_details)]

        if version >= 2:
            shape.transitions = _read_transitions(stream, version, num_transitions)
        if version >= 4:
            shape.frame_triggers = [FrameTrigger(r.pos, r.value)
                                    for r in stream.read_struct_array(FrameTriggerRecord, num_frame_triggers)]
        if version >= 5:
            shape.default_materials = stream.read_i32()
        if version >= 6:
            shape.always_node = stream.read_i32()

        for i in range(num_meshes):
            mesh = registry.create_from_stream(stream)
            if not isinstance(mesh, CelAnimMesh):
                raise MalformedChunkError(f"Shape mesh {i} could not be decoded")
            shape.meshes.append(mesh)

        if stream.read_u32():
            materials = registry.create_from_stream(stream)
            if not isinstance(materials, MaterialList):
                raise MalformedChunkError("Shape material list could not be decoded")
            shape.materials = materials

        shape.validate()
        shape.node_children = build_node_children([node.parent for node in shape.nodes])

        logger.debug(
            f"Shape v{version}: {num_nodes} nodes, {num_sequences} sequences, "
            f"{num_objects} objects, {num_details} details, {num_meshes} meshes"
        )
        return shape

    def validate(self) -> None:
        """Check that table cross references stay in range."""
        def check_range(kind: str, index: int, first: int, count: int, size: int) -> None:
            if count == 0:
                return
            if count < 0 or first < 0 or first + count > size:
                raise MalformedChunkError(
                    f"{kind} {index} references entries {first}..{first + count} of {size}"
                )

        for i, node in enumerate(self.nodes):
            check_range('Node', i, node.first_subsequence, node.num_subsequences, len(self.subsequences))
            if not 0 <= node.default_transform < len(self.transforms):
                raise MalformedChunkError(f"Node {i} has invalid default transform {node.default_transform}")
        for i, obj in enumerate(self.objects):
            check_range('Object', i, obj.first_subsequence, obj.num_subsequences, len(self.subsequences))
            if obj.node_index >= len(self.nodes):
                raise MalformedChunkError(f"Object {i} attached to missing node {obj.node_index}")
        for i, subsequence in enumerate(self.subsequences):
            check_range('Subsequence', i, subsequence.first_keyframe, subsequence.num_keyframes,
                        len(self.keyframes))
        for i, detail in enumerate(self.details):
            if not -1 <= detail.root_node < len(self.nodes):
                raise MalformedChunkError(f"Detail {i} has invalid root node {detail.root_node}")

    def find_name(self, name: str) -> int:
        """Index of a name, compared case-insensitively, or -1."""
        lowered = name.lower()
        for i, candidate in enumerate(self.names):
            if candidate.lower() == lowered:
                return i
        return -1

    def get_name(self, index: int) -> str:
        return self.names[index]

    def find_node(self, name: str) -> int:
        name_index = self.find_name(name)
        if name_index < 0:
            return -1
        for i, node in enumerate(self.nodes):
            if node.name == name_index:
                return i
        return -1

    def find_sequence(self, name: str) -> int:
        name_index = self.find_name(name)
        if name_index < 0:
            return -1
        for i, sequence in enumerate(self.sequences):
            if sequence.name == name_index:
                return i
        return -1
