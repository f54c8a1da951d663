"""TS::Shape decoder.

A shape is a node tree with animation tables (sequences, subsequences,
keyframes and transforms), objects attached to nodes, level of detail
roots and the meshes and material list the objects draw with.

Layout generations:
- version < 2: no transitions, v2 keyframe packing
- version < 4: no frame triggers
- version < 7: float quaternion transforms with scale
- version 7: packed quaternion transforms with scale
- version > 7: fixed 16-bit records, explicit bounds
"""
from .parser import Shape
from .records import (
    Detail,
    FrameTrigger,
    Keyframe,
    Node,
    Sequence,
    ShapeObject,
    SubSequence,
    Transform,
    Transition,
)

__all__ = [
    'Detail',
    'FrameTrigger',
    'Keyframe',
    'Node',
    'Sequence',
    'Shape',
    'ShapeObject',
    'SubSequence',
    'Transform',
    'Transition',
]
