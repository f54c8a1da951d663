"""Quaternion math, node hierarchy and detail helpers."""
from .detail import detail_size, select_detail_index
from .hierarchy import NodeChildren, build_node_children
from .quat import Quat16, compat_interpolate, quat_to_matrix

__all__ = [
    'NodeChildren',
    'Quat16',
    'build_node_children',
    'compat_interpolate',
    'detail_size',
    'quat_to_matrix',
    'select_detail_index',
]
