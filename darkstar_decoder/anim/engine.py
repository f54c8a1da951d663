"""Shape animation: sequence threads, node transforms and object state."""
from dataclasses import dataclass, field
from enum import IntEnum
import logging
import math
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..chunks.base import MalformedChunkError
from ..config import DecoderConfig
from ..formats.shape.records import (
    KEYFRAME_FRAME_MATTERS,
    KEYFRAME_MAT_MASK,
    KEYFRAME_MAT_MATTERS,
    KEYFRAME_VIS,
    KEYFRAME_VIS_MATTERS,
    Keyframe,
    Sequence,
    SubSequence,
)
from .detail import detail_size, select_detail_index
from .quat import interpolate_transform, transform_matrix

logger = logging.getLogger(__name__)

NODE_VISIBLE = 0x1
NODE_FORCE_HIDDEN = 0x2


class ThreadState(IntEnum):
    STOPPED = 0
    PLAYING = 1
    PLAYING_TRANSITION_WAIT = 2
    TRANSITIONING = 3


@dataclass
class ShapeThread:
    """Playback state of one sequence.

    ``node_tracks`` and ``object_tracks`` hold the subsequence bound to each
    node and object, -1 where the sequence does not animate it.
    """
    sequence_idx: int = -1
    transition_idx: int = -1
    pos: float = 0.0
    state: ThreadState = ThreadState.STOPPED
    enabled: bool = True
    node_tracks: List[int] = field(default_factory=list)
    object_tracks: List[int] = field(default_factory=list)


@dataclass
class ObjectState:
    frame: int = 0
    tex_frame: int = 0
    draw: bool = True
    last_keyframe: int = -1


@dataclass
class DrawItem:
    """An object ready to render."""
    object_index: int
    mesh_index: int
    node_index: int
    frame: int
    tex_frame: int
    transform: np.ndarray


class ShapeAnimator:
    """Evaluates a decoded Shape over time.

    Threads play sequences; ``animate()`` resolves node transforms, object
    states and node visibility for the always node and the current detail.
    """

    def __init__(self, shape, config: Optional[DecoderConfig] = None):
        self.shape = shape
        self.config = config or DecoderConfig()
        self.threads: List[ShapeThread] = []

        num_nodes = len(shape.nodes)
        self.always_node = shape.always_node if 0 <= shape.always_node < num_nodes else -1
        self.current_detail = 0 if shape.details else -1

        self.node_transforms = [np.identity(4) for _ in range(num_nodes)]
        self.node_visibility = [0] * num_nodes
        self.object_info = [ObjectState() for _ in shape.objects]

        self._check_node_keys()
        self.runtime_details = self._build_runtime_details()

        self.animate()

    def _check_node_keys(self) -> None:
        """Node track keyframes must point at existing transforms."""
        num_transforms = len(self.shape.transforms)
        for node_idx, node in enumerate(self.shape.nodes):
            first = node.first_subsequence
            for subsequence in self.shape.subsequences[first:first + node.num_subsequences]:
                start = subsequence.first_keyframe
                for kf in self.shape.keyframes[start:start + subsequence.num_keyframes]:
                    if kf.key >= num_transforms:
                        raise MalformedChunkError(
                            f"Node {node_idx} keyframe references transform {kf.key} of {num_transforms}"
                        )

    def _objects_under(self, node_idx: int) -> List[int]:
        if node_idx < 0:
            return []
        subtree = set(self.shape.node_children.walk(node_idx))
        return [i for i, obj in enumerate(self.shape.objects) if obj.node_index in subtree]

    def _build_runtime_details(self) -> List[List[int]]:
        """Object lists: slot 0 for the always node, then one per detail."""
        runtime = [self._objects_under(self.always_node)]
        for detail in self.shape.details:
            runtime.append(self._objects_under(detail.root_node))
        return runtime

    # Threads

    def add_thread(self) -> int:
        self.threads.append(ShapeThread(
            node_tracks=[-1] * len(self.shape.nodes),
            object_tracks=[-1] * len(self.shape.objects),
        ))
        return len(self.threads) - 1

    def _bind_track(self, first: int, count: int, sequence_idx: int) -> int:
        for i in range(first, first + count):
            if self.shape.subsequences[i].sequence_idx == sequence_idx:
                return i
        return -1

    def set_thread_sequence(self, idx: int, sequence_idx: int) -> None:
        """Start playing a sequence on a thread from position 0.

        A sequence index outside the shape's sequences leaves the thread stopped.

        Raises:
            IndexError: If the thread does not exist
        """
        if not 0 <= idx < len(self.threads):
            raise IndexError(f"No thread {idx} ({len(self.threads)} threads)")
        thread = self.threads[idx]
        thread.sequence_idx = sequence_idx
        thread.transition_idx = -1
        thread.pos = 0.0
        if 0 <= sequence_idx < len(self.shape.sequences):
            thread.state = ThreadState.PLAYING
        else:
            thread.state = ThreadState.STOPPED

        thread.node_tracks = [
            self._bind_track(node.first_subsequence, node.num_subsequences, sequence_idx)
            for node in self.shape.nodes
        ]
        thread.object_tracks = [
            self._bind_track(obj.first_subsequence, obj.num_subsequences, sequence_idx)
            for obj in self.shape.objects
        ]
        self._reset_object_keyframes()
        logger.debug(f"Thread {idx} playing sequence {sequence_idx}")

    def remove_thread(self, idx: int) -> None:
        del self.threads[idx]

    def set_thread_enabled(self, idx: int, enabled: bool) -> None:
        self.threads[idx].enabled = enabled

    def _reset_object_keyframes(self) -> None:
        for state in self.object_info:
            state.last_keyframe = -1

    def _thread_sequence(self, thread: ShapeThread) -> Optional[Sequence]:
        if thread.sequence_idx < 0 or thread.sequence_idx >= len(self.shape.sequences):
            return None
        return self.shape.sequences[thread.sequence_idx]

    def advance_threads(self, dt: float) -> None:
        """Move every playing thread forward by ``dt`` seconds.

        Cyclic sequences wrap at the end and re-latch object keyframes;
        other sequences stop at position 1.
        """
        for idx, thread in enumerate(self.threads):
            sequence = self._thread_sequence(thread)
            if sequence is None or thread.state != ThreadState.PLAYING:
                continue
            if sequence.duration <= 0:
                logger.warning(f"Thread {idx}: sequence {thread.sequence_idx} has no duration")
                continue

            thread.pos += dt / sequence.duration
            if thread.pos >= 1.0:
                if sequence.cyclic:
                    thread.pos = math.fmod(thread.pos, 1.0)
                    self._reset_object_keyframes()
                else:
                    thread.pos = 1.0
                    thread.state = ThreadState.STOPPED

    # Keyframe sampling

    def subsequence_keyframes(self, sequence: Sequence, subsequence: SubSequence,
                              pos: float) -> Tuple[Keyframe, Keyframe, float]:
        """Keyframes bracketing ``pos`` and the blend factor between them."""
        eps = self.config.keyframe_epsilon
        keyframes = self.shape.keyframes
        first = subsequence.first_keyframe
        last = first + subsequence.num_keyframes - 1

        prev_idx = first - 1
        next_idx = last + 1
        for i in range(first, last + 1):
            kf_pos = keyframes[i].pos
            if kf_pos <= pos + eps:
                prev_idx = i
            elif kf_pos >= pos - eps:
                next_idx = i
                break

        if sequence.cyclic:
            if prev_idx < first:
                # before the first key: blend from the last key of the previous cycle
                prev_idx = last
                span = keyframes[next_idx].pos + 1.0 - keyframes[prev_idx].pos
                t = (pos + 1.0 - keyframes[prev_idx].pos) / span if span > 0 else 0.0
            elif next_idx > last:
                next_idx = first
                span = keyframes[next_idx].pos + 1.0 - keyframes[prev_idx].pos
                t = (pos - keyframes[prev_idx].pos) / span if span > 0 else 0.0
            else:
                span = keyframes[next_idx].pos - keyframes[prev_idx].pos
                if span == 0:
                    t = 0.0 if pos == keyframes[prev_idx].pos else 1.0
                else:
                    t = (pos - keyframes[prev_idx].pos) / span
            if prev_idx == next_idx:
                t = 0.0
        else:
            if prev_idx < first:
                prev_idx = first
                t = 0.0
            elif next_idx > last:
                next_idx = last
                t = 1.0
            else:
                span = keyframes[next_idx].pos - keyframes[prev_idx].pos
                t = 0.0 if span <= 0 else (pos - keyframes[prev_idx].pos) / span

        return keyframes[prev_idx], keyframes[next_idx], t

    def _nearest_keyframe(self, subsequence: SubSequence, state: ObjectState, pos: float) -> Keyframe:
        """Latest flagged values at or before ``pos``, scanning on from the cached keyframe.

        The returned keyframe carries the latched mesh frame in ``key`` and the
        material frame plus the flags seen in ``mat_index``.
        """
        eps = self.config.keyframe_epsilon
        keyframes = self.shape.keyframes
        first = subsequence.first_keyframe
        end = first + subsequence.num_keyframes

        if state.last_keyframe >= first:
            if state.last_keyframe >= end or pos < keyframes[state.last_keyframe].pos:
                state.last_keyframe = first
        else:
            state.last_keyframe = first

        prev_idx = first - 1
        frame = 0
        tex_frame = 0
        matters = 0
        for i in range(state.last_keyframe, end):
            kf = keyframes[i]
            if kf.pos <= pos + eps:
                prev_idx = i
                if kf.vis_matters:
                    matters = (matters & ~KEYFRAME_VIS) | KEYFRAME_VIS_MATTERS | (kf.mat_index & KEYFRAME_VIS)
                if kf.frame_matters:
                    frame = kf.key
                    matters |= KEYFRAME_FRAME_MATTERS
                if kf.mat_matters:
                    tex_frame = kf.material_frame
                    matters |= KEYFRAME_MAT_MATTERS
            elif kf.pos >= pos - eps:
                break

        state.last_keyframe = prev_idx
        kf_pos = keyframes[prev_idx].pos if prev_idx >= first else pos
        return Keyframe(kf_pos, frame, (tex_frame & KEYFRAME_MAT_MASK) | matters)

    # Evaluation

    def animate(self) -> None:
        if self.always_node >= 0:
            self.animate_node(self.always_node)
            self.animate_objects(self.runtime_details[0])

        root = self._current_root()
        if root >= 0:
            self.animate_node(root)
            self.animate_objects(self.runtime_details[self.current_detail + 1])

        self.determine_node_visibility()

    def _current_root(self) -> int:
        if self.current_detail < 0:
            return -1
        return self.shape.details[self.current_detail].root_node

    def _local_transform(self, node_idx: int) -> np.ndarray:
        shape = self.shape
        node = shape.nodes[node_idx]
        default = shape.transforms[node.default_transform]
        local = transform_matrix(default.rot, default.pos)

        # Later threads override earlier ones
        for thread in self.threads:
            sequence = self._thread_sequence(thread)
            if sequence is None or not thread.enabled:
                continue
            sub_idx = thread.node_tracks[node_idx]
            if sub_idx < 0:
                continue
            subsequence = shape.subsequences[sub_idx]
            if subsequence.num_keyframes <= 0:
                continue

            kf_a, kf_b, t = self.subsequence_keyframes(sequence, subsequence, thread.pos)
            if kf_a.vis_matters:
                if kf_a.visible:
                    self.node_visibility[node_idx] &= NODE_FORCE_HIDDEN
                else:
                    self.node_visibility[node_idx] |= NODE_FORCE_HIDDEN

            xfm_a = shape.transforms[kf_a.key]
            if kf_a.key == kf_b.key:
                local = transform_matrix(xfm_a.rot, xfm_a.pos)
            else:
                xfm_b = shape.transforms[kf_b.key]
                local = interpolate_transform(xfm_a.rot, xfm_a.pos, xfm_b.rot, xfm_b.pos, t)
        return local

    def animate_node(self, node_idx: int) -> None:
        """Resolve world transforms for a node and its subtree, parents first."""
        for current in self.shape.node_children.walk(node_idx):
            self.node_visibility[current] &= ~NODE_FORCE_HIDDEN
            local = self._local_transform(current)

            parent = self.shape.nodes[current].parent
            if parent >= 0:
                parent_xfm = self.node_transforms[parent]
                world = np.identity(4)
                world[:3, :3] = parent_xfm[:3, :3] @ local[:3, :3]
                world[:3, 3] = parent_xfm[:3, :3] @ local[:3, 3] + parent_xfm[:3, 3]
                self.node_transforms[current] = world
            else:
                self.node_transforms[current] = local

    def animate_objects(self, object_ids: List[int]) -> None:
        """Latch frame, material frame and visibility of objects from their tracks."""
        for obj_idx in object_ids:
            obj = self.shape.objects[obj_idx]
            state = self.object_info[obj_idx]

            if state.last_keyframe < 0:
                state.draw = not obj.invisible_by_default
                state.frame = 0
                state.tex_frame = 0
                state.last_keyframe = 0

            for thread in self.threads:
                if self._thread_sequence(thread) is None or not thread.enabled:
                    continue
                sub_idx = thread.object_tracks[obj_idx]
                if sub_idx < 0:
                    continue

                kf = self._nearest_keyframe(self.shape.subsequences[sub_idx], state, thread.pos)
                if kf.vis_matters:
                    state.draw = kf.visible
                if kf.frame_matters:
                    state.frame = kf.key
                if kf.mat_matters:
                    state.tex_frame = kf.material_frame

    def determine_node_visibility(self) -> None:
        """Mark nodes under the always node and current detail root visible.

        A force hidden node hides its whole subtree.
        """
        for i in range(len(self.node_visibility)):
            self.node_visibility[i] &= NODE_FORCE_HIDDEN

        if self.always_node >= 0:
            self.node_visibility[self.always_node] = NODE_VISIBLE
            self._update_visibility(self.always_node)

        root = self._current_root()
        if root >= 0:
            self._update_visibility(root)

    def _update_visibility(self, node_idx: int) -> None:
        stack = [(node_idx, True)]
        while stack:
            current, parent_visible = stack.pop()
            if parent_visible and self.node_visibility[current] & NODE_FORCE_HIDDEN:
                parent_visible = False
            if parent_visible:
                self.node_visibility[current] |= NODE_VISIBLE
            for child in self.shape.node_children.children_of(current):
                stack.append((child, parent_visible))

    # Queries

    def is_node_visible(self, node_idx: int) -> bool:
        return bool(self.node_visibility[node_idx] & NODE_VISIBLE)

    def node_transform(self, node_idx: int) -> np.ndarray:
        return self.node_transforms[node_idx]

    def visible_node_transforms(self) -> Dict[int, np.ndarray]:
        return {i: xfm for i, xfm in enumerate(self.node_transforms) if self.is_node_visible(i)}

    def _active_objects(self) -> List[int]:
        active = list(self.runtime_details[0]) if self.always_node >= 0 else []
        if self.current_detail >= 0:
            active.extend(self.runtime_details[self.current_detail + 1])
        return active

    def object_states(self) -> Dict[int, ObjectState]:
        return {i: self.object_info[i] for i in self._active_objects()}

    def draw_list(self) -> List[DrawItem]:
        """Objects to render this frame with their node's world transform.

        Objects without a mesh, hidden objects and objects on invisible nodes
        are left out. A mesh frame past the end of the mesh is reset to 0.
        """
        items = []
        for obj_idx in self._active_objects():
            obj = self.shape.objects[obj_idx]
            state = self.object_info[obj_idx]
            if obj.mesh_index < 0 or obj.mesh_index >= len(self.shape.meshes):
                continue
            if not state.draw or obj.node_index < 0 or not self.is_node_visible(obj.node_index):
                continue

            mesh = self.shape.meshes[obj.mesh_index]
            if not mesh.faces:
                continue
            if state.frame >= len(mesh.frames):
                logger.warning(f"Mesh frame invalid ({state.frame}), object {obj_idx}")
                state.frame = 0

            items.append(DrawItem(
                object_index=obj_idx,
                mesh_index=obj.mesh_index,
                node_index=obj.node_index,
                frame=state.frame,
                tex_frame=state.tex_frame,
                transform=self.node_transforms[obj.node_index],
            ))
        return items

    # Level of detail

    def select_detail(self, distance: float, width: float, height: float) -> int:
        """Pick the current detail for a viewing distance and viewport size."""
        if not self.shape.details:
            self.current_detail = -1
            return -1
        size = detail_size(self.shape.radius, distance, width, height, self.config.near_detail_size)
        self.current_detail = select_detail_index(self.shape.details, size)
        logger.debug(f"Detail size {size:.2f} selects detail {self.current_detail}")
        return self.current_detail
