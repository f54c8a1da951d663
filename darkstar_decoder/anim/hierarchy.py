"""Parent/child lookup tables for shape nodes."""
from dataclasses import dataclass, field
import logging
from typing import List, Sequence

from ..chunks.base import MalformedChunkError

logger = logging.getLogger(__name__)


@dataclass
class ChildInfo:
    first_child: int = -1
    num_children: int = 0


@dataclass
class NodeChildren:
    """Children of every node as slices of one id list.

    ``child_info[parent + 1]`` describes the children of ``parent``; slot 0
    holds the root nodes (parent -1).
    """
    child_info: List[ChildInfo] = field(default_factory=list)
    child_ids: List[int] = field(default_factory=list)

    def children_of(self, node: int) -> List[int]:
        info = self.child_info[node + 1]
        if info.num_children == 0:
            return []
        return self.child_ids[info.first_child:info.first_child + info.num_children]

    @property
    def roots(self) -> List[int]:
        return self.children_of(-1)

    def walk(self, node: int):
        """Yield a node and all of its descendants, depth first."""
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.children_of(current)))


def build_node_children(parents: Sequence[int]) -> NodeChildren:
    """Build child lists from each node's parent index.

    Args:
        parents: Parent index per node, -1 for roots

    Returns:
        NodeChildren with children listed in ascending node order

    Raises:
        MalformedChunkError: If a parent index is out of range or the
            parent links form a cycle
    """
    count = len(parents)
    for node, parent in enumerate(parents):
        if parent < -1 or parent >= count:
            raise MalformedChunkError(f"Node {node} has invalid parent {parent}")

    sorted_nodes = sorted(range(count), key=lambda node: (parents[node], node))

    result = NodeChildren(child_info=[ChildInfo() for _ in range(count + 1)])
    current_parent = None
    for node in sorted_nodes:
        parent = parents[node]
        if parent != current_parent:
            current_parent = parent
            result.child_info[parent + 1].first_child = len(result.child_ids)
        result.child_ids.append(node)
        result.child_info[parent + 1].num_children += 1

    # Nodes on a parent cycle are unreachable from the roots
    reachable = sum(1 for root in result.roots for _ in result.walk(root))
    if reachable != count:
        raise MalformedChunkError(
            f"Node hierarchy contains a cycle ({count - reachable} unreachable nodes)"
        )

    logger.debug(f"Built hierarchy for {count} nodes, {len(result.roots)} roots")
    return result
