"""Level of detail selection."""
import math
from typing import Sequence

NEAR_DETAIL_SIZE = 1000.0


def detail_size(radius: float, distance: float, width: float, height: float,
                near_size: float = NEAR_DETAIL_SIZE) -> float:
    """Projected size of a shape on screen.

    Args:
        radius: Shape bounding radius
        distance: Distance from the camera
        width: Viewport width
        height: Viewport height
        near_size: Size reported at zero or negative distance

    Returns:
        Size in viewport units, comparable to detail thresholds
    """
    if distance <= 0:
        return near_size
    return math.atan(radius / distance) * max(width, height) / math.radians(90.0)


def select_detail_index(details: Sequence, size: float) -> int:
    """Index of the last detail whose threshold is at most ``size``, else 0."""
    selected = 0
    for i, detail in enumerate(details):
        if detail.size <= size:
            selected = i
    return selected
