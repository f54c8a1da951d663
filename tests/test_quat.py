"""
Tests for packed quaternions and detail sizing
"""
import math

import numpy as np
import pytest

from darkstar_decoder.anim.detail import detail_size, select_detail_index
from darkstar_decoder.anim.quat import (
    Quat16, compat_interpolate, interpolate_transform, quat_to_matrix, transform_matrix,
)
from darkstar_decoder.formats.shape.records import Detail

IDENTITY = Quat16(0, 0, 0, 0x7FFF)
# 90 degrees about z
QUARTER_Z = Quat16(0, 0, 23170, 23170)


class TestQuat16:
    """Quantised quaternion components"""

    def test_from_floats_truncates(self):
        quat = Quat16.from_floats(0.5, -0.5, 0.0, 1.0)
        assert (quat.x, quat.y, quat.z, quat.w) == (16383, -16383, 0, 0x7FFF)

    def test_from_floats_clamps(self):
        quat = Quat16.from_floats(2.0, -2.0, 0.0, 0.0)
        assert (quat.x, quat.y) == (0x7FFF, -0x8000)

    def test_to_quat(self):
        assert IDENTITY.to_quat().tolist() == [0.0, 0.0, 0.0, 1.0]


class TestInterpolation:
    """Legacy slerp and matrix conversion"""

    def test_identity_matrix(self):
        assert np.allclose(quat_to_matrix(IDENTITY.to_quat()), np.identity(4))

    def test_quarter_turn_matrix(self):
        """Rotations are the transpose of the textbook conversion"""
        mat = quat_to_matrix(QUARTER_Z.to_quat())
        assert mat[:3, :3] @ np.array([1.0, 0.0, 0.0]) == pytest.approx([0.0, -1.0, 0.0], abs=1e-3)

    def test_halfway(self):
        q = compat_interpolate(IDENTITY.to_quat(), QUARTER_Z.to_quat(), 0.5)
        angle = 2.0 * math.atan2(q[2], q[3])
        assert angle == pytest.approx(math.radians(45.0), abs=1e-3)

    def test_shorter_arc(self):
        """Opposite signs describe the same rotation; the result is not flipped"""
        q1 = np.array([0.0, 0.0, 0.0, 1.0])
        q2 = np.array([0.0, 0.0, 0.0, -1.0])
        assert compat_interpolate(q1, q2, 0.5) == pytest.approx([0.0, 0.0, 0.0, 1.0])

    def test_interpolate_transform(self):
        mat = interpolate_transform(IDENTITY, (0.0, 0.0, 0.0), IDENTITY, (4.0, 2.0, 0.0), 0.25)
        assert mat[:3, 3].tolist() == [1.0, 0.5, 0.0]
        assert np.allclose(mat[:3, :3], np.identity(3))

    def test_transform_matrix(self):
        mat = transform_matrix(IDENTITY, (1.0, 2.0, 3.0))
        assert mat[:3, 3].tolist() == [1.0, 2.0, 3.0]
        assert mat[3].tolist() == [0.0, 0.0, 0.0, 1.0]


class TestDetailSize:
    """Projected size and detail choice"""

    def test_near_distance(self):
        assert detail_size(10.0, 0.0, 640, 480) == 1000.0
        assert detail_size(10.0, -5.0, 640, 480, near_size=50.0) == 50.0

    def test_projected_size(self):
        # atan(1) is 45 degrees, half of the 90 degree field
        assert detail_size(10.0, 10.0, 640, 480) == pytest.approx(320.0)

    def test_select_last_fitting_detail(self):
        details = [Detail(0, 5.0), Detail(1, 50.0), Detail(2, 500.0)]
        assert select_detail_index(details, 60.0) == 1
        assert select_detail_index(details, 1000.0) == 2
        assert select_detail_index(details, 1.0) == 0
