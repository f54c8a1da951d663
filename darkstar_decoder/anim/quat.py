"""Packed quaternions and the legacy interpolation / matrix conversion."""
from dataclasses import dataclass
import math
from typing import ClassVar, Sequence

import numpy as np

SLERP_EPSILON = 0.00001
AXIS_EPSILON = 10e-20


def _to_i16(value: float) -> int:
    return max(-0x8000, min(0x7FFF, int(value)))


@dataclass(frozen=True)
class Quat16:
    """Quaternion stored as four signed 16-bit components."""
    x: int = 0
    y: int = 0
    z: int = 0
    w: int = 0

    MAX_VAL: ClassVar[int] = 0x7FFF

    @classmethod
    def from_floats(cls, x: float, y: float, z: float, w: float) -> 'Quat16':
        """Quantise a float quaternion, truncating toward zero."""
        scale = float(cls.MAX_VAL)
        return cls(_to_i16(x * scale), _to_i16(y * scale), _to_i16(z * scale), _to_i16(w * scale))

    def to_quat(self) -> np.ndarray:
        """Float quaternion as an (x, y, z, w) array."""
        return np.array([self.x, self.y, self.z, self.w], dtype=np.float64) / float(self.MAX_VAL)


def compat_interpolate(q1: Sequence[float], q2: Sequence[float], t: float) -> np.ndarray:
    """Spherical interpolation matching the legacy engine.

    Takes the shorter arc, falls back to linear interpolation for nearly
    identical quaternions and does not renormalise the result.
    """
    q1 = np.asarray(q1, dtype=np.float64)
    q2 = np.asarray(q2, dtype=np.float64)
    cos_omega = float(np.dot(q1, q2))

    sign2 = 1.0
    if cos_omega < 0.0:
        cos_omega = -cos_omega
        sign2 = -1.0

    if (1.0 - cos_omega) > SLERP_EPSILON:
        omega = math.acos(min(cos_omega, 1.0))
        sin_omega = math.sin(omega)
        scale1 = math.sin((1.0 - t) * omega) / sin_omega
        scale2 = sign2 * math.sin(t * omega) / sin_omega
    else:
        scale1 = 1.0 - t
        scale2 = sign2 * t

    return scale1 * q1 + scale2 * q2


def quat_to_matrix(q: Sequence[float]) -> np.ndarray:
    """4x4 rotation matrix (column vector convention) from an (x, y, z, w) quaternion.

    The rotation is the transpose of the textbook conversion, which is how the
    engine's quaternions are meant to be read. A vanishing vector part gives
    the identity.
    """
    x, y, z, w = (float(c) for c in q)
    mat = np.identity(4)
    if x * x + y * y + z * z < AXIS_EPSILON:
        return mat

    xs, ys, zs = x * 2.0, y * 2.0, z * 2.0
    wx, wy, wz = w * xs, w * ys, w * zs
    xx, xy, xz = x * xs, x * ys, x * zs
    yy, yz, zz = y * ys, y * zs, z * zs

    # columns
    mat[:3, 0] = (1.0 - (yy + zz), xy - wz, xz + wy)
    mat[:3, 1] = (xy + wz, 1.0 - (xx + zz), yz - wx)
    mat[:3, 2] = (xz - wy, yz + wx, 1.0 - (xx + yy))
    return mat


def transform_matrix(rot: Quat16, pos: Sequence[float]) -> np.ndarray:
    mat = quat_to_matrix(rot.to_quat())
    mat[:3, 3] = pos
    return mat


def interpolate_transform(rot_a: Quat16, pos_a: Sequence[float],
                          rot_b: Quat16, pos_b: Sequence[float], t: float) -> np.ndarray:
    """Blend two transforms: slerp rotation, lerp translation."""
    mat = quat_to_matrix(compat_interpolate(rot_a.to_quat(), rot_b.to_quat(), t))
    mat[:3, 3] = np.asarray(pos_a, dtype=np.float64) * (1.0 - t) + np.asarray(pos_b, dtype=np.float64) * t
    return mat
