"""
Transform Math Module.

Translation / rotation / scale transforms for skeleton nodes.
Rotations are unit quaternions stored as (x, y, z, w).
"""

import numpy as np
from typing import Iterable, Optional


def _vec3(values: Optional[Iterable[float]], default: float) -> np.ndarray:
    if values is None:
        return np.full(3, default, dtype=np.float64)
    result = np.asarray(values, dtype=np.float64).reshape(3)
    return result.copy()


def quat_identity() -> np.ndarray:
    return np.array([0.0, 0.0, 0.0, 1.0])


def quat_normalize(q: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(q))
    if norm == 0.0:
        return quat_identity()
    return q / norm


def quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product a * b (apply b first, then a)."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array([
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    ])


def quat_rotate(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotate vector v by unit quaternion q."""
    u = q[:3]
    w = q[3]
    t = 2.0 * np.cross(u, v)
    return v + w * t + np.cross(u, t)


def quat_from_axis_angle(axis: Iterable[float], angle: float) -> np.ndarray:
    """
    Build a quaternion from an axis and an angle in radians.

    Args:
        axis: Rotation axis (normalized internally)
        angle: Angle in radians

    Returns:
        Unit quaternion (x, y, z, w)
    """
    axis = np.asarray(axis, dtype=np.float64)
    norm = float(np.linalg.norm(axis))
    if norm == 0.0:
        return quat_identity()
    axis = axis / norm
    half = angle * 0.5
    return np.concatenate([axis * np.sin(half), [np.cos(half)]])


def quat_slerp(a: np.ndarray, b: np.ndarray, t: float) -> np.ndarray:
    """Spherical interpolation along the shortest arc."""
    dot = float(np.dot(a, b))
    if dot < 0.0:
        b = -b
        dot = -dot
    if dot > 0.9995:
        # Nearly parallel, fall back to normalized lerp
        return quat_normalize(a + (b - a) * t)
    theta = np.arccos(dot)
    sin_theta = np.sin(theta)
    return (np.sin((1.0 - t) * theta) * a + np.sin(t * theta) * b) / sin_theta


class Transform:
    """
    Local transform of a skeleton node relative to its parent.

    Composition follows the parent-times-child convention used when walking
    up a hierarchy: ``parent.mul_transform(child)`` expresses ``child`` in the
    parent's space.
    """

    __slots__ = ("translation", "rotation", "scale")

    def __init__(
        self,
        translation: Optional[Iterable[float]] = None,
        rotation: Optional[Iterable[float]] = None,
        scale: Optional[Iterable[float]] = None,
    ):
        self.translation = _vec3(translation, 0.0)
        if rotation is None:
            self.rotation = quat_identity()
        else:
            self.rotation = quat_normalize(np.asarray(rotation, dtype=np.float64).reshape(4))
        self.scale = _vec3(scale, 1.0)

    @classmethod
    def identity(cls) -> "Transform":
        return cls()

    @classmethod
    def from_translation(cls, x: float, y: float, z: float) -> "Transform":
        return cls(translation=(x, y, z))

    def copy(self) -> "Transform":
        return Transform(self.translation, self.rotation, self.scale)

    def transform_point(self, point: Iterable[float]) -> np.ndarray:
        """Apply scale, then rotation, then translation to a point."""
        p = np.asarray(point, dtype=np.float64) * self.scale
        return quat_rotate(self.rotation, p) + self.translation

    def mul_transform(self, other: "Transform") -> "Transform":
        """
        Compose this transform with a child transform.

        Args:
            other: Transform expressed in this transform's local space

        Returns:
            ``other`` expressed in this transform's parent space
        """
        result = Transform()
        result.translation = self.transform_point(other.translation)
        result.rotation = quat_normalize(quat_multiply(self.rotation, other.rotation))
        result.scale = self.scale * other.scale
        return result

    def __eq__(self, other) -> bool:
        if not isinstance(other, Transform):
            return NotImplemented
        return (
            np.array_equal(self.translation, other.translation)
            and np.array_equal(self.rotation, other.rotation)
            and np.array_equal(self.scale, other.scale)
        )

    def __repr__(self) -> str:
        return (
            f"Transform(translation={self.translation.tolist()}, "
            f"rotation={self.rotation.tolist()}, scale={self.scale.tolist()})"
        )
