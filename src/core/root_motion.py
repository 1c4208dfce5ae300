"""
Root Motion Curve Module.

Defines the baked root motion curve asset and the per-node root motion
data attached to animation graph nodes.
"""

import math
import numpy as np
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from core.errors import InvalidCurveError


DEFAULT_SAMPLE_RATE = 60.0

# Slack when deciding whether the final boundary sample fits in the clip
_TIME_EPSILON = 1e-6


class RootMotionBakeType(Enum):
    """How root motion is extracted from a clip."""
    CENTER_OF_GRAVITY = "CenterOfGravity"
    ROOT_BONE = "RootBone"


class Interpolation(Enum):
    LINEAR = "Linear"
    STEP = "Step"


def sample_times(duration: float, sample_rate: float = DEFAULT_SAMPLE_RATE) -> List[float]:
    """
    Fixed-rate sample times from 0 through ``duration`` inclusive.

    Times are computed as ``index / sample_rate`` so the step never drifts.
    The last time is the largest multiple of the step not exceeding the
    duration, which is always >= duration - step.

    Args:
        duration: Clip duration in seconds
        sample_rate: Samples per second

    Returns:
        List of sample times starting at 0.0
    """
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    if duration < 0:
        raise ValueError(f"duration must be non-negative, got {duration}")
    last_index = int(math.floor(duration * sample_rate + _TIME_EPSILON))
    return [index / sample_rate for index in range(last_index + 1)]


class RootMotionCurve:
    """
    Immutable time-keyed translation curve.

    Timestamps are non-decreasing and start at 0. Positions are (N, 3).
    Both arrays are read-only once the curve is built.
    """

    def __init__(
        self,
        timestamps: Iterable[float],
        positions: Iterable[Iterable[float]],
        interpolation: Interpolation = Interpolation.LINEAR,
    ):
        times = np.array(list(timestamps), dtype=np.float64)
        points = np.array([list(p) for p in positions], dtype=np.float64)

        if len(times) == 0:
            raise InvalidCurveError("Root motion curve needs at least one sample")
        if points.ndim != 2 or points.shape[1] != 3:
            raise InvalidCurveError(f"Positions must have shape (N, 3), got {points.shape}")
        if len(times) != len(points):
            raise InvalidCurveError(
                f"{len(times)} timestamps but {len(points)} positions"
            )
        if times[0] != 0.0:
            raise InvalidCurveError(f"First timestamp must be 0, got {times[0]}")
        if np.any(np.diff(times) < 0.0):
            raise InvalidCurveError("Timestamps must be non-decreasing")

        times.setflags(write=False)
        points.setflags(write=False)
        self._timestamps = times
        self._positions = points
        self._interpolation = Interpolation(interpolation)

    @property
    def timestamps(self) -> np.ndarray:
        return self._timestamps

    @property
    def positions(self) -> np.ndarray:
        return self._positions

    @property
    def interpolation(self) -> Interpolation:
        return self._interpolation

    @property
    def duration(self) -> float:
        return float(self._timestamps[-1])

    def __len__(self) -> int:
        return len(self._timestamps)

    def sample(self, time: float) -> np.ndarray:
        """
        Evaluate the curve at an arbitrary time.

        Times outside the keyed range clamp to the first/last position.
        """
        times = self._timestamps
        if time <= times[0]:
            return self._positions[0].copy()
        if time >= times[-1]:
            return self._positions[-1].copy()

        upper = int(np.searchsorted(times, time, side="right"))
        lower = upper - 1
        if self._interpolation == Interpolation.STEP:
            return self._positions[lower].copy()

        span = times[upper] - times[lower]
        if span <= 0.0:
            return self._positions[upper].copy()
        ratio = (time - times[lower]) / span
        return self._positions[lower] + (self._positions[upper] - self._positions[lower]) * ratio

    def displacement(self, start_time: float, end_time: float) -> np.ndarray:
        """Root translation accumulated between two times."""
        return self.sample(end_time) - self.sample(start_time)

    def keyframes(self) -> List[Tuple[float, Tuple[float, float, float]]]:
        return [
            (float(t), (float(p[0]), float(p[1]), float(p[2])))
            for t, p in zip(self._timestamps, self._positions)
        ]

    def to_dict(self) -> dict:
        return {
            "interpolation": self._interpolation.value,
            "timestamps": self._timestamps.tolist(),
            "positions": self._positions.tolist(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RootMotionCurve":
        try:
            return cls(
                data["timestamps"],
                data["positions"],
                Interpolation(data.get("interpolation", Interpolation.LINEAR.value)),
            )
        except (KeyError, TypeError, ValueError) as e:
            if isinstance(e, InvalidCurveError):
                raise
            raise InvalidCurveError(f"Malformed curve record: {e}") from e

    def __eq__(self, other) -> bool:
        if not isinstance(other, RootMotionCurve):
            return NotImplemented
        return (
            self._interpolation == other._interpolation
            and np.array_equal(self._timestamps, other._timestamps)
            and np.array_equal(self._positions, other._positions)
        )

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"RootMotionCurve(samples={len(self)}, duration={self.duration:.4f}, "
            f"interpolation={self._interpolation.value})"
        )


class RootMotionData:
    """
    Root motion settings carried by an animation graph node.

    ``curve`` starts as None and is set exactly once, by the bake service,
    to a handle of the baked RootMotionCurve.
    """

    def __init__(
        self,
        bake_type: RootMotionBakeType = RootMotionBakeType.CENTER_OF_GRAVITY,
        curve=None,
        root_bone: Optional[str] = None,
    ):
        self.bake_type = RootMotionBakeType(bake_type)
        self.curve = curve
        self.root_bone = root_bone

    @property
    def is_baked(self) -> bool:
        return self.curve is not None

    def __repr__(self) -> str:
        return (
            f"RootMotionData(bake_type={self.bake_type.value}, curve={self.curve!r}, "
            f"root_bone={self.root_bone!r})"
        )
