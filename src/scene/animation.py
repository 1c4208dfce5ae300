"""
Animation Collaborators Module.

Clips, animation graphs and the animation player used as the pose
evaluator while baking.
"""

import logging
import numpy as np
from typing import Dict, Hashable, Iterable, Iterator, List, Mapping, Optional, Tuple

from core.root_motion import RootMotionData
from core.transforms import Transform, quat_normalize, quat_slerp

logger = logging.getLogger(__name__)


def _readonly(values, width: int) -> Optional[np.ndarray]:
    if values is None:
        return None
    array = np.array([list(v) for v in values], dtype=np.float64)
    if array.ndim != 2 or array.shape[1] != width:
        raise ValueError(f"Expected keyframes of width {width}, got shape {array.shape}")
    array.setflags(write=False)
    return array


class TargetCurve:
    """
    Keyframed channels driving one bone.

    Any of translation, rotation and scale may be omitted; omitted channels
    leave the bone's current value untouched when the pose is applied.
    """

    def __init__(
        self,
        timestamps: Iterable[float],
        translations: Optional[Iterable[Iterable[float]]] = None,
        rotations: Optional[Iterable[Iterable[float]]] = None,
        scales: Optional[Iterable[Iterable[float]]] = None,
    ):
        self.timestamps = np.array(list(timestamps), dtype=np.float64)
        self.timestamps.setflags(write=False)
        if len(self.timestamps) == 0:
            raise ValueError("Target curve needs at least one keyframe")
        if np.any(np.diff(self.timestamps) < 0.0):
            raise ValueError("Target curve timestamps must be non-decreasing")

        self.translations = _readonly(translations, 3)
        self.rotations = _readonly(rotations, 4)
        self.scales = _readonly(scales, 3)
        for channel in (self.translations, self.rotations, self.scales):
            if channel is not None and len(channel) != len(self.timestamps):
                raise ValueError("Every channel needs one keyframe per timestamp")

    @property
    def end_time(self) -> float:
        return float(self.timestamps[-1])

    def _bracket(self, time: float) -> Tuple[int, int, float]:
        times = self.timestamps
        if time <= times[0]:
            return 0, 0, 0.0
        if time >= times[-1]:
            last = len(times) - 1
            return last, last, 0.0
        upper = int(np.searchsorted(times, time, side="right"))
        lower = upper - 1
        span = times[upper] - times[lower]
        ratio = 0.0 if span <= 0.0 else (time - times[lower]) / span
        return lower, upper, float(ratio)

    def apply(self, transform: Transform, time: float) -> Transform:
        """Return a copy of ``transform`` with this curve's channels evaluated at ``time``."""
        lower, upper, ratio = self._bracket(time)
        result = transform.copy()
        if self.translations is not None:
            a, b = self.translations[lower], self.translations[upper]
            result.translation = a + (b - a) * ratio
        if self.rotations is not None:
            a = quat_normalize(self.rotations[lower])
            b = quat_normalize(self.rotations[upper])
            result.rotation = quat_normalize(quat_slerp(a, b, ratio))
        if self.scales is not None:
            a, b = self.scales[lower], self.scales[upper]
            result.scale = a + (b - a) * ratio
        return result


class AnimationClip:
    """
    Immutable set of target curves keyed by target (bone) name.

    Args:
        curves: Mapping of bone name to TargetCurve
        duration: Clip length in seconds; defaults to the last keyframe time
    """

    def __init__(self, curves: Mapping[str, TargetCurve], duration: Optional[float] = None):
        self._curves: Dict[str, TargetCurve] = dict(curves)
        if duration is None:
            duration = max((c.end_time for c in self._curves.values()), default=0.0)
        if duration < 0:
            raise ValueError(f"Clip duration must be non-negative, got {duration}")
        self._duration = float(duration)

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def curves(self) -> Mapping[str, TargetCurve]:
        return dict(self._curves)

    def targets(self) -> List[str]:
        return list(self._curves)


class AnimationGraphNode:
    """A graph node: an optional clip plus optional root motion data."""

    def __init__(
        self,
        clip=None,
        weight: float = 1.0,
        root_motion: Optional[RootMotionData] = None,
        name: Optional[str] = None,
    ):
        self.clip = clip
        self.weight = weight
        self.root_motion = root_motion
        self.name = name

    @property
    def needs_baking(self) -> bool:
        return self.root_motion is not None and not self.root_motion.is_baked


class AnimationGraph:
    """
    Directed graph of animation nodes. Node 0 is the root blend node.
    """

    def __init__(self):
        self._nodes: List[AnimationGraphNode] = [AnimationGraphNode(name="root")]
        self._edges: Dict[int, List[int]] = {0: []}

    @property
    def root(self) -> int:
        return 0

    def add_node(self, node: AnimationGraphNode, parent: int = 0) -> int:
        if parent not in self._edges:
            raise IndexError(f"Unknown parent node {parent}")
        index = len(self._nodes)
        self._nodes.append(node)
        self._edges[index] = []
        self._edges[parent].append(index)
        return index

    def add_clip(
        self,
        clip,
        weight: float = 1.0,
        parent: int = 0,
        root_motion: Optional[RootMotionData] = None,
        name: Optional[str] = None,
    ) -> int:
        """Add a clip node under ``parent`` and return its index."""
        return self.add_node(
            AnimationGraphNode(clip=clip, weight=weight, root_motion=root_motion, name=name),
            parent,
        )

    def nodes(self) -> List[int]:
        return list(range(len(self._nodes)))

    def children(self, index: int) -> List[int]:
        return list(self._edges.get(index, []))

    def get(self, index: int) -> Optional[AnimationGraphNode]:
        if 0 <= index < len(self._nodes):
            return self._nodes[index]
        return None

    def get_mut(self, index: int) -> Optional[AnimationGraphNode]:
        return self.get(index)

    def root_motion_nodes(self) -> Iterator[Tuple[int, AnimationGraphNode]]:
        for index, node in enumerate(self._nodes):
            if node.root_motion is not None:
                yield index, node

    def has_pending_root_motion(self) -> bool:
        return any(node.needs_baking for _, node in self.root_motion_nodes())


class AnimationPlayer:
    """
    Pose evaluator for one skeleton.

    ``scrub_to`` selects a clip and a time; ``apply_pose`` writes the
    evaluated local transforms of every targeted bone into a transform store.

    Args:
        targets: Mapping of clip target name to skeleton node
    """

    def __init__(self, targets: Mapping[str, Hashable]):
        self.targets: Dict[str, Hashable] = dict(targets)
        self.active_clip: Optional[AnimationClip] = None
        self.elapsed = 0.0

    @classmethod
    def for_skeleton(cls, scene, root: Hashable) -> "AnimationPlayer":
        """Target every named node at or below ``root`` by its name."""
        targets = {}
        for node in [root] + scene.descendants(root):
            name = scene.name_of(node)
            if name is not None:
                targets.setdefault(name, node)
        return cls(targets)

    def scrub_to(self, clip: AnimationClip, time: float) -> None:
        self.active_clip = clip
        self.elapsed = float(time)

    def apply_pose(self, transforms) -> int:
        """
        Write the pose of the active clip at the current time.

        Returns:
            Number of bones written
        """
        if self.active_clip is None:
            raise RuntimeError("No active clip. Call scrub_to first.")

        written = 0
        for target_name, curve in self.active_clip.curves.items():
            node = self.targets.get(target_name)
            if node is None:
                logger.debug("Clip target '%s' has no skeleton node", target_name)
                continue
            current = transforms.get(node)
            if current is None:
                current = Transform.identity()
            transforms.set(node, curve.apply(current, self.elapsed))
            written += 1
        return written
