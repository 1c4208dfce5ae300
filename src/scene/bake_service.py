"""
Root Motion Bake Service.

Orchestrates root motion baking by connecting the scene capabilities,
the animation players and the center of gravity sampler.
"""

import logging
import numpy as np
from typing import Callable, Dict, Hashable, List, Optional, Tuple

from config import BakeSettings
from core.cog_sampler import CogSampler, iter_descendants
from core.errors import (
    SOFT_BAKE_ERRORS,
    CurveLengthMismatch,
    MissingClip,
    MissingGraph,
    MissingRootMotionData,
    UnimplementedBakeType,
)
from core.root_motion import (
    Interpolation,
    RootMotionBakeType,
    RootMotionCurve,
    sample_times,
)
from core.transforms import Transform
from scene.assets import AssetStore, Handle

logger = logging.getLogger(__name__)


class GraphOwner:
    """
    A skeleton driven by an animation graph.

    Args:
        skeleton_root: Root node of the skeleton
        player: Pose evaluator (``scrub_to`` / ``apply_pose``) for this skeleton
        graph: Handle of the owner's AnimationGraph
    """

    def __init__(self, skeleton_root: Hashable, player, graph: Handle):
        self.skeleton_root = skeleton_root
        self.player = player
        self.graph = graph

    def __repr__(self) -> str:
        return f"GraphOwner(root={self.skeleton_root!r}, graph={self.graph!r})"


class BakeState:
    """
    Process-wide "needs baking" flag.

    Set whenever an owner with unbaked root motion is registered, or a tick
    finds a graph that gained unbaked root motion since the last pass; cleared
    only by a full bake pass that finds nothing left to bake.
    """

    def __init__(self):
        self._needs_baking = False

    @property
    def needs_baking(self) -> bool:
        return self._needs_baking

    def mark_pending(self) -> None:
        self._needs_baking = True

    def clear(self) -> None:
        self._needs_baking = False


class BakeReport:
    """Outcome of a single bake pass."""

    def __init__(self):
        self.baked: List[Tuple[Handle, int, Handle]] = []
        self.skipped: List[Tuple[Optional[Handle], Optional[int], str]] = []
        self.initial_cogs: Dict[Tuple[Handle, int], np.ndarray] = {}
        self.all_baked = False

    def __repr__(self) -> str:
        return (
            f"BakeReport(baked={len(self.baked)}, skipped={len(self.skipped)}, "
            f"all_baked={self.all_baked})"
        )


class RootMotionBakeService:
    """
    Bakes root motion curves for every registered graph owner.

    Baking mutates the shared transform store (the pose evaluator writes bone
    transforms that the sampler then reads), so nodes are baked one after
    another while holding the store's exclusive access.
    """

    def __init__(
        self,
        hierarchy,
        transforms,
        names,
        assets: AssetStore,
        settings: Optional[BakeSettings] = None,
        state: Optional[BakeState] = None,
    ):
        """
        Initialize with the scene capabilities.

        Args:
            hierarchy: HierarchyProvider (``children_of``, ``parent_of``)
            transforms: TransformStore (``get``, ``set``, ``exclusive``)
            names: NameLookup (``name_of``)
            assets: AssetStore holding clips, graphs and curves
            settings: Bake settings (defaults used if omitted)
            state: Shared needs-baking flag (a new one if omitted)
        """
        self.hierarchy = hierarchy
        self.transforms = transforms
        self.names = names
        self.assets = assets
        self.settings = settings if settings is not None else BakeSettings()
        self.state = state if state is not None else BakeState()
        self.sampler = CogSampler.from_settings(self.settings)
        self.owners: List[GraphOwner] = []

    @classmethod
    def for_scene(cls, scene, assets: AssetStore, **kwargs) -> "RootMotionBakeService":
        """Use a single object (e.g. InMemoryScene) for all scene capabilities."""
        return cls(scene, scene, scene, assets, **kwargs)

    def register_owner(self, skeleton_root: Hashable, player, graph: Handle) -> GraphOwner:
        """
        Register a (skeleton root, player, graph) triple.

        Sets the needs-baking flag if the graph has unbaked root motion, or
        if the graph cannot be resolved yet.
        """
        owner = GraphOwner(skeleton_root, player, graph)
        self.owners.append(owner)
        resolved = self.assets.graphs.get(graph)
        if resolved is None or resolved.has_pending_root_motion():
            self.state.mark_pending()
        return owner

    def refresh_pending(self) -> bool:
        """
        Set the needs-baking flag if any owner's graph gained unbaked root motion.

        Returns:
            The flag after the check
        """
        for owner in self.owners:
            graph = self.assets.graphs.get(owner.graph)
            if graph is None or graph.has_pending_root_motion():
                self.state.mark_pending()
                break
        return self.state.needs_baking

    def tick(self) -> Optional[BakeReport]:
        """Run a bake pass if anything is pending; otherwise do nothing."""
        if not self.state.needs_baking and not self.refresh_pending():
            return None
        return self.run_pass()

    def run_pass(self) -> BakeReport:
        """
        Bake every pending root motion node across all owners.

        Per-node failures are logged and skipped; the node stays pending and
        is retried on the next pass. CurveLengthMismatch aborts the pass.

        Returns:
            BakeReport describing what was baked and skipped
        """
        report = BakeReport()
        all_baked = True

        for owner in self.owners:
            graph = self.assets.graphs.get_mut(owner.graph)
            if graph is None:
                error = MissingGraph(f"Graph {owner.graph!r} for skeleton {owner.skeleton_root!r}")
                logger.warning("Skipping owner: %s", error)
                report.skipped.append((owner.graph, None, str(error)))
                all_baked = False
                continue

            for node_index in graph.nodes():
                node = graph.get_mut(node_index)
                if node is None or node.root_motion is None:
                    continue
                if node.root_motion.is_baked:
                    continue

                label = node.name or f"node {node_index}"
                try:
                    curve_handle = self.bake_node(owner, node_index, node, report)
                except SOFT_BAKE_ERRORS as e:
                    logger.warning("Couldn't bake root motion for %s: %s", label, e)
                    report.skipped.append((owner.graph, node_index, str(e)))
                    all_baked = False
                    continue

                report.baked.append((owner.graph, node_index, curve_handle))
                logger.info("Baked root motion curve for: %s", label)

        report.all_baked = all_baked
        if all_baked:
            self.state.clear()
            logger.info("All root motion baked")
        return report

    def _sample_function(self, owner: GraphOwner, root_motion) -> Callable[[], np.ndarray]:
        root = owner.skeleton_root
        bake_type = root_motion.bake_type

        if bake_type == RootMotionBakeType.CENTER_OF_GRAVITY:
            return lambda: self.sampler.compute_cog(
                root, self.hierarchy, self.transforms, self.names
            )

        if bake_type == RootMotionBakeType.ROOT_BONE:
            bone_name = root_motion.root_bone or self.settings.root_bone_name
            if not bone_name:
                raise UnimplementedBakeType(bake_type.value, "no root bone designated")
            return lambda: self.sampler.root_bone_position(
                root, bone_name, self.hierarchy, self.transforms, self.names
            )

        raise UnimplementedBakeType(bake_type.value)

    def _snapshot_pose(self, root: Hashable) -> Dict[Hashable, Transform]:
        pose = {}
        for skeleton_node in [root] + list(iter_descendants(self.hierarchy, root)):
            transform = self.transforms.get(skeleton_node)
            if transform is not None:
                pose[skeleton_node] = transform.copy()
        return pose

    def _curve_path(self, graph: Handle, node_index: int) -> str:
        graph_path = self.assets.graphs.path_of(graph)
        graph_key = graph_path if graph_path is not None else f"graph-{graph.id}"
        path = f"root_motion/{graph_key}/{node_index}.curve.json"
        suffix = 1
        while self.assets.curves.resolve_path(path) is not None:
            path = f"root_motion/{graph_key}/{node_index}-{suffix}.curve.json"
            suffix += 1
        return path

    def bake_node(self, owner: GraphOwner, node_index: int, node, report: Optional[BakeReport] = None) -> Handle:
        """
        Sample one graph node's clip and attach the resulting curve.

        Args:
            owner: Graph owner the node belongs to
            node_index: Index of the node in the owner's graph
            node: The AnimationGraphNode (must carry root motion data)
            report: Optional report receiving the initial sample

        Returns:
            Handle of the stored RootMotionCurve
        """
        root_motion = node.root_motion
        if root_motion is None:
            raise MissingRootMotionData(f"Node {node_index} carries no root motion data")
        if node.clip is None:
            raise MissingClip(f"Node {node_index} has no clip")
        clip = self.assets.clips.get(node.clip)
        if clip is None:
            raise MissingClip(f"Clip {node.clip!r} of node {node_index} is not loaded")

        sample = self._sample_function(owner, root_motion)
        player = owner.player

        timestamps: List[float] = []
        positions: List[np.ndarray] = []
        with self.transforms.exclusive():
            rest_pose = self._snapshot_pose(owner.skeleton_root)
            try:
                initial = sample()
                for time in sample_times(clip.duration, self.settings.sample_rate):
                    player.scrub_to(clip, time)
                    player.apply_pose(self.transforms)
                    timestamps.append(time)
                    positions.append(sample())
            finally:
                # Put the skeleton back in its pre-bake pose
                for skeleton_node, transform in rest_pose.items():
                    self.transforms.set(skeleton_node, transform)

        if len(timestamps) != len(positions):
            raise CurveLengthMismatch(len(timestamps), len(positions))

        if report is not None:
            report.initial_cogs[(owner.graph, node_index)] = initial

        curve = RootMotionCurve(timestamps, positions, Interpolation.LINEAR)
        handle = self.assets.curves.add(curve, path=self._curve_path(owner.graph, node_index))
        root_motion.curve = handle
        logger.debug(
            "Node %d: %d samples over %.3fs -> %r", node_index, len(curve), clip.duration, handle
        )
        return handle
