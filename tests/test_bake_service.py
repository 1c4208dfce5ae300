"""
Tests for scene/bake_service.

Integration tests that run full bake passes against an in-memory scene.
"""

import logging
import pytest
import numpy as np
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from config import BakeSettings
from core.errors import MissingRootMotionData, TransformStoreBusy
from core.root_motion import RootMotionBakeType, RootMotionData
from core.transforms import Transform
from scene.adapter import InMemoryScene
from scene.animation import AnimationClip, AnimationGraph, AnimationPlayer, TargetCurve
from scene.assets import AssetStore
from scene.bake_service import BakeState, RootMotionBakeService


class TestRootMotionBakeService:
    """Test suite for RootMotionBakeService."""

    def create_skeleton(self, scene: InMemoryScene) -> int:
        """Root with DEF-A at (1,0,0), DEF-B at (-1,0,0) and DEF-Hips at the origin."""
        root = scene.add_node(name="Root")
        scene.add_node(name="DEF-A", transform=Transform.from_translation(1, 0, 0), parent=root)
        scene.add_node(name="DEF-B", transform=Transform.from_translation(-1, 0, 0), parent=root)
        scene.add_node(name="DEF-Hips", parent=root)
        return root

    def static_clip(self, duration: float = 1.0) -> AnimationClip:
        return AnimationClip(
            {
                "DEF-A": TargetCurve([0.0, duration], translations=[[1, 0, 0], [1, 0, 0]]),
                "DEF-B": TargetCurve([0.0, duration], translations=[[-1, 0, 0], [-1, 0, 0]]),
            },
            duration=duration,
        )

    def walking_clip(self) -> AnimationClip:
        """Hips move 3 units forward along Z over one second."""
        return AnimationClip(
            {"DEF-Hips": TargetCurve([0.0, 1.0], translations=[[0, 0, 0], [0, 0, 3]])},
            duration=1.0,
        )

    def create_service(self, clip: AnimationClip, root_motion: RootMotionData = None, settings=None):
        scene = InMemoryScene()
        root = self.create_skeleton(scene)
        assets = AssetStore()
        clip_handle = assets.clips.add(clip, path="clips/walk.clip")
        graph = AnimationGraph()
        node_index = graph.add_clip(
            clip_handle,
            root_motion=root_motion if root_motion is not None else RootMotionData(),
            name="walk",
        )
        graph_handle = assets.graphs.add(graph, path="graphs/hero.graph")
        service = RootMotionBakeService.for_scene(scene, assets, settings=settings)
        service.register_owner(root, AnimationPlayer.for_skeleton(scene, root), graph_handle)
        return service, assets, graph, node_index

    def test_static_skeleton_bakes_61_samples_at_origin(self):
        """
        Root with mass children at (1,0,0) and (-1,0,0), static for 1.0s at
        60 samples/second, gives 61 samples all at the origin.
        """
        service, assets, graph, node_index = self.create_service(self.static_clip())

        report = service.run_pass()

        assert report.all_baked
        handle = graph.get(node_index).root_motion.curve
        curve = assets.curves.get(handle)
        assert len(curve.timestamps) == len(curve.positions) == 61
        np.testing.assert_allclose(curve.timestamps, np.arange(61) / 60.0)
        assert curve.timestamps[-1] == 1.0
        np.testing.assert_allclose(curve.positions, np.zeros((61, 3)), atol=1e-12)

    def test_curve_follows_moving_bones(self):
        """Hips reach z=3 at t=1, so the three-node average reaches z=1."""
        service, assets, graph, node_index = self.create_service(self.walking_clip())

        service.run_pass()

        curve = assets.curves.get(graph.get(node_index).root_motion.curve)
        np.testing.assert_array_almost_equal(curve.positions[0], [0.0, 0.0, 0.0])
        np.testing.assert_array_almost_equal(curve.positions[-1], [0.0, 0.0, 1.0])
        np.testing.assert_array_almost_equal(curve.sample(0.5), [0.0, 0.0, 0.5])

    def test_curve_timestamps_increase_by_fixed_step(self):
        settings = BakeSettings(sample_rate=30)
        clip = self.static_clip(duration=0.75)
        service, assets, graph, node_index = self.create_service(clip, settings=settings)

        service.run_pass()

        curve = assets.curves.get(graph.get(node_index).root_motion.curve)
        assert curve.timestamps[0] == 0.0
        assert curve.timestamps[-1] >= clip.duration - settings.step_size
        np.testing.assert_allclose(np.diff(curve.timestamps), settings.step_size)

    def test_rebake_is_a_no_op(self):
        """A second pass leaves the curve reference untouched."""
        service, assets, graph, node_index = self.create_service(self.static_clip())
        service.run_pass()
        first_handle = graph.get(node_index).root_motion.curve

        report = service.run_pass()

        assert graph.get(node_index).root_motion.curve == first_handle
        assert report.baked == []
        assert len(assets.curves) == 1

    def test_flag_cleared_after_full_pass(self):
        service, _, _, _ = self.create_service(self.static_clip())
        assert service.state.needs_baking

        service.tick()

        assert not service.state.needs_baking
        assert service.tick() is None

    def test_tick_bakes_node_added_after_flag_cleared(self):
        """A root motion node authored after a full pass re-arms the flag on the next tick."""
        service, assets, graph, _ = self.create_service(self.static_clip())
        service.tick()
        assert not service.state.needs_baking

        clip_handle = assets.clips.resolve_path("clips/walk.clip")
        late_index = graph.add_clip(clip_handle, root_motion=RootMotionData(), name="late")
        report = service.tick()

        assert report is not None
        assert report.all_baked
        assert graph.get(late_index).root_motion.is_baked
        assert not service.state.needs_baking

    def wave_clip(self) -> AnimationClip:
        """Only DEF-A moves, rising 3 units along Y over one second."""
        return AnimationClip(
            {"DEF-A": TargetCurve([0.0, 1.0], translations=[[1, 0, 0], [1, 3, 0]])},
            duration=1.0,
        )

    def bake_wave(self, after_walk: bool):
        scene = InMemoryScene()
        root = self.create_skeleton(scene)
        assets = AssetStore()
        graph = AnimationGraph()
        if after_walk:
            graph.add_clip(assets.clips.add(self.walking_clip()), root_motion=RootMotionData(), name="walk")
        wave_index = graph.add_clip(assets.clips.add(self.wave_clip()), root_motion=RootMotionData(), name="wave")
        player = AnimationPlayer.for_skeleton(scene, root)
        service = RootMotionBakeService.for_scene(scene, assets)
        service.register_owner(root, player, assets.graphs.add(graph))

        report = service.run_pass()

        assert report.all_baked
        curve = assets.curves.get(graph.get(wave_index).root_motion.curve)
        return curve, scene, player

    def test_curve_does_not_depend_on_bake_order(self):
        """Baking after another node gives the same curve as baking alone."""
        alone, _, _ = self.bake_wave(after_walk=False)
        after_walk, _, _ = self.bake_wave(after_walk=True)

        np.testing.assert_array_almost_equal(after_walk.positions, alone.positions)
        np.testing.assert_array_almost_equal(after_walk.positions[0], [0.0, 0.0, 0.0])
        np.testing.assert_array_almost_equal(after_walk.positions[-1], [0.0, 1.0, 0.0])

    def test_pose_restored_after_bake(self):
        _, scene, player = self.bake_wave(after_walk=True)

        np.testing.assert_array_almost_equal(scene.get(player.targets["DEF-Hips"]).translation, [0, 0, 0])
        np.testing.assert_array_almost_equal(scene.get(player.targets["DEF-A"]).translation, [1, 0, 0])

    def test_curve_stored_under_graph_path(self):
        service, assets, graph, node_index = self.create_service(self.static_clip())

        service.run_pass()

        handle = graph.get(node_index).root_motion.curve
        assert assets.curves.path_of(handle) == f"root_motion/graphs/hero.graph/{node_index}.curve.json"

    def test_node_without_clip_is_skipped_and_flag_stays_set(self, caplog):
        """
        A node whose clip reference is absent is skipped; the other node
        bakes, but the flag stays set for a future pass.
        """
        service, assets, graph, baked_index = self.create_service(self.static_clip())
        missing_index = graph.add_clip(None, root_motion=RootMotionData(), name="no_clip")

        with caplog.at_level(logging.WARNING):
            report = service.run_pass()

        assert graph.get(baked_index).root_motion.is_baked
        assert graph.get(missing_index).root_motion.curve is None
        assert not report.all_baked
        assert service.state.needs_baking
        assert [entry[1] for entry in report.skipped] == [missing_index]
        assert "no_clip" in caplog.text

    def test_unloaded_clip_is_skipped(self):
        service, assets, graph, node_index = self.create_service(self.static_clip())
        assets.clips.remove(graph.get(node_index).clip)

        report = service.run_pass()

        assert graph.get(node_index).root_motion.curve is None
        assert not report.all_baked
        assert service.state.needs_baking

    def test_missing_graph_is_skipped(self):
        service, assets, graph, node_index = self.create_service(self.static_clip())
        assets.graphs.remove(service.owners[0].graph)

        report = service.run_pass()

        assert not report.all_baked
        assert report.skipped[0][1] is None
        assert service.state.needs_baking

    def test_nodes_without_root_motion_are_ignored(self):
        service, assets, graph, node_index = self.create_service(self.static_clip())
        graph.add_clip(graph.get(node_index).clip, name="plain")

        report = service.run_pass()

        assert report.all_baked
        assert len(report.baked) == 1

    def test_bake_node_without_root_motion_data_raises(self):
        service, _, graph, node_index = self.create_service(self.static_clip())
        plain_index = graph.add_clip(graph.get(node_index).clip, name="plain")

        with pytest.raises(MissingRootMotionData):
            service.bake_node(service.owners[0], plain_index, graph.get(plain_index))

    def test_zero_mass_skeleton_is_skipped(self):
        """Nodes whose skeleton has no mass-bearing bones fail softly and stay pending."""
        settings = BakeSettings(mass_marker_prefix="MASS")
        service, _, graph, node_index = self.create_service(self.static_clip(), settings=settings)

        report = service.run_pass()

        assert graph.get(node_index).root_motion.curve is None
        assert not report.all_baked
        assert "No mass-bearing nodes" in report.skipped[0][2]

    def test_root_bone_tracks_designated_bone(self):
        root_motion = RootMotionData(RootMotionBakeType.ROOT_BONE, root_bone="DEF-Hips")
        service, assets, graph, node_index = self.create_service(self.walking_clip(), root_motion)

        service.run_pass()

        curve = assets.curves.get(graph.get(node_index).root_motion.curve)
        np.testing.assert_array_almost_equal(curve.positions[-1], [0.0, 0.0, 3.0])
        np.testing.assert_array_almost_equal(curve.sample(0.5), [0.0, 0.0, 1.5])

    def test_root_bone_falls_back_to_settings(self):
        settings = BakeSettings(root_bone_name="DEF-Hips")
        root_motion = RootMotionData(RootMotionBakeType.ROOT_BONE)
        service, assets, graph, node_index = self.create_service(self.walking_clip(), root_motion, settings)

        report = service.run_pass()

        assert report.all_baked

    def test_root_bone_without_designated_bone_is_skipped(self):
        root_motion = RootMotionData(RootMotionBakeType.ROOT_BONE)
        service, _, graph, node_index = self.create_service(self.walking_clip(), root_motion)

        report = service.run_pass()

        assert graph.get(node_index).root_motion.curve is None
        assert "no root bone designated" in report.skipped[0][2]

    def test_initial_cog_is_recorded(self):
        service, _, _, node_index = self.create_service(self.walking_clip())

        report = service.run_pass()

        initial = report.initial_cogs[(service.owners[0].graph, node_index)]
        np.testing.assert_array_almost_equal(initial, [0.0, 0.0, 0.0])

    def test_transform_store_is_held_exclusively_while_baking(self):
        """The pose evaluator runs only while the store is exclusively held."""
        service, _, _, _ = self.create_service(self.static_clip())
        owner = service.owners[0]
        scene = service.transforms
        held = []

        class CheckingPlayer(AnimationPlayer):
            def apply_pose(self, transforms):
                held.append(scene.is_exclusively_held)
                with pytest.raises(TransformStoreBusy):
                    with scene.exclusive():
                        pass
                return super().apply_pose(transforms)

        owner.player = CheckingPlayer(owner.player.targets)
        service.run_pass()

        assert held and all(held)
        assert not scene.is_exclusively_held

    def test_exclusive_access_released_after_failure(self):
        settings = BakeSettings(mass_marker_prefix="MASS")
        service, _, _, _ = self.create_service(self.static_clip(), settings=settings)

        service.run_pass()

        assert not service.transforms.is_exclusively_held

    def test_unexpected_errors_abort_the_pass(self):
        service, _, _, _ = self.create_service(self.static_clip())
        owner = service.owners[0]

        class BrokenPlayer(AnimationPlayer):
            def apply_pose(self, transforms):
                raise RuntimeError("pose evaluation failed")

        owner.player = BrokenPlayer(owner.player.targets)

        with pytest.raises(RuntimeError):
            service.run_pass()
        assert service.state.needs_baking


class TestBakeState:

    def test_register_without_pending_nodes_leaves_flag_clear(self):
        scene = InMemoryScene()
        root = scene.add_node(name="Root")
        assets = AssetStore()
        graph_handle = assets.graphs.add(AnimationGraph())
        state = BakeState()
        service = RootMotionBakeService.for_scene(scene, assets, state=state)

        service.register_owner(root, AnimationPlayer({}), graph_handle)

        assert not state.needs_baking
        assert service.tick() is None

    def test_shared_state_spans_services(self):
        """One flag is shared by every service given the same state."""
        state = BakeState()
        state.mark_pending()
        assert state.needs_baking
        state.clear()
        assert not state.needs_baking
