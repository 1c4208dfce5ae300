"""
Tests for root_motion module.
"""

import pytest
import numpy as np
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from core.errors import InvalidCurveError
from core.root_motion import (
    Interpolation,
    RootMotionBakeType,
    RootMotionCurve,
    RootMotionData,
    sample_times,
)


class TestSampleTimes:
    """Test suite for fixed-rate sample time generation."""

    def test_one_second_at_60hz_has_61_samples(self):
        """A 1.0s clip at 60 samples/second yields 0, 1/60, ..., 1.0."""
        times = sample_times(1.0, 60.0)

        assert len(times) == 61
        assert times[0] == 0.0
        assert times[-1] == 1.0
        np.testing.assert_allclose(times, np.arange(61) / 60.0)

    def test_last_sample_within_one_step_of_duration(self):
        """
        When the duration is not a multiple of the step, the last sample is
        the last step inside the clip.
        """
        duration = 0.51
        times = sample_times(duration, 60.0)

        step = 1.0 / 60.0
        assert times[-1] <= duration
        assert times[-1] >= duration - step
        np.testing.assert_allclose(np.diff(times), step)

    def test_zero_duration_has_single_sample(self):
        assert sample_times(0.0, 60.0) == [0.0]

    def test_invalid_sample_rate_raises(self):
        with pytest.raises(ValueError):
            sample_times(1.0, 0.0)


class TestRootMotionCurve:
    """Test suite for the immutable root motion curve."""

    def make_curve(self, interpolation=Interpolation.LINEAR) -> RootMotionCurve:
        return RootMotionCurve(
            [0.0, 0.5, 1.0],
            [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 0.0, 2.0]],
            interpolation,
        )

    def test_arrays_are_read_only(self):
        """Curves cannot be modified once built."""
        curve = self.make_curve()

        with pytest.raises(ValueError):
            curve.positions[0, 0] = 5.0
        with pytest.raises(ValueError):
            curve.timestamps[0] = 1.0

    def test_length_mismatch_is_rejected(self):
        with pytest.raises(InvalidCurveError):
            RootMotionCurve([0.0, 1.0], [[0.0, 0.0, 0.0]])

    def test_first_timestamp_must_be_zero(self):
        with pytest.raises(InvalidCurveError):
            RootMotionCurve([0.1, 1.0], [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])

    def test_decreasing_timestamps_are_rejected(self):
        with pytest.raises(InvalidCurveError):
            RootMotionCurve(
                [0.0, 0.5, 0.4],
                [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]],
            )

    def test_empty_curve_is_rejected(self):
        with pytest.raises(InvalidCurveError):
            RootMotionCurve([], [])

    def test_linear_sample_interpolates(self):
        curve = self.make_curve()

        np.testing.assert_array_almost_equal(curve.sample(0.25), [0.5, 0.0, 0.0])
        np.testing.assert_array_almost_equal(curve.sample(0.75), [1.0, 0.0, 1.0])

    def test_step_sample_holds_previous_key(self):
        curve = self.make_curve(Interpolation.STEP)

        np.testing.assert_array_equal(curve.sample(0.49), [0.0, 0.0, 0.0])
        np.testing.assert_array_equal(curve.sample(0.5), [1.0, 0.0, 0.0])

    def test_sample_clamps_outside_range(self):
        curve = self.make_curve()

        np.testing.assert_array_equal(curve.sample(-1.0), [0.0, 0.0, 0.0])
        np.testing.assert_array_equal(curve.sample(3.0), [1.0, 0.0, 2.0])

    def test_displacement_between_times(self):
        curve = self.make_curve()

        np.testing.assert_array_almost_equal(curve.displacement(0.0, 1.0), [1.0, 0.0, 2.0])

    def test_dict_form_preserves_content(self):
        """to_dict/from_dict keeps timestamps, positions and interpolation."""
        curve = self.make_curve(Interpolation.STEP)

        restored = RootMotionCurve.from_dict(curve.to_dict())

        assert restored == curve
        assert restored.interpolation == Interpolation.STEP

    def test_from_dict_rejects_malformed_record(self):
        with pytest.raises(InvalidCurveError):
            RootMotionCurve.from_dict({"timestamps": [0.0]})


class TestRootMotionData:

    def test_new_data_is_unbaked(self):
        data = RootMotionData()

        assert data.bake_type == RootMotionBakeType.CENTER_OF_GRAVITY
        assert data.curve is None
        assert not data.is_baked

    def test_bake_type_accepts_serialized_value(self):
        data = RootMotionData("RootBone", root_bone="DEF-Hips")

        assert data.bake_type == RootMotionBakeType.ROOT_BONE
        assert data.root_bone == "DEF-Hips"
