"""
Tests for the geometry helpers and trajectory smoothing.
"""

import math

import numpy as np
import pytest
from numpy.testing import assert_allclose

from telemetry_factory import circle_positions, straight_positions
from trackinsight.analysis.geometry import (
    PointIndex,
    cumulative_distance,
    frozen,
    lateral_unit,
    nearest_index,
    path_length,
    position_at_distance,
    resample_by_distance,
    signed_curvature,
    tangents,
)
from trackinsight.analysis.smoothing import TrajectorySmoother


class TestSignedCurvature:
    """Tests for signed_curvature"""

    def test_right_turn_is_positive(self):
        """Heading +z then turning to +x is a right-hander"""
        angle = signed_curvature((0, 0, 0), (0, 0, 1), (1, 0, 1))
        assert angle == pytest.approx(math.pi / 2)

    def test_left_turn_is_negative(self):
        """Test that a left-hand turn has negative curvature"""
        angle = signed_curvature((0, 0, 0), (0, 0, 1), (-1, 0, 1))
        assert angle == pytest.approx(-math.pi / 2)

    def test_straight_is_zero(self):
        """Test that collinear points have zero curvature"""
        assert signed_curvature((0, 0, 0), (0, 0, 1), (0, 0, 2)) == 0.0

    def test_degenerate_vector_is_zero(self):
        """Repeated points have no direction"""
        assert signed_curvature((1, 0, 1), (1, 0, 1), (2, 0, 3)) == 0.0

    def test_elevation_change_does_not_turn(self):
        """Climbing straight ahead has no horizontal turn"""
        angle = signed_curvature((0, 0, 0), (0, 0, 1), (0, 1, 2))
        assert angle == pytest.approx(0.0)

    def test_right_matches_lateral_unit(self):
        """The lateral unit vector points to the inside of a right-hander"""
        right = lateral_unit((0.0, 0.0, 1.0))
        assert_allclose(right, [1.0, 0.0, 0.0])
        assert signed_curvature((0, 0, 0), (0, 0, 1), tuple(np.array([0, 0, 1]) + right)) > 0


class TestDistances:
    """Tests for cumulative distance and interpolation along a path"""

    def test_cumulative_distance(self):
        """Test cumulative distance along a polyline"""
        points = np.array([[0, 0, 0], [3, 0, 4], [3, 0, 10]], dtype=float)
        assert_allclose(cumulative_distance(points), [0.0, 5.0, 11.0])
        assert path_length(points) == pytest.approx(11.0)

    def test_empty_path(self):
        """Test distance helpers on an empty path"""
        assert len(cumulative_distance(np.zeros((0, 3)))) == 0
        assert path_length(np.zeros((0, 3))) == 0.0

    def test_position_at_distance_interpolates(self):
        """Test interpolation inside the straddling segment"""
        points = np.array([[0, 0, 0], [0, 0, 10], [10, 0, 10]], dtype=float)
        cum = cumulative_distance(points)
        assert_allclose(position_at_distance(points, cum, 5.0), [0, 0, 5])
        assert_allclose(position_at_distance(points, cum, 15.0), [5, 0, 10])

    def test_position_at_distance_clamps(self):
        """Test that distances beyond the ends clamp to the end points"""
        points = np.array([[0, 0, 0], [0, 0, 10]], dtype=float)
        cum = cumulative_distance(points)
        assert_allclose(position_at_distance(points, cum, -3.0), [0, 0, 0])
        assert_allclose(position_at_distance(points, cum, 99.0), [0, 0, 10])

    def test_resample_spacing(self):
        """Test that resampled points are evenly spaced"""
        points = straight_positions(length=100.0, count=7)
        resampled = resample_by_distance(points, 5.0)

        assert len(resampled) == 21
        steps = np.linalg.norm(np.diff(resampled, axis=0), axis=1)
        assert_allclose(steps, 5.0)

    def test_resample_rejects_bad_spacing(self):
        """Test that a non-positive spacing is rejected"""
        with pytest.raises(ValueError):
            resample_by_distance(straight_positions(), 0.0)

    def test_nearest_index(self):
        """Test nearest point lookup for a single target"""
        points = straight_positions(length=10.0, count=11)
        assert nearest_index(points, (0.3, 0.0, 6.2)) == 6
        assert nearest_index(np.zeros((0, 3)), (0, 0, 0)) == -1

    def test_point_index_query(self):
        """Batch lookups return distances and indices of the nearest points"""
        index = PointIndex(straight_positions(length=10.0, count=11))
        dist, idx = index.query([(0.0, 0.0, 2.1), (3.0, 4.0, 9.0)])

        assert len(index) == 11
        assert list(idx) == [2, 9]
        assert_allclose(dist, [0.1, 5.0])

    def test_point_index_horizontal(self):
        """Horizontal lookups ignore the vertical axis"""
        index = PointIndex(straight_positions(length=10.0, count=11), horizontal=True)
        dist, idx = index.query([(0.0, 50.0, 4.0)])
        assert idx[0] == 4
        assert dist[0] == pytest.approx(0.0)

    def test_empty_point_index(self):
        """Test lookups against an empty point set"""
        index = PointIndex(np.zeros((0, 3)))
        dist, idx = index.query([(1.0, 2.0, 3.0)])
        assert len(index) == 0
        assert list(idx) == [-1]
        assert index.nearest((0, 0, 0)) == -1

    def test_tangents_follow_path(self):
        """Test that tangents point along the direction of travel"""
        points = straight_positions(length=10.0, count=11)
        directions = tangents(points)
        assert np.all(directions[:, 2] > 0)
        assert_allclose(directions[:, [0, 1]], 0.0)

    def test_frozen_is_read_only(self):
        """Test that frozen arrays reject writes"""
        arr = frozen(np.ones(3))
        with pytest.raises(ValueError):
            arr[0] = 2.0


class TestTrajectorySmoother:
    """Tests for TrajectorySmoother"""

    @pytest.fixture
    def smoother(self):
        return TrajectorySmoother(window=5, max_step=20.0)

    def test_short_input_returned_unchanged(self, smoother):
        """Test that inputs too short to smooth come back unchanged"""
        points = np.array([[0, 0, 0], [1, 0, 0], [5, 0, 2]], dtype=float)
        assert_allclose(smoother.smooth(points), points)

    def test_empty_input(self, smoother):
        """Test smoothing an empty path"""
        assert smoother.smooth([]).shape == (0, 3)

    def test_never_longer_than_input(self, smoother):
        """Test that smoothing never adds points"""
        rng = np.random.default_rng(7)
        points = circle_positions() + rng.normal(0.0, 0.5, size=(400, 3))
        assert len(smoother.smooth(points)) <= len(points)

    def test_consecutive_points_bounded(self, smoother):
        """Kept points are at most 1.5 * max_step apart"""
        rng = np.random.default_rng(11)
        points = np.cumsum(rng.uniform(-15.0, 15.0, size=(300, 3)), axis=0)
        smoothed = smoother.smooth(points)

        steps = np.linalg.norm(np.diff(smoothed, axis=0), axis=1)
        assert np.all(steps <= 1.5 * smoother.max_step + 1e-9)

    def test_moving_average_keeps_interior_of_line(self, smoother):
        """Test that a straight line survives the moving average"""
        points = straight_positions(length=100.0, count=51)
        averaged = smoother.moving_average(points)
        assert_allclose(averaged[2:-2], points[2:-2])

    def test_moving_average_clamps_window_at_ends(self, smoother):
        """Test that the window shrinks at the path ends"""
        points = straight_positions(length=100.0, count=51)
        averaged = smoother.moving_average(points)
        # First window covers points 0..2
        assert_allclose(averaged[0], points[1])

    def test_remove_outliers_drops_far_jump(self, smoother):
        """Test that a jump beyond three times the max step is dropped"""
        points = np.array([[0, 0, 0], [1, 0, 0], [100, 0, 0], [2, 0, 0]], dtype=float)
        cleaned = smoother.remove_outliers(points)
        assert_allclose(cleaned, [[0, 0, 0], [1, 0, 0], [2, 0, 0]])

    def test_remove_outliers_pulls_in_moderate_jump(self, smoother):
        """Test that a moderate jump is replaced by the midpoint"""
        points = np.array([[0, 0, 0], [30, 0, 0]], dtype=float)
        cleaned = smoother.remove_outliers(points)
        assert_allclose(cleaned, [[0, 0, 0], [15, 0, 0]])

    def test_rejects_bad_parameters(self):
        """Test that invalid smoother parameters are rejected"""
        with pytest.raises(ValueError):
            TrajectorySmoother(window=0)
        with pytest.raises(ValueError):
            TrajectorySmoother(max_step=0.0)
