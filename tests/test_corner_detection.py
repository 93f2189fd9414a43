"""
Tests for corner detection.
"""

from dataclasses import replace

import numpy as np
import pytest

from telemetry_factory import circle_positions, lap_from_positions, polyline, straight_positions
from trackinsight.features.corner_detection import (
    CornerDetector,
    CornerDirection,
    CornerType,
    classify_corner,
    corner_telemetry,
)

# Straight, right kink, 8 units across, left kink, straight
CHICANE_VERTICES = [(0, 0, 0), (0, 0, 20), (8, 0, 20), (8, 0, 40)]


class TestClassifyCorner:
    """Tests for classify_corner buckets"""

    @pytest.mark.parametrize("curvature,expected", [
        (0.5, CornerType.HAIRPIN),
        (-0.31, CornerType.HAIRPIN),
        (0.25, CornerType.SLOW),
        (0.15, CornerType.MEDIUM),
        (-0.07, CornerType.FAST),
        (0.05, CornerType.SWEEPER),
    ])
    def test_buckets(self, curvature, expected):
        """Test corner type buckets by curvature"""
        assert classify_corner(curvature) == expected


class TestCornerDetector:
    """Tests for CornerDetector on synthetic centerlines"""

    def test_straight_has_no_corners(self):
        """Test that a straight produces no corners"""
        assert CornerDetector().detect(straight_positions()) == []

    def test_short_centerline_has_no_corners(self):
        """Fewer than 2 * lookahead points is not enough to scan"""
        points = circle_positions(count=400)[:19]
        assert CornerDetector(lookahead=10).detect(points) == []

    def test_counter_clockwise_circle_turns_left(self):
        """Test that a counter-clockwise circle reads as left-handers"""
        corners = CornerDetector().detect(circle_positions())

        assert len(corners) > 5
        assert all(c.direction == CornerDirection.LEFT for c in corners)
        assert all(c.curvature < 0 for c in corners)

    def test_clockwise_circle_turns_right(self):
        """Test that a clockwise circle reads as right-handers"""
        corners = CornerDetector().detect(circle_positions(clockwise=True))

        assert len(corners) > 5
        assert all(c.direction == CornerDirection.RIGHT for c in corners)

    def test_corners_numbered_in_centerline_order(self):
        """Test that corners are numbered T1..Tn along the track"""
        corners = CornerDetector().detect(circle_positions())

        assert [c.id for c in corners] == list(range(1, len(corners) + 1))
        assert [c.name for c in corners] == [f"T{i}" for i in range(1, len(corners) + 1)]
        indices = [c.apex_index for c in corners]
        assert indices == sorted(indices)

    def test_accepted_corners_respect_min_separation(self):
        """Test that accepted apexes are at least the minimum separation apart"""
        detector = CornerDetector()
        corners = detector.detect(circle_positions())

        apexes = np.array([c.apex_position for c in corners])
        for i in range(len(apexes)):
            for j in range(i + 1, len(apexes)):
                assert np.linalg.norm(apexes[i] - apexes[j]) >= detector.min_separation

    def test_apex_within_lookahead_margins(self):
        """Test that no apex falls inside the lookahead margins"""
        detector = CornerDetector()
        points = circle_positions()
        corners = detector.detect(points)

        k = detector.lookahead
        assert all(k <= c.apex_index < len(points) - k for c in corners)

    def test_chicane_pair(self):
        """Opposite-handed sharp corners close together are both chicane"""
        detector = CornerDetector(lookahead=3, min_separation=5.0, merge_distance=4.0)
        corners = detector.detect(polyline(CHICANE_VERTICES))

        assert len(corners) == 2
        first, second = corners
        assert first.apex_index == 18
        assert second.apex_index == 26
        assert first.direction == CornerDirection.RIGHT
        assert second.direction == CornerDirection.LEFT
        assert first.corner_type == CornerType.CHICANE
        assert second.corner_type == CornerType.CHICANE

    def test_far_apart_opposite_corners_are_not_chicane(self):
        """Test that distant opposite turns stay separate corners"""
        vertices = [(0, 0, 0), (0, 0, 20), (60, 0, 20), (60, 0, 40)]
        detector = CornerDetector(lookahead=3, min_separation=5.0, merge_distance=4.0)
        corners = detector.detect(polyline(vertices))

        assert len(corners) == 2
        assert all(c.corner_type != CornerType.CHICANE for c in corners)

    def test_radius_is_mean_window_distance(self):
        """Test the corner radius estimate"""
        detector = CornerDetector(lookahead=2)
        points = straight_positions(length=4.0, count=5)
        # Distances from the middle point: 2, 1, 0, 1, 2
        assert detector._radius(points, 2) == pytest.approx(1.2)

    def test_curvature_profile_zero_in_margins(self):
        """Test that the curvature profile is zero where no window fits"""
        detector = CornerDetector()
        profile = detector.curvature_profile(circle_positions())

        assert np.all(profile[:detector.lookahead] == 0.0)
        assert np.all(profile[-detector.lookahead:] == 0.0)
        assert np.all(profile[detector.lookahead:-detector.lookahead] < 0)

    def test_telemetry_attached_when_samples_given(self):
        """Test that raw samples add corner telemetry"""
        samples = lap_from_positions(circle_positions(), speed=42.0)
        corners = CornerDetector().detect(circle_positions(), samples)

        assert corners
        for corner in corners:
            assert corner.telemetry is not None
            assert corner.telemetry.apex_speed == pytest.approx(42.0)
            assert corner.telemetry.sample_count > 0

    def test_rejects_bad_lookahead(self):
        """Test that a non-positive lookahead is rejected"""
        with pytest.raises(ValueError):
            CornerDetector(lookahead=0)


class TestCornerTelemetry:
    """Tests for corner_telemetry"""

    def test_no_nearby_samples(self):
        """Test corner telemetry with no samples near the apex"""
        samples = lap_from_positions(straight_positions())
        result = corner_telemetry(samples, (500.0, 0.0, 0.0), radius=10.0)
        assert result.sample_count == 0
        assert result.apex_speed == 0.0

    def test_entry_apex_exit(self):
        """Test entry, apex and exit speeds around an apex"""
        samples = lap_from_positions(straight_positions(length=20.0, count=21), duration=20.0)
        speeds = [50.0 - abs(i - 10) for i in range(21)]
        samples = [replace(s, speed=v) for s, v in zip(samples, speeds)]
        result = corner_telemetry(samples, (0.0, 0.0, 10.0), radius=5.0)

        assert result.sample_count == 11
        assert result.entry_speed == pytest.approx(45.0)
        assert result.apex_speed == pytest.approx(45.0)
        assert result.exit_speed == pytest.approx(45.0)
        assert result.duration == pytest.approx(10.0)
