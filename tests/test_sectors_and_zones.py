"""
Tests for sector planning and braking/acceleration zone detection.
"""

import numpy as np
import pytest

from telemetry_factory import circle_positions, make_sample, straight_positions
from trackinsight.analysis.geometry import path_length
from trackinsight.features.corner_detection import CornerDetector
from trackinsight.features.sector_planner import SectorPlanner, sector_index_for
from trackinsight.features.zone_detection import AccelerationZone, BrakingZone, ZoneDetector


class TestSectorPlanner:
    """Tests for SectorPlanner"""

    def test_sectors_partition_track(self):
        """Test that sectors cover the track without gaps"""
        points = circle_positions()
        sectors = SectorPlanner(sector_count=3).plan(points)
        length = path_length(points)

        assert [s.number for s in sectors] == [1, 2, 3]
        assert sectors[0].start_distance == 0.0
        assert sectors[-1].end_distance == length
        for a, b in zip(sectors, sectors[1:]):
            assert a.end_distance == pytest.approx(b.start_distance)
        assert sum(s.length for s in sectors) == pytest.approx(length)

    def test_equal_lengths(self):
        """Test that sectors have equal length"""
        sectors = SectorPlanner(sector_count=4).plan(straight_positions(length=400.0))
        for sector in sectors:
            assert sector.length == pytest.approx(100.0)

    def test_boundary_positions(self):
        """Test sector boundary positions on the centerline"""
        sectors = SectorPlanner(sector_count=2).plan(straight_positions(length=400.0))
        assert sectors[0].start_position == pytest.approx((0.0, 0.0, 0.0))
        assert sectors[0].end_position == pytest.approx((0.0, 0.0, 200.0))
        assert sectors[1].end_position == pytest.approx((0.0, 0.0, 400.0))

    def test_every_corner_assigned_once(self):
        """Test that each corner belongs to exactly one sector"""
        points = circle_positions()
        corners = CornerDetector().detect(points)
        sectors = SectorPlanner().plan(points, corners)

        assigned = [cid for s in sectors for cid in s.corner_ids]
        assert sorted(assigned) == [c.id for c in corners]

    def test_corner_in_sector_containing_apex(self):
        """Test that a corner goes to the sector holding its apex"""
        points = circle_positions()
        corners = CornerDetector().detect(points)
        sectors = SectorPlanner().plan(points, corners)

        for corner in corners:
            j = sector_index_for(sectors, corner.apex_distance)
            assert corner.id in sectors[j].corner_ids

    def test_distance_at_track_end_is_in_last_sector(self):
        """Test that the track end maps to the last sector"""
        sectors = SectorPlanner(sector_count=3).plan(straight_positions(length=300.0))
        assert sector_index_for(sectors, 300.0) == 2
        assert sector_index_for(sectors, 100.0) == 1
        assert sector_index_for(sectors, 301.0) == -1

    def test_straight_track_gets_sectors_without_corners(self):
        """Test that a straight still gets sectors"""
        points = straight_positions()
        corners = CornerDetector().detect(points)
        sectors = SectorPlanner().plan(points, corners)

        assert corners == []
        assert len(sectors) == 3
        assert all(s.corner_ids == () for s in sectors)

    def test_empty_centerline(self):
        """Test sector planning on an empty centerline"""
        assert SectorPlanner().plan(np.zeros((0, 3))) == []

    def test_boundaries(self):
        """Test sector index lookup at the boundaries"""
        sectors = SectorPlanner(sector_count=3).plan(straight_positions(length=300.0))
        np.testing.assert_allclose(SectorPlanner.boundaries(sectors), [0.0, 100.0, 200.0, 300.0])

    def test_rejects_zero_sectors(self):
        """Test that zero sectors is rejected"""
        with pytest.raises(ValueError):
            SectorPlanner(sector_count=0)


def _samples(brake=None, throttle=None, speed=None, count=40):
    brake = brake or [0.0] * count
    throttle = throttle or [0.0] * count
    speed = speed or [30.0] * count
    return [
        make_sample(i * 0.1, (0.0, 0.0, float(i)), brake=brake[i], throttle=throttle[i], speed=speed[i])
        for i in range(count)
    ]


class TestZoneDetector:
    """Tests for ZoneDetector"""

    @pytest.fixture
    def detector(self):
        return ZoneDetector()

    def test_braking_zone(self, detector):
        """Test detection of a single braking zone"""
        brake = [0.0] * 10 + [0.8] * 8 + [0.0] * 22
        speed = [60.0] * 10 + [60.0 - 4 * i for i in range(8)] + [32.0] * 22
        zones = detector.detect_braking(_samples(brake=brake, speed=speed))

        assert len(zones) == 1
        zone = zones[0]
        assert isinstance(zone, BrakingZone)
        assert zone.kind == "braking"
        assert (zone.start_index, zone.end_index) == (10, 17)
        assert zone.sample_count == 8
        assert zone.peak_value == pytest.approx(0.8)
        assert zone.speed_change == pytest.approx(28.0)
        assert zone.duration == pytest.approx(0.7)
        assert zone.start_position == (0.0, 0.0, 10.0)

    def test_short_braking_run_dropped(self, detector):
        """Five samples is not more than the minimum span"""
        brake = [0.0] * 10 + [0.8] * 5 + [0.0] * 25
        assert detector.detect_braking(_samples(brake=brake)) == []

    def test_six_sample_run_kept(self, detector):
        """Test that a six sample run is long enough"""
        brake = [0.0] * 10 + [0.8] * 6 + [0.0] * 24
        assert len(detector.detect_braking(_samples(brake=brake))) == 1

    def test_open_run_at_stream_end_dropped(self, detector):
        """Test that a zone still open at stream end is dropped"""
        brake = [0.0] * 30 + [0.9] * 10
        assert detector.detect_braking(_samples(brake=brake)) == []

    def test_acceleration_zone(self, detector):
        """Test detection of a single acceleration zone"""
        throttle = [1.0] * 40
        speed = [10.0] * 5 + [10.0 + (i - 4) for i in range(5, 15)] + [20.0] * 25
        zones = detector.detect_acceleration(_samples(throttle=throttle, speed=speed))

        assert len(zones) == 1
        zone = zones[0]
        assert isinstance(zone, AccelerationZone)
        assert (zone.start_index, zone.end_index) == (5, 14)
        assert zone.peak_value == pytest.approx(1.0)
        assert zone.speed_change == pytest.approx(9.0)

    def test_acceleration_from_first_sample(self, detector):
        """The first sample has nothing to gain speed over, so the zone starts at the second"""
        throttle = [1.0] * 40
        speed = [10.0 + i for i in range(15)] + [24.0] * 25
        zones = detector.detect_acceleration(_samples(throttle=throttle, speed=speed))

        assert len(zones) == 1
        assert (zones[0].start_index, zones[0].end_index) == (1, 14)
        assert zones[0].speed_change == pytest.approx(13.0)

    def test_throttle_without_speed_gain_is_not_acceleration(self, detector):
        """Test that throttle at constant speed is not an acceleration zone"""
        zones = detector.detect_acceleration(_samples(throttle=[1.0] * 40))
        assert zones == []

    def test_zone_distances_projected_onto_centerline(self, detector):
        """Test that zone ends are projected onto the centerline"""
        brake = [0.0] * 10 + [0.8] * 8 + [0.0] * 22
        centerline = straight_positions(length=39.0, count=40)
        zones = detector.detect_braking(_samples(brake=brake), centerline)

        assert zones[0].start_distance == pytest.approx(10.0)
        assert zones[0].end_distance == pytest.approx(17.0)

    def test_empty_stream(self, detector):
        """Test zone detection on an empty stream"""
        assert detector.detect_braking([]) == []
        assert detector.detect_acceleration([]) == []
