"""
Shared fixtures for the trackinsight test suite.
"""

import pytest

from telemetry_factory import circle_positions, lap_from_positions, straight_positions
from trackinsight.config import get_config
from trackinsight.features.track_map import TrackMapBuilder
from trackinsight.session.validator import LapValidator


@pytest.fixture
def test_config():
    return get_config('testing')


@pytest.fixture
def circle_samples():
    """One counter-clockwise lap of a 100-unit circle, 400 samples over 60s."""
    return lap_from_positions(circle_positions(), lap_number=1, duration=60.0)


@pytest.fixture
def straight_samples():
    """400 units of straight road, 200 samples over 40s."""
    return lap_from_positions(straight_positions(), lap_number=1, duration=40.0)


@pytest.fixture
def circle_map(circle_samples):
    return TrackMapBuilder().build(circle_samples)


@pytest.fixture
def lenient_validator(test_config):
    """Validator with the test sample and lap-time minimums."""
    return LapValidator(
        min_samples=test_config.MIN_LAP_SAMPLES,
        min_lap_time=test_config.MIN_LAP_TIME,
    )
