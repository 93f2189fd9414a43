"""
Configuration module for the track analysis engine.

Class-based configuration grouped by component. Components take explicit
keyword arguments and fall back to these defaults; nothing here reads the
environment.
"""

from typing import Dict, Optional, Type


class Config:
    """Default analysis configuration"""

    # Trajectory smoothing
    SMOOTHING_WINDOW = 5
    OUTLIER_MAX_STEP = 20.0          # units between consecutive centerline points

    # Corner detection
    CORNER_LOOKAHEAD = 10            # centerline points either side of the candidate
    CORNER_CURVATURE_THRESHOLD = 0.05  # radians
    CORNER_MIN_SEPARATION = 30.0     # units between accepted candidates
    CORNER_MERGE_DISTANCE = 25.0     # units; closer corners are merged
    CHICANE_MIN_CURVATURE = 0.1      # radians, both halves of a chicane
    CORNER_TELEMETRY_RADIUS = 30.0   # raw samples within this of an apex

    # Sectors
    SECTOR_COUNT = 3

    # Braking / acceleration zones
    BRAKE_ZONE_THRESHOLD = 0.2
    THROTTLE_ZONE_THRESHOLD = 0.7
    ZONE_MIN_SPAN = 5                # a zone must span more than this many samples

    # Ideal line
    IDEAL_LINE_APEX_RADIUS = 50.0
    IDEAL_LINE_OFFSET = 2.0

    # Lap validity
    MIN_LAP_SAMPLES = 50
    MIN_LAP_TIME = 20.0              # seconds
    MAX_LAP_TIME = 600.0             # seconds
    TRACK_LIMITS_MAX_PERCENT = 5.0
    COLLISION_G_THRESHOLD = 6.0
    GRAVITY = 9.81
    TRACK_BOUNDARY_HALF_WIDTH = 7.5  # units either side of the centerline

    # Lap metrics
    PEDAL_ACTIVE_THRESHOLD = 0.1

    # Lap alignment and comparison
    ALIGNMENT_SPACING = 5.0
    TRACK_LENGTH_TOLERANCE = 0.10    # relative difference in travelled distance
    SECTOR_DELTA_THRESHOLD = 0.1     # seconds
    CORNER_ENTRY_SPEED_RATIO = 0.95

    # Session trends
    TREND_WINDOW = 5
    TREND_THRESHOLD = 0.5            # seconds

    # Sample acquisition
    POLL_INTERVAL = 0.01             # seconds between reads
    MAX_BACKOFF = 5.0                # seconds


class TestConfig(Config):
    """Test-specific configuration: short laps and fast polling"""
    MIN_LAP_SAMPLES = 10
    MIN_LAP_TIME = 1.0
    POLL_INTERVAL = 0.001
    MAX_BACKOFF = 0.01


# Configuration selection
config_map: Dict[str, Type[Config]] = {
    'testing': TestConfig,
    'default': Config,
}


def get_config(config_name: Optional[str] = None) -> Type[Config]:
    """Get configuration class by name (unknown names give the default)"""
    if config_name is None:
        config_name = 'default'

    return config_map.get(config_name, Config)

