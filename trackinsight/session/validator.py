"""
Lap validation.

Decides whether a closed lap counts: track-limits fraction, collision
G-force, minimum sample count and plausible lap time. Off-track checks
go through a pluggable TrackBoundary; without one every sample is on track.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np

from ..analysis.geometry import PointIndex
from ..config.config import Config
from ..utils.dataframe_helpers import positions_array
from .models import LapValidation, Violation, lap_time_of

logger = logging.getLogger(__name__)


class TrackBoundary(ABC):
    """Decides which sample positions are off track."""

    @abstractmethod
    def off_track_mask(self, positions: np.ndarray) -> np.ndarray:
        """Boolean array, True where the (N, 3) positions are off track."""


class NullBoundary(TrackBoundary):
    """No boundary model: every position counts as on track."""

    def off_track_mask(self, positions: np.ndarray) -> np.ndarray:
        return np.zeros(len(positions), dtype=bool)


class CenterlineBoundary(TrackBoundary):
    """
    Off track when farther than half_width from the centerline, measured in
    the horizontal plane against the nearest centerline point.
    """

    def __init__(self, centerline, half_width: float = Config.TRACK_BOUNDARY_HALF_WIDTH):
        self._index = PointIndex(centerline, horizontal=True)
        self.half_width = half_width

    @classmethod
    def from_track_map(cls, track_map, half_width: float = Config.TRACK_BOUNDARY_HALF_WIDTH) -> "CenterlineBoundary":
        return cls(track_map.centerline, half_width)

    def off_track_mask(self, positions: np.ndarray) -> np.ndarray:
        if len(positions) == 0 or len(self._index) == 0:
            return np.zeros(len(positions), dtype=bool)
        dist, _ = self._index.query(positions)
        return dist > self.half_width


class LapValidator:
    """
    Validates closed laps.

    Violations:
        - track limits: more than track_limits_max_percent of samples off track
        - collision: max G-force above collision_g_threshold
        - insufficient samples: fewer than min_samples
        - implausible time: lap time outside [min_lap_time, max_lap_time]

    A lap is valid iff it has no violations.
    """

    def __init__(
        self,
        boundary: Optional[TrackBoundary] = None,
        track_limits_max_percent: float = Config.TRACK_LIMITS_MAX_PERCENT,
        collision_g_threshold: float = Config.COLLISION_G_THRESHOLD,
        min_samples: int = Config.MIN_LAP_SAMPLES,
        min_lap_time: float = Config.MIN_LAP_TIME,
        max_lap_time: float = Config.MAX_LAP_TIME
    ):
        self.boundary = boundary or NullBoundary()
        self.track_limits_max_percent = track_limits_max_percent
        self.collision_g_threshold = collision_g_threshold
        self.min_samples = min_samples
        self.min_lap_time = min_lap_time
        self.max_lap_time = max_lap_time

    def with_boundary(self, boundary: TrackBoundary) -> "LapValidator":
        """Copy of this validator that checks track limits against boundary."""
        validator = copy.copy(self)
        validator.boundary = boundary
        return validator

    def validate(self, samples: Sequence) -> LapValidation:
        """
        Validate one lap's samples.

        Args:
            samples: The lap's sample run

        Returns:
            LapValidation with violations and the measured figures
        """
        result = LapValidation()
        n = len(samples)

        if n < self.min_samples:
            result.add(
                Violation.INSUFFICIENT_SAMPLES,
                f"Too few samples: {n} (minimum {self.min_samples})",
            )

        lap_time = lap_time_of(samples)
        if not (self.min_lap_time <= lap_time <= self.max_lap_time):
            result.add(
                Violation.IMPLAUSIBLE_TIME,
                f"Lap time {lap_time:.2f}s outside {self.min_lap_time:.0f}-{self.max_lap_time:.0f}s",
            )

        if n == 0:
            return result

        off_track = self.boundary.off_track_mask(positions_array(samples))
        result.track_limits_percentage = float(np.count_nonzero(off_track)) / n * 100.0
        if result.track_limits_percentage > self.track_limits_max_percent:
            result.add(
                Violation.TRACK_LIMITS,
                f"{result.track_limits_percentage:.1f}% of samples off track "
                f"(limit {self.track_limits_max_percent:.1f}%)",
            )

        result.max_g_force = max(s.g_force for s in samples)
        if result.max_g_force > self.collision_g_threshold:
            result.add(
                Violation.COLLISION,
                f"Peak {result.max_g_force:.1f}g exceeds {self.collision_g_threshold:.1f}g",
            )

        if not result.is_valid:
            logger.debug(f"Lap invalid: {', '.join(v.value for v in result.violations)}")
        return result
