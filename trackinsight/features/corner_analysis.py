"""
Corner Analysis Module

Per-corner passage metrics for one lap against a track map: entry, apex
and exit speed, time in corner and a simple rating of how much speed was
carried to the apex.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config.config import Config
from ..utils.dataframe_helpers import positions_array

logger = logging.getLogger(__name__)


class CornerRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    POOR = "poor"
    TERRIBLE = "terrible"


def rate_corner(entry_speed: float, apex_speed: float) -> CornerRating:
    """
    Rate a corner passage by apex speed as a share of entry speed.

    Ratios: > 0.8 excellent, > 0.7 good, > 0.6 average, > 0.5 poor,
    otherwise terrible. A zero entry speed rates terrible.
    """
    if entry_speed <= 0:
        return CornerRating.TERRIBLE
    ratio = apex_speed / entry_speed
    if ratio > 0.8:
        return CornerRating.EXCELLENT
    if ratio > 0.7:
        return CornerRating.GOOD
    if ratio > 0.6:
        return CornerRating.AVERAGE
    if ratio > 0.5:
        return CornerRating.POOR
    return CornerRating.TERRIBLE


@dataclass
class CornerPassage:
    """One lap's pass through one corner."""
    corner_id: int
    corner_name: str
    entry_speed: float = 0.0
    apex_speed: float = 0.0
    exit_speed: float = 0.0
    apex_position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    corner_time: float = 0.0
    max_brake: float = 0.0
    throttle_at_apex: float = 0.0
    sample_count: int = 0
    rating: CornerRating = CornerRating.TERRIBLE

    @property
    def speed_scrub(self) -> float:
        return self.entry_speed - self.apex_speed

    def to_dict(self) -> dict:
        return {
            "corner_id": self.corner_id,
            "corner_name": self.corner_name,
            "speeds": {
                "entry": round(self.entry_speed, 2),
                "apex": round(self.apex_speed, 2),
                "exit": round(self.exit_speed, 2),
                "scrub": round(self.speed_scrub, 2),
            },
            "apex_position": list(self.apex_position),
            "corner_time": round(self.corner_time, 3),
            "max_brake": round(self.max_brake, 3),
            "throttle_at_apex": round(self.throttle_at_apex, 3),
            "sample_count": self.sample_count,
            "rating": self.rating.value,
        }


@dataclass
class LapCornerAnalysis:
    """Corner passages for a single lap."""
    lap_number: int
    passages: List[CornerPassage] = field(default_factory=list)

    @property
    def total_corner_time(self) -> float:
        return sum(p.corner_time for p in self.passages)

    def get(self, corner_id: int) -> Optional[CornerPassage]:
        for passage in self.passages:
            if passage.corner_id == corner_id:
                return passage
        return None

    def to_dict(self) -> dict:
        return {
            "lap_number": self.lap_number,
            "corners": [p.to_dict() for p in self.passages],
            "total_corner_time": round(self.total_corner_time, 3),
        }


class CornerAnalyzer:
    """
    Measures how a lap drove each corner of a track map.

    A passage is the run of samples within max(2 * corner radius,
    min_window) of the corner apex.
    """

    DEFAULT_MIN_WINDOW = Config.CORNER_TELEMETRY_RADIUS

    def __init__(self, min_window: float = DEFAULT_MIN_WINDOW):
        self.min_window = min_window

    def analyze_lap(self, samples: Sequence, track_map, lap_number: int = 0) -> LapCornerAnalysis:
        """
        Measure every corner of track_map on one lap.

        Corners the lap never came near get a passage with zero figures.
        """
        result = LapCornerAnalysis(lap_number=lap_number)
        if len(samples) == 0 or not track_map.corners:
            return result

        positions = positions_array(samples)
        for corner in track_map.corners:
            window = max(corner.radius * 2.0, self.min_window)
            d = np.linalg.norm(positions - np.asarray(corner.apex_position), axis=1)
            idx = np.flatnonzero(d <= window)
            result.passages.append(self._passage(corner, samples, idx))

        return result

    def _passage(self, corner, samples: Sequence, idx: np.ndarray) -> CornerPassage:
        passage = CornerPassage(corner_id=corner.id, corner_name=corner.name)
        if len(idx) == 0:
            logger.debug(f"No samples near {corner.name}")
            return passage

        near = [samples[i] for i in idx]
        apex = min(near, key=lambda s: s.speed)
        passage.entry_speed = float(near[0].speed)
        passage.apex_speed = float(apex.speed)
        passage.exit_speed = float(near[-1].speed)
        passage.apex_position = tuple(float(v) for v in apex.position)
        passage.corner_time = float(near[-1].timestamp - near[0].timestamp)
        passage.max_brake = float(max(s.brake for s in near))
        passage.throttle_at_apex = float(apex.throttle)
        passage.sample_count = len(near)
        passage.rating = rate_corner(passage.entry_speed, passage.apex_speed)
        return passage
