"""
Corner Detection Module

Finds corners on a smoothed centerline from the signed turning angle over a
fixed lookahead window, classifies them, and optionally annotates each one
with speed and pedal figures from the raw samples near its apex.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..analysis.geometry import as_points, cumulative_distance, signed_curvature
from ..config.config import Config
from ..utils.dataframe_helpers import positions_array

logger = logging.getLogger(__name__)

Vector3 = Tuple[float, float, float]


class CornerDirection(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class CornerType(str, Enum):
    HAIRPIN = "hairpin"
    SLOW = "slow"
    MEDIUM = "medium"
    FAST = "fast"
    CHICANE = "chicane"
    SWEEPER = "sweeper"


def classify_corner(curvature: float) -> CornerType:
    """
    Classify a corner by the magnitude of its turning angle.

    Buckets (radians):
        - "hairpin": > 0.3
        - "slow": > 0.2
        - "medium": > 0.1
        - "fast": > 0.05
        - "sweeper": anything gentler

    Chicanes are decided from neighbouring corners, not here.
    """
    magnitude = abs(curvature)
    if magnitude > 0.3:
        return CornerType.HAIRPIN
    if magnitude > 0.2:
        return CornerType.SLOW
    if magnitude > 0.1:
        return CornerType.MEDIUM
    if magnitude > 0.05:
        return CornerType.FAST
    return CornerType.SWEEPER


def _vec(p) -> Vector3:
    return (float(p[0]), float(p[1]), float(p[2]))


@dataclass(frozen=True)
class CornerTelemetry:
    """Raw-sample figures for the stretch of track around an apex."""
    entry_speed: float = 0.0
    apex_speed: float = 0.0
    exit_speed: float = 0.0
    max_brake: float = 0.0
    max_g_force: float = 0.0
    duration: float = 0.0
    sample_count: int = 0

    def to_dict(self) -> dict:
        return {
            "entry_speed": round(self.entry_speed, 2),
            "apex_speed": round(self.apex_speed, 2),
            "exit_speed": round(self.exit_speed, 2),
            "max_brake": round(self.max_brake, 3),
            "max_g_force": round(self.max_g_force, 2),
            "duration": round(self.duration, 3),
            "sample_count": self.sample_count,
        }


@dataclass(frozen=True)
class Corner:
    """A detected corner on the centerline."""
    id: int
    name: str
    apex_index: int
    apex_position: Vector3
    apex_distance: float
    entry_point: Vector3
    exit_point: Vector3
    curvature: float
    radius: float
    direction: CornerDirection
    corner_type: CornerType
    telemetry: Optional[CornerTelemetry] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "apex_index": self.apex_index,
            "apex": list(self.apex_position),
            "apex_distance": round(self.apex_distance, 2),
            "entry": list(self.entry_point),
            "exit": list(self.exit_point),
            "curvature": round(self.curvature, 4),
            "radius": round(self.radius, 2),
            "direction": self.direction.value,
            "corner_type": self.corner_type.value,
            "telemetry": self.telemetry.to_dict() if self.telemetry else None,
        }


def corner_telemetry(samples: Sequence, apex_position, radius: float = Config.CORNER_TELEMETRY_RADIUS) -> CornerTelemetry:
    """
    Summarize the raw samples lying within radius of an apex.

    Entry and exit speed are the first and last nearby samples in stream
    order, apex speed is the slowest of them.

    Returns:
        CornerTelemetry (all zeros when no sample is close enough)
    """
    if len(samples) == 0:
        return CornerTelemetry()

    positions = positions_array(samples)
    d = np.linalg.norm(positions - np.asarray(apex_position, dtype=float), axis=1)
    near = [samples[i] for i in np.flatnonzero(d <= radius)]
    if not near:
        return CornerTelemetry()

    return CornerTelemetry(
        entry_speed=float(near[0].speed),
        apex_speed=float(min(s.speed for s in near)),
        exit_speed=float(near[-1].speed),
        max_brake=float(max(s.brake for s in near)),
        max_g_force=float(max(s.g_force for s in near)),
        duration=float(near[-1].timestamp - near[0].timestamp),
        sample_count=len(near),
    )


class CornerDetector:
    """
    Detects corners on a smoothed centerline.

    For every interior point p[i] the turning angle between p[i-k] -> p[i]
    and p[i] -> p[i+k] is measured. A point whose |angle| exceeds the
    threshold becomes a candidate unless an accepted corner already lies
    within min_separation. Candidates are then typed, checked for chicanes,
    merged when closer than merge_distance (keeping the sharper one) and
    numbered T1..Tn in centerline order.
    """

    DEFAULT_LOOKAHEAD = Config.CORNER_LOOKAHEAD
    DEFAULT_CURVATURE_THRESHOLD = Config.CORNER_CURVATURE_THRESHOLD
    DEFAULT_MIN_SEPARATION = Config.CORNER_MIN_SEPARATION
    DEFAULT_MERGE_DISTANCE = Config.CORNER_MERGE_DISTANCE
    DEFAULT_CHICANE_MIN_CURVATURE = Config.CHICANE_MIN_CURVATURE

    def __init__(
        self,
        lookahead: int = DEFAULT_LOOKAHEAD,
        curvature_threshold: float = DEFAULT_CURVATURE_THRESHOLD,
        min_separation: float = DEFAULT_MIN_SEPARATION,
        merge_distance: float = DEFAULT_MERGE_DISTANCE,
        chicane_min_curvature: float = DEFAULT_CHICANE_MIN_CURVATURE,
        telemetry_radius: float = Config.CORNER_TELEMETRY_RADIUS
    ):
        if lookahead < 1:
            raise ValueError(f"lookahead must be at least 1, got {lookahead}")
        self.lookahead = lookahead
        self.curvature_threshold = curvature_threshold
        self.min_separation = min_separation
        self.merge_distance = merge_distance
        self.chicane_min_curvature = chicane_min_curvature
        self.telemetry_radius = telemetry_radius

    def detect(self, centerline, samples: Optional[Sequence] = None) -> List[Corner]:
        """
        Detect corners on a centerline.

        Args:
            centerline: (N, 3) smoothed positions
            samples: Optional raw samples used to annotate each corner

        Returns:
            Corners ordered along the centerline, named T1..Tn. Empty when
            the centerline is shorter than 2 * lookahead.
        """
        points = as_points(centerline)
        k = self.lookahead
        if len(points) < 2 * k:
            logger.debug(f"Centerline has {len(points)} points, need {2 * k} for corner detection")
            return []

        cum = cumulative_distance(points)
        candidates = self._scan(points, cum)
        candidates = self._mark_chicanes(candidates)
        merged = self._merge(candidates)

        corners = []
        for number, corner in enumerate(sorted(merged, key=lambda c: c.apex_index), start=1):
            telemetry = None
            if samples is not None:
                telemetry = corner_telemetry(samples, corner.apex_position, self.telemetry_radius)
            corners.append(replace(corner, id=number, name=f"T{number}", telemetry=telemetry))

        logger.debug(f"Detected {len(corners)} corners from {len(candidates)} candidates")
        return corners

    def curvature_profile(self, centerline) -> np.ndarray:
        """Signed curvature at every point (0.0 inside the lookahead margins)."""
        points = as_points(centerline)
        k = self.lookahead
        profile = np.zeros(len(points))
        for i in range(k, len(points) - k):
            profile[i] = signed_curvature(points[i - k], points[i], points[i + k])
        return profile

    def _scan(self, points: np.ndarray, cum: np.ndarray) -> List[Corner]:
        k = self.lookahead
        n = len(points)
        accepted: List[Corner] = []

        for i in range(k, n - k):
            curvature = signed_curvature(points[i - k], points[i], points[i + k])
            if abs(curvature) <= self.curvature_threshold:
                continue

            apex = points[i]
            too_close = any(
                np.linalg.norm(apex - np.asarray(c.apex_position)) < self.min_separation
                for c in accepted
            )
            if too_close:
                continue

            accepted.append(Corner(
                id=len(accepted) + 1,
                name=f"T{len(accepted) + 1}",
                apex_index=i,
                apex_position=_vec(apex),
                apex_distance=float(cum[i]),
                entry_point=_vec(points[max(0, i - k)]),
                exit_point=_vec(points[min(n - 1, i + k)]),
                curvature=float(curvature),
                radius=self._radius(points, i),
                direction=CornerDirection.RIGHT if curvature > 0 else CornerDirection.LEFT,
                corner_type=classify_corner(curvature),
            ))

        return accepted

    def _radius(self, points: np.ndarray, i: int) -> float:
        """Mean distance from p[i] to every point of its lookahead window."""
        k = self.lookahead
        lo = max(0, i - k)
        hi = min(len(points) - 1, i + k)
        window = points[lo:hi + 1]
        return float(np.mean(np.linalg.norm(window - points[i], axis=1)))

    def _mark_chicanes(self, candidates: List[Corner]) -> List[Corner]:
        """Retype adjacent opposite-handed sharp candidates as a chicane pair."""
        if len(candidates) < 2:
            return candidates

        result = list(candidates)
        max_gap = 3 * self.lookahead
        for j in range(len(result) - 1):
            a, b = result[j], result[j + 1]
            if a.curvature * b.curvature >= 0:
                continue
            if abs(a.curvature) <= self.chicane_min_curvature or abs(b.curvature) <= self.chicane_min_curvature:
                continue
            if b.apex_index - a.apex_index > max_gap:
                continue
            result[j] = replace(a, corner_type=CornerType.CHICANE)
            result[j + 1] = replace(b, corner_type=CornerType.CHICANE)
        return result

    def _merge(self, candidates: List[Corner]) -> List[Corner]:
        """Collapse corners closer than merge_distance, keeping the sharper one."""
        merged: List[Corner] = []
        for corner in candidates:
            apex = np.asarray(corner.apex_position)
            nearby = None
            for existing in merged:
                if np.linalg.norm(apex - np.asarray(existing.apex_position)) < self.merge_distance:
                    nearby = existing
                    break

            if nearby is None:
                merged.append(corner)
            elif abs(corner.curvature) > abs(nearby.curvature):
                merged.remove(nearby)
                merged.append(corner)
        return merged

    def get_params(self) -> dict:
        return {
            "lookahead": self.lookahead,
            "curvature_threshold": self.curvature_threshold,
            "min_separation": self.min_separation,
            "merge_distance": self.merge_distance,
            "chicane_min_curvature": self.chicane_min_curvature,
        }
