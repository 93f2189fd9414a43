"""
Track map reconstruction.

Builds an immutable TrackMap from a snapshot of raw telemetry samples:
smoothed centerline, corners, sectors, braking/acceleration zones, an
estimated ideal line, elevation profile and width estimate.
"""

import hashlib
import logging
import time
from dataclasses import dataclass, field
from functools import cached_property
from typing import Optional, Sequence, Tuple

import numpy as np

from ..analysis.geometry import (
    PointIndex,
    as_points,
    cumulative_distance,
    frozen,
    lateral_unit,
    tangents,
)
from ..analysis.smoothing import TrajectorySmoother
from ..config.config import Config
from ..session.models import snapshot_samples
from ..utils.calculation_trace import CalculationTrace
from ..utils.dataframe_helpers import positions_array, sanitize_for_json
from .base_analyzer import BaseAnalysisReport
from .corner_detection import Corner, CornerDetector, CornerDirection
from .sector_planner import Sector, SectorPlanner, sector_index_for
from .zone_detection import AccelerationZone, BrakingZone, ZoneDetector

logger = logging.getLogger(__name__)

UNKNOWN_TRACK = "Unknown"


@dataclass(frozen=True, eq=False)
class TrackMap(BaseAnalysisReport):
    """
    Reconstructed layout of one track.

    Immutable once built: arrays are read-only and collections are tuples.
    A rebuild produces a new TrackMap rather than editing this one.
    """
    track_name: str
    centerline: np.ndarray
    cumulative_distance: np.ndarray
    length: float
    start_finish: Tuple[float, float, float]
    corners: Tuple[Corner, ...] = ()
    sectors: Tuple[Sector, ...] = ()
    braking_zones: Tuple[BrakingZone, ...] = ()
    acceleration_zones: Tuple[AccelerationZone, ...] = ()
    ideal_line: np.ndarray = field(default_factory=lambda: frozen(np.zeros((0, 3))))
    elevation_profile: np.ndarray = field(default_factory=lambda: frozen(np.zeros(0)))
    track_width: float = 0.0
    sample_count: int = 0
    built_at: float = 0.0
    trace: Optional[CalculationTrace] = None

    @property
    def is_empty(self) -> bool:
        return len(self.centerline) == 0

    def corner_by_id(self, corner_id: int) -> Optional[Corner]:
        for corner in self.corners:
            if corner.id == corner_id:
                return corner
        return None

    def sector_for_distance(self, distance: float) -> Optional[Sector]:
        j = sector_index_for(self.sectors, distance)
        return self.sectors[j] if j >= 0 else None

    @cached_property
    def centerline_index(self) -> PointIndex:
        return PointIndex(self.centerline)

    def project(self, position) -> float:
        """Centerline distance of the centerline point nearest to position."""
        if self.is_empty:
            return 0.0
        return float(self.cumulative_distance[self.centerline_index.nearest(position)])

    def layout_hash(self) -> str:
        """Short fingerprint of the layout (length, sectors and corners)."""
        key = f"{self.track_name}|{self.length:.1f}|{len(self.sectors)}|" + ",".join(
            f"{c.apex_distance:.0f}{c.direction.value[0]}" for c in self.corners
        )
        return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]

    def to_dict(self) -> dict:
        result = {
            "track_name": self.track_name,
            "length": round(self.length, 2),
            "start_finish": list(self.start_finish),
            "centerline_points": len(self.centerline),
            "sample_count": self.sample_count,
            "track_width": round(self.track_width, 2),
            "layout_hash": self.layout_hash(),
            "corners": [c.to_dict() for c in self.corners],
            "sectors": [s.to_dict() for s in self.sectors],
            "braking_zones": [z.to_dict() for z in self.braking_zones],
            "acceleration_zones": [z.to_dict() for z in self.acceleration_zones],
            "elevation": {
                "min": float(self.elevation_profile.min()) if len(self.elevation_profile) else 0.0,
                "max": float(self.elevation_profile.max()) if len(self.elevation_profile) else 0.0,
            },
        }
        result.update(self._trace_dict())
        return sanitize_for_json(result)


def estimate_ideal_line(
    centerline,
    corners: Sequence[Corner],
    apex_radius: float = Config.IDEAL_LINE_APEX_RADIUS,
    offset: float = Config.IDEAL_LINE_OFFSET
) -> np.ndarray:
    """
    Shift centerline points near an apex toward the inside of the corner.

    Each point within apex_radius of a corner apex moves offset units along
    the horizontal lateral vector: to the right for right-handers, to the
    left for left-handers. The first matching corner (in list order) wins.
    Every other point is kept, so the result has one point per centerline
    point.
    """
    points = as_points(centerline)
    if len(points) == 0 or not corners:
        return points.copy()

    apexes = np.array([c.apex_position for c in corners], dtype=float)
    signs = np.array([1.0 if c.direction == CornerDirection.RIGHT else -1.0 for c in corners])
    directions = tangents(points)

    ideal = points.copy()
    for i, p in enumerate(points):
        d = np.linalg.norm(apexes - p, axis=1)
        near = np.flatnonzero(d < apex_radius)
        if len(near) == 0:
            continue
        ideal[i] = p + lateral_unit(directions[i]) * offset * signs[near[0]]
    return ideal


class TrackMapBuilder:
    """
    Builds TrackMaps from raw samples.

    Components are injectable so that tuning (or a test double) can be
    passed in; by default each is built from Config.
    """

    def __init__(
        self,
        smoother: Optional[TrajectorySmoother] = None,
        corner_detector: Optional[CornerDetector] = None,
        sector_planner: Optional[SectorPlanner] = None,
        zone_detector: Optional[ZoneDetector] = None,
        ideal_line_apex_radius: float = Config.IDEAL_LINE_APEX_RADIUS,
        ideal_line_offset: float = Config.IDEAL_LINE_OFFSET
    ):
        self.smoother = smoother or TrajectorySmoother()
        self.corner_detector = corner_detector or CornerDetector()
        self.sector_planner = sector_planner or SectorPlanner()
        self.zone_detector = zone_detector or ZoneDetector()
        self.ideal_line_apex_radius = ideal_line_apex_radius
        self.ideal_line_offset = ideal_line_offset

    def build(self, samples, track_name: Optional[str] = None, include_trace: bool = False) -> TrackMap:
        """
        Reconstruct a track from a sample stream.

        Args:
            samples: Raw samples (copied into a snapshot before use)
            track_name: Overrides the name carried by the samples
            include_trace: Attach a CalculationTrace with sanity checks

        Returns:
            TrackMap. An empty stream gives an empty map (no centerline,
            length 0) rather than an error.
        """
        snapshot = snapshot_samples(samples)
        name = track_name or self._track_name(snapshot)

        positions = positions_array(snapshot)
        centerline = self.smoother.smooth(positions)
        cum = cumulative_distance(centerline)
        length = float(cum[-1]) if len(cum) else 0.0

        corners = self.corner_detector.detect(centerline, snapshot)
        sectors = self.sector_planner.plan(centerline, corners)
        braking = self.zone_detector.detect_braking(snapshot, centerline)
        acceleration = self.zone_detector.detect_acceleration(snapshot, centerline)
        ideal = estimate_ideal_line(
            centerline, corners, self.ideal_line_apex_radius, self.ideal_line_offset
        )

        if len(positions):
            elevation = positions[:, 1]
            width = float(positions[:, 0].max() - positions[:, 0].min())
            start_finish = tuple(float(v) for v in centerline[0])
        else:
            logger.debug(f"No samples for track '{name}', building empty map")
            elevation = np.zeros(0)
            width = 0.0
            start_finish = (0.0, 0.0, 0.0)

        trace = None
        if include_trace:
            trace = self._trace(snapshot, centerline, length, corners, sectors, braking, acceleration)

        track_map = TrackMap(
            track_name=name,
            centerline=frozen(centerline),
            cumulative_distance=frozen(cum),
            length=length,
            start_finish=start_finish,
            corners=tuple(corners),
            sectors=tuple(sectors),
            braking_zones=tuple(braking),
            acceleration_zones=tuple(acceleration),
            ideal_line=frozen(ideal),
            elevation_profile=frozen(elevation),
            track_width=width,
            sample_count=len(snapshot),
            built_at=time.time(),
            trace=trace,
        )
        logger.info(
            f"Built track map '{name}': {length:.1f} length, {len(corners)} corners, "
            f"{len(sectors)} sectors from {len(snapshot)} samples"
        )
        return track_map

    @staticmethod
    def _track_name(samples) -> str:
        for s in samples:
            if s.track_name:
                return s.track_name
        return UNKNOWN_TRACK

    def _trace(self, samples, centerline, length, corners, sectors, braking, acceleration) -> CalculationTrace:
        trace = CalculationTrace.start("TrackMapBuilder", sample_count=len(samples))
        trace.record_stage(
            "smoothing",
            {"window": self.smoother.window, "outlier_max_step": self.smoother.max_step},
            centerline_points=len(centerline),
            track_length=round(length, 2),
        )
        trace.record_stage("corners", self.corner_detector.get_params(), corner_count=len(corners))
        trace.record_stage("sectors", {"count": self.sector_planner.sector_count}, sector_count=len(sectors))
        trace.record_stage(
            "zones",
            {
                "brake_threshold": self.zone_detector.brake_threshold,
                "throttle_threshold": self.zone_detector.throttle_threshold,
                "min_span": self.zone_detector.min_span,
            },
            braking_zones=len(braking),
            acceleration_zones=len(acceleration),
        )

        trace.check(
            "smoothing_kept_points",
            len(centerline) <= len(samples),
            f"{len(centerline)} centerline points from {len(samples)} samples",
            severity="error",
        )

        if sectors:
            contiguous = all(
                abs(a.end_distance - b.start_distance) < 1e-9 for a, b in zip(sectors, sectors[1:])
            )
            covers = sectors[0].start_distance == 0.0 and sectors[-1].end_distance == length
            trace.check(
                "sectors_partition_track",
                contiguous and covers,
                f"{len(sectors)} sectors over {length:.1f}",
                expected=round(length, 2),
                actual=round(sectors[-1].end_distance, 2),
                severity="error",
            )

        in_range = all(0.0 <= c.apex_distance < length for c in corners) if length > 0 else not corners
        trace.check(
            "corners_within_track",
            in_range,
            f"{len(corners)} corner apexes inside [0, {length:.1f})",
            severity="error",
        )

        if len(samples) > 1 and length > 0:
            raw_length = float(cumulative_distance(positions_array(samples))[-1])
            ratio = length / raw_length if raw_length > 0 else 1.0
            trace.check(
                "centerline_length_plausible",
                0.5 <= ratio <= 1.05,
                f"Centerline is {ratio:.0%} of the raw path length",
                expected="50%-105%",
                actual=round(ratio, 3),
            )
        return trace
