"""
Lap Comparison Module

Compares a target lap against a reference lap: distance-aligned time and
speed deltas, sector and corner differences, improvement areas and an
overall analysis. Problems with the inputs come back as a failed
LapComparisonResult instead of an exception.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..analysis.geometry import path_length
from ..analysis.lap_aligner import LapAligner
from ..config.config import Config
from ..session.models import Lap
from ..utils.dataframe_helpers import positions_array, sanitize_for_json
from .base_analyzer import BaseAnalysisReport
from .corner_analysis import CornerAnalyzer, CornerPassage
from .insights import OverallAnalysis, build_overall_analysis, categorize_difference
from .lap_metrics import LapMetricsCalculator
from .track_map import UNKNOWN_TRACK

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    INCONSISTENT_TRACK = "inconsistent_track"
    EMPTY_LAP = "empty_lap"
    LAP_NOT_FOUND = "lap_not_found"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class ComparisonPoint:
    """Target minus reference at one aligned distance step."""
    distance: float
    time_delta: float  # cumulative; positive means the target is behind
    speed_difference: float
    position: Tuple[float, float, float]
    throttle_difference: float
    brake_difference: float
    gear_difference: int

    def to_dict(self) -> dict:
        return {
            "distance": round(self.distance, 1),
            "time_delta": round(self.time_delta, 3),
            "speed_difference": round(self.speed_difference, 2),
            "position": list(self.position),
            "throttle_difference": round(self.throttle_difference, 3),
            "brake_difference": round(self.brake_difference, 3),
            "gear_difference": self.gear_difference,
        }


@dataclass
class ImprovementArea:
    area: str
    description: str
    potential_gain: float  # seconds
    priority: Priority

    def to_dict(self) -> dict:
        return {
            "area": self.area,
            "description": self.description,
            "potential_gain": self.potential_gain,
            "priority": self.priority.value,
        }


@dataclass
class ComparisonResults:
    time_difference: float
    speed_difference: float
    faster_lap: int
    time_difference_pct: float
    category: str
    improvement_areas: List[ImprovementArea] = field(default_factory=list)
    performance_breakdown: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "time_difference": round(self.time_difference, 3),
            "speed_difference": round(self.speed_difference, 2),
            "faster_lap": self.faster_lap,
            "time_difference_pct": round(self.time_difference_pct, 3),
            "category": self.category,
            "improvement_areas": [a.to_dict() for a in self.improvement_areas],
            "performance_breakdown": {k: round(v, 3) for k, v in self.performance_breakdown.items()},
        }


@dataclass
class SectorComparison:
    sector_number: int
    reference_time: float
    target_time: float
    time_difference: float
    speed_difference: float
    suggestion: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "sector_number": self.sector_number,
            "reference_time": round(self.reference_time, 3),
            "target_time": round(self.target_time, 3),
            "time_difference": round(self.time_difference, 3),
            "speed_difference": round(self.speed_difference, 2),
            "suggestion": self.suggestion,
        }


@dataclass
class CornerImprovement:
    phase: str  # "entry", "apex", "exit"
    description: str
    potential_gain: float  # seconds
    priority: Priority

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "description": self.description,
            "potential_gain": self.potential_gain,
            "priority": self.priority.value,
        }


@dataclass
class CornerComparison:
    corner_id: int
    corner_name: str
    reference: CornerPassage
    target: CornerPassage
    entry_speed_difference: float
    apex_speed_difference: float
    exit_speed_difference: float
    apex_position_difference: float
    improvements: List[CornerImprovement] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "corner_id": self.corner_id,
            "corner_name": self.corner_name,
            "reference": self.reference.to_dict(),
            "target": self.target.to_dict(),
            "differences": {
                "entry_speed": round(self.entry_speed_difference, 2),
                "apex_speed": round(self.apex_speed_difference, 2),
                "exit_speed": round(self.exit_speed_difference, 2),
                "apex_position": round(self.apex_position_difference, 2),
            },
            "improvements": [i.to_dict() for i in self.improvements],
        }


@dataclass
class LapComparison(BaseAnalysisReport):
    """Full comparison of a target lap against a reference lap."""
    reference_lap: int
    target_lap: int
    track_name: Optional[str]
    compared_at: str
    results: ComparisonResults
    time_deltas: List[ComparisonPoint] = field(default_factory=list)
    sector_comparisons: List[SectorComparison] = field(default_factory=list)
    corner_comparisons: List[CornerComparison] = field(default_factory=list)
    overall: OverallAnalysis = field(default_factory=OverallAnalysis)

    @property
    def final_time_delta(self) -> float:
        return self.time_deltas[-1].time_delta if self.time_deltas else 0.0

    def to_dict(self) -> dict:
        return sanitize_for_json({
            "reference_lap": self.reference_lap,
            "target_lap": self.target_lap,
            "track_name": self.track_name,
            "compared_at": self.compared_at,
            "results": self.results.to_dict(),
            "time_deltas": [p.to_dict() for p in self.time_deltas],
            "sector_comparisons": [s.to_dict() for s in self.sector_comparisons],
            "corner_comparisons": [c.to_dict() for c in self.corner_comparisons],
            "overall": self.overall.to_dict(),
        })


@dataclass
class LapComparisonResult:
    """Outcome of a comparison request: a LapComparison or a failure reason."""
    is_success: bool
    comparison: Optional[LapComparison] = None
    error_kind: Optional[FailureKind] = None
    error_message: str = ""

    @classmethod
    def success(cls, comparison: LapComparison) -> "LapComparisonResult":
        return cls(is_success=True, comparison=comparison)

    @classmethod
    def failure(cls, kind: FailureKind, message: str) -> "LapComparisonResult":
        logger.warning(f"Lap comparison failed ({kind.value}): {message}")
        return cls(is_success=False, error_kind=kind, error_message=message)

    def to_dict(self) -> dict:
        return {
            "is_success": self.is_success,
            "comparison": self.comparison.to_dict() if self.comparison else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_message": self.error_message,
        }


class LapComparator:
    """
    Compares two laps driven on the same track.

    Corner comparisons need a track map shared by both laps; corners are
    paired by their position in that map. Without a map only the
    distance, sector and overall comparisons are produced.
    """

    DEFAULT_LENGTH_TOLERANCE = Config.TRACK_LENGTH_TOLERANCE

    def __init__(
        self,
        aligner: Optional[LapAligner] = None,
        corner_analyzer: Optional[CornerAnalyzer] = None,
        length_tolerance: float = DEFAULT_LENGTH_TOLERANCE,
        sector_threshold: float = Config.SECTOR_DELTA_THRESHOLD,
        entry_speed_ratio: float = Config.CORNER_ENTRY_SPEED_RATIO
    ):
        self.aligner = aligner or LapAligner()
        self.corner_analyzer = corner_analyzer or CornerAnalyzer()
        self.length_tolerance = length_tolerance
        self.sector_threshold = sector_threshold
        self.entry_speed_ratio = entry_speed_ratio
        self.metrics_calculator = LapMetricsCalculator()

    def compare(self, reference: Lap, target: Lap, track_map=None) -> LapComparisonResult:
        """
        Compare target against reference.

        Args:
            reference: The lap to measure against
            target: The lap being evaluated
            track_map: TrackMap both laps were driven on (enables corner comparison)

        Returns:
            LapComparisonResult; failed for empty laps, zero lap times or
            laps that do not share a track
        """
        problem = self._check_inputs(reference, target, track_map)
        if problem is not None:
            return LapComparisonResult.failure(*problem)

        aligned = self.aligner.align(reference.samples, target.samples)
        comparison = LapComparison(
            reference_lap=reference.lap_number,
            target_lap=target.lap_number,
            track_name=reference.track_name or target.track_name,
            compared_at=datetime.now(timezone.utc).isoformat(),
            results=self._results(reference, target),
            time_deltas=self._time_deltas(aligned),
            sector_comparisons=self._sector_comparisons(reference, target, track_map),
        )
        if track_map is not None:
            comparison.corner_comparisons = self._corner_comparisons(reference, target, track_map)

        comparison.overall = build_overall_analysis(
            comparison.results.time_difference,
            reference.lap_time,
            [(s.sector_number, s.time_difference) for s in comparison.sector_comparisons],
            self.sector_threshold,
        )
        logger.info(
            f"Compared lap {target.lap_number} to lap {reference.lap_number}: "
            f"{comparison.results.time_difference:+.3f}s"
        )
        return LapComparisonResult.success(comparison)

    def compare_by_number(self, session, reference_number: int, target_number: int) -> LapComparisonResult:
        """Look both laps up in a LapSession and compare them."""
        reference = session.get_lap(reference_number)
        if reference is None:
            return LapComparisonResult.failure(FailureKind.LAP_NOT_FOUND, f"Lap {reference_number} not found")
        target = session.get_lap(target_number)
        if target is None:
            return LapComparisonResult.failure(FailureKind.LAP_NOT_FOUND, f"Lap {target_number} not found")
        return self.compare(reference, target, session.track_map)

    def _check_inputs(self, reference: Lap, target: Lap, track_map) -> Optional[Tuple[FailureKind, str]]:
        for lap in (reference, target):
            if lap.sample_count == 0:
                return FailureKind.EMPTY_LAP, f"Lap {lap.lap_number} has no samples"
            if lap.lap_time <= 0:
                return FailureKind.EMPTY_LAP, f"Lap {lap.lap_number} has zero lap time"

        names = {lap.track_name for lap in (reference, target) if lap.track_name}
        if track_map is not None and track_map.track_name not in (None, "", UNKNOWN_TRACK):
            names.add(track_map.track_name)
        if len(names) > 1:
            return FailureKind.INCONSISTENT_TRACK, f"Laps are from different tracks: {sorted(names)}"

        ref_length = path_length(positions_array(reference.samples))
        tgt_length = path_length(positions_array(target.samples))
        longest = max(ref_length, tgt_length)
        if longest > 0 and abs(ref_length - tgt_length) / longest > self.length_tolerance:
            return FailureKind.INCONSISTENT_TRACK, (
                f"Lap lengths differ too much: {ref_length:.1f} vs {tgt_length:.1f}"
            )
        return None

    def _results(self, reference: Lap, target: Lap) -> ComparisonResults:
        time_difference = target.lap_time - reference.lap_time
        # Laps built outside a LapSession may not carry metrics yet
        ref_metrics = reference.metrics or self.metrics_calculator.calculate(reference.samples)
        tgt_metrics = target.metrics or self.metrics_calculator.calculate(target.samples)

        results = ComparisonResults(
            time_difference=time_difference,
            speed_difference=tgt_metrics.avg_speed - ref_metrics.avg_speed,
            faster_lap=target.lap_number if time_difference < 0 else reference.lap_number,
            time_difference_pct=abs(time_difference) / reference.lap_time * 100.0,
            category=categorize_difference(time_difference).value,
        )

        if tgt_metrics.avg_speed < ref_metrics.avg_speed:
            results.improvement_areas.append(ImprovementArea(
                area="speed",
                description="Average speed is lower than on the reference lap",
                potential_gain=0.5,
                priority=Priority.HIGH,
            ))
        if tgt_metrics.braking_time > ref_metrics.braking_time * 1.1:
            results.improvement_areas.append(ImprovementArea(
                area="braking",
                description="Spending more time on the brakes than on the reference lap",
                potential_gain=0.3,
                priority=Priority.MEDIUM,
            ))

        results.performance_breakdown = {
            "braking_time_difference": tgt_metrics.braking_time - ref_metrics.braking_time,
            "accelerating_time_difference": tgt_metrics.accelerating_time - ref_metrics.accelerating_time,
            "coasting_time_difference": tgt_metrics.coasting_time - ref_metrics.coasting_time,
        }
        return results

    def _time_deltas(self, aligned) -> List[ComparisonPoint]:
        ref, tgt = aligned.reference, aligned.target
        # Both traces start at elapsed 0, so this equals the summed per-step differences
        deltas = tgt.elapsed - ref.elapsed
        points = []
        for j in range(len(aligned)):
            points.append(ComparisonPoint(
                distance=float(ref.distance[j]),
                time_delta=float(deltas[j]),
                speed_difference=float(tgt.speed[j] - ref.speed[j]),
                position=tuple(float(v) for v in tgt.positions[j]),
                throttle_difference=float(tgt.throttle[j] - ref.throttle[j]),
                brake_difference=float(tgt.brake[j] - ref.brake[j]),
                gear_difference=int(tgt.gear[j] - ref.gear[j]),
            ))
        return points

    def _lap_sectors(self, lap: Lap, track_map):
        if lap.sectors.sectors:
            return lap.sectors
        return self.metrics_calculator.sector_times(lap.samples, track_map)

    def _sector_comparisons(self, reference: Lap, target: Lap, track_map=None) -> List[SectorComparison]:
        ref_sectors = self._lap_sectors(reference, track_map)
        tgt_sectors = self._lap_sectors(target, track_map)

        comparisons = []
        for ref_sector in ref_sectors.sectors:
            tgt_sector = tgt_sectors.get(ref_sector.number)
            if tgt_sector is None:
                continue
            diff = tgt_sector.time - ref_sector.time
            suggestion = None
            if diff > self.sector_threshold:
                suggestion = (
                    f"Sector {ref_sector.number}: {diff:.3f}s slower. "
                    f"Average speed {tgt_sector.avg_speed - ref_sector.avg_speed:+.1f} vs reference"
                )
            comparisons.append(SectorComparison(
                sector_number=ref_sector.number,
                reference_time=ref_sector.time,
                target_time=tgt_sector.time,
                time_difference=diff,
                speed_difference=tgt_sector.avg_speed - ref_sector.avg_speed,
                suggestion=suggestion,
            ))
        return comparisons

    def _corner_comparisons(self, reference: Lap, target: Lap, track_map) -> List[CornerComparison]:
        ref_corners = self.corner_analyzer.analyze_lap(reference.samples, track_map, reference.lap_number)
        tgt_corners = self.corner_analyzer.analyze_lap(target.samples, track_map, target.lap_number)

        comparisons = []
        for ref_pass, tgt_pass in zip(ref_corners.passages, tgt_corners.passages):
            comparison = CornerComparison(
                corner_id=ref_pass.corner_id,
                corner_name=ref_pass.corner_name,
                reference=ref_pass,
                target=tgt_pass,
                entry_speed_difference=tgt_pass.entry_speed - ref_pass.entry_speed,
                apex_speed_difference=tgt_pass.apex_speed - ref_pass.apex_speed,
                exit_speed_difference=tgt_pass.exit_speed - ref_pass.exit_speed,
                apex_position_difference=float(np.linalg.norm(
                    np.asarray(tgt_pass.apex_position) - np.asarray(ref_pass.apex_position)
                )),
            )
            if tgt_pass.entry_speed < ref_pass.entry_speed * self.entry_speed_ratio:
                comparison.improvements.append(CornerImprovement(
                    phase="entry",
                    description=f"Carry more speed into {ref_pass.corner_name}",
                    potential_gain=0.05,
                    priority=Priority.MEDIUM,
                ))
            comparisons.append(comparison)
        return comparisons


@dataclass
class TrackingLine:
    """A named driven line, resampled at fixed distance steps."""
    name: str
    points: np.ndarray

    def to_dict(self) -> dict:
        return {"name": self.name, "points": sanitize_for_json(self.points)}


def compare_tracking_lines(lap_a: Lap, lap_b: Lap, aligner: Optional[LapAligner] = None) -> List[TrackingLine]:
    """
    Driven lines of two laps plus a combined "ideal" line.

    The ideal line takes, at each aligned step, the position of whichever
    lap was faster there (lap B on ties).
    """
    aligner = aligner or LapAligner()
    aligned = aligner.align(lap_a.samples, lap_b.samples)
    trace_a = aligner.trace(lap_a.samples)
    trace_b = aligner.trace(lap_b.samples)

    a, b = aligned.reference, aligned.target
    pick_a = (a.speed > b.speed).reshape(-1, 1)
    ideal = np.where(pick_a, a.positions, b.positions) if len(aligned) else np.zeros((0, 3))

    return [
        TrackingLine(name=f"Lap {lap_a.lap_number}", points=trace_a.positions),
        TrackingLine(name=f"Lap {lap_b.lap_number}", points=trace_b.positions),
        TrackingLine(name="Ideal", points=ideal),
    ]
