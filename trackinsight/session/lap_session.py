"""
Lap session: turns a sample stream into closed, validated laps.

Owns the lap segmenter, validates and measures each lap as it closes,
keeps the personal-best flag on the fastest eligible lap, and summarizes
the session (lap summaries, consistency, improvement trend).
"""

import logging
import statistics
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from ..analysis.lap_segmenter import LapRun, LapSegmenter
from ..config.config import Config
from ..features.lap_metrics import LapMetricsCalculator
from .models import Lap, LapConditions, TelemetrySample, lap_time_of, snapshot_samples
from .validator import CenterlineBoundary, LapValidator

logger = logging.getLogger(__name__)


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


@dataclass
class LapSummary:
    lap_number: int
    lap_time: float
    is_valid: bool
    is_personal_best: bool
    max_speed: float
    avg_speed: float
    sample_count: int

    def to_dict(self) -> dict:
        return {
            "lap_number": self.lap_number,
            "lap_time": round(self.lap_time, 3),
            "is_valid": self.is_valid,
            "is_personal_best": self.is_personal_best,
            "max_speed": round(self.max_speed, 2),
            "avg_speed": round(self.avg_speed, 2),
            "sample_count": self.sample_count,
        }


@dataclass
class SessionTrends:
    """Lap-time statistics over the eligible laps of a session."""
    lap_count: int
    fastest_lap: LapSummary
    slowest_lap: LapSummary
    average_lap_time: float
    lap_time_std_dev: float
    consistency_score: float  # 0-100
    improvement_trend: TrendDirection

    def to_dict(self) -> dict:
        return {
            "lap_count": self.lap_count,
            "fastest_lap": self.fastest_lap.to_dict(),
            "slowest_lap": self.slowest_lap.to_dict(),
            "average_lap_time": round(self.average_lap_time, 3),
            "lap_time_std_dev": round(self.lap_time_std_dev, 3),
            "consistency_score": round(self.consistency_score, 1),
            "improvement_trend": self.improvement_trend.value,
        }


def consistency_score(lap_times: List[float]) -> float:
    """100 minus the largest deviation from the mean, as a percent of the mean."""
    if len(lap_times) < 2:
        return 100.0
    average = statistics.mean(lap_times)
    if average <= 0:
        return 0.0
    max_deviation = max(abs(t - average) for t in lap_times)
    return max(0.0, 100.0 - max_deviation / average * 100.0)


def improvement_trend(
    lap_times: List[float],
    window: int = Config.TREND_WINDOW,
    threshold: float = Config.TREND_THRESHOLD
) -> TrendDirection:
    """
    Compare the average of the first and last `window` lap times.

    Fewer than three laps is always stable.
    """
    if len(lap_times) < 3:
        return TrendDirection.STABLE

    early = statistics.mean(lap_times[:window])
    recent = statistics.mean(lap_times[-window:])
    if recent < early - threshold:
        return TrendDirection.IMPROVING
    if recent > early + threshold:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


class LapSession:
    """
    Collects laps for one driving session.

    Samples can be fed one at a time (add_sample / finish) or as a whole
    stream (ingest). Every closed lap is validated and measured, then the
    personal best is recomputed over all laps closed so far.
    """

    def __init__(
        self,
        track_name: Optional[str] = None,
        validator: Optional[LapValidator] = None,
        metrics_calculator: Optional[LapMetricsCalculator] = None,
        track_map=None
    ):
        self.track_name = track_name
        self.validator = validator or LapValidator()
        self.metrics_calculator = metrics_calculator or LapMetricsCalculator()
        self.track_map = None
        self._laps: List[Lap] = []
        self._segmenter = LapSegmenter()
        if track_map is not None:
            self.attach_track_map(track_map)

    @property
    def laps(self) -> Tuple[Lap, ...]:
        return tuple(self._laps)

    def attach_track_map(self, track_map, half_width: float = Config.TRACK_BOUNDARY_HALF_WIDTH) -> None:
        """
        Use a track map for laps closed from now on.

        Sector times follow the map's sectors and track limits are checked
        against its centerline. The validator passed in is left untouched;
        the session switches to a copy with the new boundary.
        """
        self.track_map = track_map
        if not track_map.is_empty:
            self.validator = self.validator.with_boundary(
                CenterlineBoundary.from_track_map(track_map, half_width)
            )
        if self.track_name is None:
            self.track_name = track_map.track_name
        logger.info(f"Session now validating against track map '{track_map.track_name}'")

    def add_sample(self, sample: TelemetrySample) -> Optional[Lap]:
        """Feed one sample; returns the lap it closed, if any."""
        run = self._segmenter.add_sample(sample)
        return self.close_lap(run) if run is not None else None

    def finish(self) -> Optional[Lap]:
        """Close the lap in progress at end of stream."""
        run = self._segmenter.finish()
        return self.close_lap(run) if run is not None else None

    def ingest(self, samples) -> List[Lap]:
        """Feed a whole stream (snapshotted first) and close the final lap."""
        closed = []
        for sample in snapshot_samples(samples):
            lap = self.add_sample(sample)
            if lap is not None:
                closed.append(lap)
        last = self.finish()
        if last is not None:
            closed.append(last)
        return closed

    def close_lap(self, run: LapRun) -> Lap:
        """Validate and measure one lap run, then recompute the personal best."""
        samples = run.samples
        first = samples[0] if samples else None
        lap = Lap(
            lap_number=run.lap_number,
            samples=samples,
            lap_time=lap_time_of(samples),
            validation=self.validator.validate(samples),
            sectors=self.metrics_calculator.sector_times(samples, self.track_map),
            metrics=self.metrics_calculator.calculate(samples),
            conditions=LapConditions(
                track_temperature=first.track_temperature if first else 0.0,
                ambient_temperature=first.ambient_temperature if first else 0.0,
            ),
            track_name=(first.track_name if first and first.track_name else self.track_name),
        )
        self._laps.append(lap)
        self._update_personal_best()

        status = "valid" if lap.is_valid else "invalid"
        logger.info(f"Lap {lap.lap_number} closed: {lap.lap_time:.3f}s, {lap.sample_count} samples, {status}")
        return lap

    def _update_personal_best(self) -> None:
        best = None
        for lap in self._laps:
            lap.is_personal_best = False
            if lap.is_best_eligible and (best is None or lap.lap_time < best.lap_time):
                best = lap
        if best is not None:
            best.is_personal_best = True

    @property
    def personal_best(self) -> Optional[Lap]:
        for lap in self._laps:
            if lap.is_personal_best:
                return lap
        return None

    def get_lap(self, lap_number: int) -> Optional[Lap]:
        """First closed lap with this number, or None."""
        for lap in self._laps:
            if lap.lap_number == lap_number:
                return lap
        return None

    def lap_summaries(self) -> List[LapSummary]:
        summaries = []
        for lap in self._laps:
            summaries.append(LapSummary(
                lap_number=lap.lap_number,
                lap_time=lap.lap_time,
                is_valid=lap.is_valid,
                is_personal_best=lap.is_personal_best,
                max_speed=lap.metrics.max_speed if lap.metrics else 0.0,
                avg_speed=lap.metrics.avg_speed if lap.metrics else 0.0,
                sample_count=lap.sample_count,
            ))
        return summaries

    def trends(self) -> Optional[SessionTrends]:
        """
        Lap-time trends over eligible laps, in closing order.

        Returns:
            SessionTrends, or None when no lap is eligible
        """
        eligible = [s for s in self.lap_summaries() if s.is_valid and s.lap_time > 0]
        if not eligible:
            logger.debug("No eligible laps for trend analysis")
            return None

        times = [s.lap_time for s in eligible]
        return SessionTrends(
            lap_count=len(eligible),
            fastest_lap=min(eligible, key=lambda s: s.lap_time),
            slowest_lap=max(eligible, key=lambda s: s.lap_time),
            average_lap_time=statistics.mean(times),
            lap_time_std_dev=statistics.pstdev(times),
            consistency_score=consistency_score(times),
            improvement_trend=improvement_trend(times),
        )
