"""
Lap Metrics Module

Per-lap driving metrics, distance-based sector times and simple driving
issue detection (late braking, missed acceleration).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..analysis.geometry import cumulative_distance
from ..config.config import Config
from ..session.models import (
    PerformanceMetrics,
    SectorBreakdown,
    SectorTime,
    TirePerformance,
    lap_time_of,
)
from ..utils.dataframe_helpers import positions_array, samples_to_frame

logger = logging.getLogger(__name__)


class IssueType(str, Enum):
    BRAKING_POINT = "braking_point"
    ACCELERATION = "acceleration"


@dataclass
class PerformanceIssue:
    """A single point in a lap where the driver lost time."""
    issue_type: IssueType
    sample_index: int
    position: Tuple[float, float, float]
    severity: float  # 0-1
    description: str
    suggestion: str

    def to_dict(self) -> dict:
        return {
            "type": self.issue_type.value,
            "sample_index": self.sample_index,
            "position": list(self.position),
            "severity": round(self.severity, 3),
            "description": self.description,
            "suggestion": self.suggestion,
        }


def _gear_changes(gears: pd.Series) -> int:
    if len(gears) < 2:
        return 0
    return int((gears.diff().iloc[1:] != 0).sum())


def _tire_performance(samples: Sequence) -> TirePerformance:
    temps = [t.temperature for s in samples for t in s.tires]
    if not temps:
        return TirePerformance()
    pressures = [t.pressure for s in samples for t in s.tires]
    wear = [t.wear for s in samples for t in s.tires]
    return TirePerformance(
        avg_temperature=float(np.mean(temps)),
        max_temperature=float(np.max(temps)),
        avg_pressure=float(np.mean(pressures)),
        avg_wear=float(np.mean(wear)),
    )


class LapMetricsCalculator:
    """
    Computes PerformanceMetrics and sector times for a lap's samples.

    Sector times are distance based: each sample's travelled distance is
    scaled onto the track length and the time at every sector edge is
    interpolated, so sector times always add up to the lap time.
    """

    DEFAULT_PEDAL_THRESHOLD = Config.PEDAL_ACTIVE_THRESHOLD

    def __init__(
        self,
        pedal_threshold: float = DEFAULT_PEDAL_THRESHOLD,
        sector_count: int = Config.SECTOR_COUNT
    ):
        if sector_count < 1:
            raise ValueError(f"sector_count must be at least 1, got {sector_count}")
        self.pedal_threshold = pedal_threshold
        self.sector_count = sector_count

    def calculate(self, samples: Sequence) -> Optional[PerformanceMetrics]:
        """
        Aggregate metrics for one lap.

        Returns:
            PerformanceMetrics, or None for an empty run
        """
        if len(samples) == 0:
            logger.debug("No samples, no lap metrics")
            return None

        df = samples_to_frame(samples)
        n = len(df)
        duration = lap_time_of(samples)

        braking_share = float((df["brake"] > self.pedal_threshold).sum()) / n
        throttle_share = float((df["throttle"] > self.pedal_threshold).sum()) / n
        braking_time = braking_share * duration
        accelerating_time = throttle_share * duration

        first_fuel = float(df["fuel_level"].iloc[0])
        last_fuel = float(df["fuel_level"].iloc[-1])
        fuel_used = first_fuel - last_fuel if first_fuel > 0 and last_fuel > 0 else 0.0

        return PerformanceMetrics(
            max_speed=float(df["speed"].max()),
            avg_speed=float(df["speed"].mean()),
            max_g_force=float(df["g_force"].max()),
            max_throttle=float(df["throttle"].max()),
            avg_throttle=float(df["throttle"].mean()),
            max_brake=float(df["brake"].max()),
            avg_brake=float(df["brake"].mean()),
            gear_changes=_gear_changes(df["gear"]),
            braking_time=braking_time,
            accelerating_time=accelerating_time,
            coasting_time=duration - braking_time - accelerating_time,
            fuel_used=fuel_used,
            tires=_tire_performance(samples),
        )

    def lap_progress(self, samples: Sequence, track_length: Optional[float] = None) -> np.ndarray:
        """
        Distance along the lap for every sample.

        The lap's own travelled distance, rescaled so that the last sample
        lands on track_length when one is given.
        """
        travelled = cumulative_distance(positions_array(samples))
        if track_length is None or len(travelled) == 0 or travelled[-1] <= 0:
            return travelled
        return travelled * (track_length / travelled[-1])

    def sector_times(self, samples: Sequence, track_map=None) -> SectorBreakdown:
        """
        Split a lap into sector times.

        Args:
            samples: The lap's sample run
            track_map: TrackMap whose sector edges define the split. Without
                one, sector_count equal spans of the lap's own travelled
                distance are used.

        Returns:
            SectorBreakdown (empty for an empty run)
        """
        if len(samples) == 0:
            return SectorBreakdown()

        if track_map is not None and track_map.sectors and track_map.length > 0:
            length = track_map.length
            edges = np.array(
                [s.start_distance for s in track_map.sectors] + [track_map.sectors[-1].end_distance]
            )
        else:
            length = None
            edges = None

        progress = self.lap_progress(samples, length)
        total = float(progress[-1])
        if edges is None:
            edges = np.linspace(0.0, total, self.sector_count + 1)

        df = samples_to_frame(samples)
        times = df["timestamp"].to_numpy(dtype=float)

        if len(samples) < 2 or total <= 0:
            # No movement: the whole lap sits in the first sector
            edge_times = np.full(len(edges), times[-1])
            edge_times[0] = times[0]
        else:
            edge_times = np.interp(edges, progress, times)

        sectors = []
        last = len(edges) - 2
        for j in range(len(edges) - 1):
            lo, hi = edges[j], edges[j + 1]
            if j == last:
                in_sector = (progress >= lo) & (progress <= hi)
            else:
                in_sector = (progress >= lo) & (progress < hi)
            part = df[in_sector]

            sector = SectorTime(
                number=j + 1,
                time=float(edge_times[j + 1] - edge_times[j]),
                start_distance=float(lo),
                end_distance=float(hi),
            )
            if not part.empty:
                sector.avg_speed = float(part["speed"].mean())
                sector.max_speed = float(part["speed"].max())
                sector.min_speed = float(part["speed"].min())
                sector.gear_changes = _gear_changes(part["gear"])
            sectors.append(sector)

        return SectorBreakdown(sectors=sectors)

    def detect_issues(self, samples: Sequence) -> List[PerformanceIssue]:
        """
        Find late braking and missed acceleration points.

        Late braking: brake goes from below 0.1 to above 0.8 in one sample
        and speed drops more than 50 between the neighbours.
        Missed acceleration: speed rising with throttle below 0.5 and no brake.

        Returns:
            Issues ordered by severity, highest first
        """
        issues = []
        for i in range(1, len(samples)):
            prev, cur = samples[i - 1], samples[i]

            if i < len(samples) - 1 and prev.brake < 0.1 and cur.brake > 0.8:
                speed_drop = prev.speed - samples[i + 1].speed
                if speed_drop > 50:
                    issues.append(PerformanceIssue(
                        issue_type=IssueType.BRAKING_POINT,
                        sample_index=i,
                        position=tuple(cur.position),
                        severity=min(1.0, speed_drop / 100.0),
                        description="Very late braking",
                        suggestion="Brake earlier for a smoother corner entry",
                    ))

            if cur.speed > prev.speed and cur.throttle < 0.5 and cur.brake < 0.1:
                issues.append(PerformanceIssue(
                    issue_type=IssueType.ACCELERATION,
                    sample_index=i,
                    position=tuple(cur.position),
                    severity=1.0 - cur.throttle,
                    description="Missed acceleration opportunity",
                    suggestion="Get on the throttle earlier to carry more speed",
                ))

        issues.sort(key=lambda issue: issue.severity, reverse=True)
        return issues
