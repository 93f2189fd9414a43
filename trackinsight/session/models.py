"""
Data models for telemetry samples and laps.

Dataclasses for the raw sample stream, closed laps, their validity and the
per-lap metrics computed when a lap is closed.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from ..config.config import Config
from ..utils.dataframe_helpers import safe_float

Vector3 = Tuple[float, float, float]


class Violation(str, Enum):
    TRACK_LIMITS = "track_limits"
    COLLISION = "collision"
    INSUFFICIENT_SAMPLES = "insufficient_samples"
    IMPLAUSIBLE_TIME = "implausible_time"


@dataclass(frozen=True)
class TireReading:
    """One tire at one instant."""
    temperature: float = 0.0
    pressure: float = 0.0
    wear: float = 0.0


@dataclass(frozen=True)
class TelemetrySample:
    """
    One time-stamped telemetry reading.

    Position is (x, y, z) with Y as the vertical axis. Tires are ordered
    FL, FR, RL, RR. Acceleration is in m/s^2 and only used for G-force.
    """
    timestamp: float
    position: Vector3 = (0.0, 0.0, 0.0)
    speed: float = 0.0
    throttle: float = 0.0
    brake: float = 0.0
    steering: float = 0.0
    gear: int = 0
    rpm: float = 0.0
    tires: Tuple[TireReading, ...] = ()
    fuel_level: float = 0.0
    lap_number: int = 0
    track_temperature: float = 0.0
    ambient_temperature: float = 0.0
    acceleration: Vector3 = (0.0, 0.0, 0.0)
    track_name: Optional[str] = None

    @property
    def g_force(self) -> float:
        """Total acceleration magnitude in g."""
        ax, ay, az = self.acceleration
        return math.sqrt(ax * ax + ay * ay + az * az) / Config.GRAVITY


def snapshot_samples(samples: Iterable[TelemetrySample]) -> Tuple[TelemetrySample, ...]:
    """Copy a sample sequence into an immutable tuple for analysis."""
    if isinstance(samples, tuple):
        return samples
    return tuple(samples)


@dataclass
class LapValidation:
    """Validity of a closed lap and the reasons it is invalid."""
    is_valid: bool = True
    violations: List[Violation] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)
    track_limits_percentage: float = 0.0
    max_g_force: float = 0.0

    @property
    def has_track_limits_violation(self) -> bool:
        return Violation.TRACK_LIMITS in self.violations

    @property
    def has_collision(self) -> bool:
        return Violation.COLLISION in self.violations

    @property
    def has_insufficient_samples(self) -> bool:
        return Violation.INSUFFICIENT_SAMPLES in self.violations

    @property
    def has_implausible_time(self) -> bool:
        return Violation.IMPLAUSIBLE_TIME in self.violations

    def add(self, violation: Violation, message: str) -> None:
        self.violations.append(violation)
        self.messages.append(message)
        self.is_valid = False

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "violations": [v.value for v in self.violations],
            "messages": self.messages,
            "track_limits_percentage": round(safe_float(self.track_limits_percentage), 2),
            "max_g_force": round(safe_float(self.max_g_force), 2),
        }


@dataclass
class TirePerformance:
    avg_temperature: float = 0.0
    max_temperature: float = 0.0
    avg_pressure: float = 0.0
    avg_wear: float = 0.0

    def to_dict(self) -> dict:
        return {
            "avg_temperature": round(self.avg_temperature, 1),
            "max_temperature": round(self.max_temperature, 1),
            "avg_pressure": round(self.avg_pressure, 2),
            "avg_wear": round(self.avg_wear, 3),
        }


@dataclass
class PerformanceMetrics:
    """Aggregate driving metrics for one lap."""
    max_speed: float
    avg_speed: float
    max_g_force: float
    max_throttle: float
    avg_throttle: float
    max_brake: float
    avg_brake: float
    gear_changes: int
    braking_time: float
    accelerating_time: float
    coasting_time: float
    fuel_used: float
    tires: TirePerformance = field(default_factory=TirePerformance)

    def to_dict(self) -> dict:
        return {
            "max_speed": round(self.max_speed, 2),
            "avg_speed": round(self.avg_speed, 2),
            "max_g_force": round(self.max_g_force, 2),
            "max_throttle": round(self.max_throttle, 3),
            "avg_throttle": round(self.avg_throttle, 3),
            "max_brake": round(self.max_brake, 3),
            "avg_brake": round(self.avg_brake, 3),
            "gear_changes": self.gear_changes,
            "braking_time": round(self.braking_time, 3),
            "accelerating_time": round(self.accelerating_time, 3),
            "coasting_time": round(self.coasting_time, 3),
            "fuel_used": round(self.fuel_used, 3),
            "tires": self.tires.to_dict(),
        }


@dataclass
class SectorTime:
    """Time and speed figures for one sector of one lap."""
    number: int
    time: float
    start_distance: float
    end_distance: float
    avg_speed: float = 0.0
    max_speed: float = 0.0
    min_speed: float = 0.0
    gear_changes: int = 0

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "time": round(self.time, 3),
            "start_distance": round(self.start_distance, 1),
            "end_distance": round(self.end_distance, 1),
            "avg_speed": round(self.avg_speed, 2),
            "max_speed": round(self.max_speed, 2),
            "min_speed": round(self.min_speed, 2),
            "gear_changes": self.gear_changes,
        }


@dataclass
class SectorBreakdown:
    sectors: List[SectorTime] = field(default_factory=list)

    @property
    def total_time(self) -> float:
        return sum(s.time for s in self.sectors)

    def get(self, number: int) -> Optional[SectorTime]:
        for sector in self.sectors:
            if sector.number == number:
                return sector
        return None

    def to_dict(self) -> dict:
        return {
            "sectors": [s.to_dict() for s in self.sectors],
            "total_time": round(self.total_time, 3),
        }


@dataclass
class LapConditions:
    track_temperature: float = 0.0
    ambient_temperature: float = 0.0

    def to_dict(self) -> dict:
        return {
            "track_temperature": self.track_temperature,
            "ambient_temperature": self.ambient_temperature,
        }


@dataclass
class Lap:
    """
    A closed lap: one contiguous run of samples sharing a lap number.

    Only is_personal_best changes after the lap is closed.
    """
    lap_number: int
    samples: Tuple[TelemetrySample, ...]
    lap_time: float
    validation: LapValidation = field(default_factory=LapValidation)
    is_personal_best: bool = False
    sectors: SectorBreakdown = field(default_factory=SectorBreakdown)
    metrics: Optional[PerformanceMetrics] = None
    conditions: LapConditions = field(default_factory=LapConditions)
    track_name: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    @property
    def is_best_eligible(self) -> bool:
        """Valid laps with a positive time can hold the personal best."""
        return self.validation.is_valid and self.lap_time > 0

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    def to_dict(self) -> dict:
        return {
            "lap_number": self.lap_number,
            "lap_time": round(self.lap_time, 3),
            "sample_count": self.sample_count,
            "is_personal_best": self.is_personal_best,
            "track_name": self.track_name,
            "validation": self.validation.to_dict(),
            "sectors": self.sectors.to_dict(),
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "conditions": self.conditions.to_dict(),
        }


def lap_time_of(samples) -> float:
    """Elapsed time from the first to the last sample (0 for fewer than 2)."""
    if len(samples) < 2:
        return 0.0
    return float(samples[-1].timestamp - samples[0].timestamp)
