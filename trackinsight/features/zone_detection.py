"""
Braking and acceleration zone detection.

Scans the raw (unsmoothed) sample stream for runs where the driver is
braking, or on the throttle with the car gaining speed.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Type

import numpy as np
import pandas as pd

from ..analysis.geometry import PointIndex, as_points, cumulative_distance
from ..config.config import Config
from ..utils.dataframe_helpers import samples_to_frame

logger = logging.getLogger(__name__)

Vector3 = Tuple[float, float, float]


@dataclass(frozen=True)
class Zone:
    """A closed run of samples [start_index, end_index] in the source stream."""
    id: int
    start_index: int
    end_index: int
    start_position: Vector3
    end_position: Vector3
    peak_value: float
    duration: float
    speed_change: float
    start_distance: float = 0.0
    end_distance: float = 0.0

    kind = "zone"

    @property
    def sample_count(self) -> int:
        return self.end_index - self.start_index + 1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "start_index": self.start_index,
            "end_index": self.end_index,
            "start": list(self.start_position),
            "end": list(self.end_position),
            "start_distance": round(self.start_distance, 2),
            "end_distance": round(self.end_distance, 2),
            "peak_value": round(self.peak_value, 3),
            "duration": round(self.duration, 3),
            "speed_change": round(self.speed_change, 2),
        }


@dataclass(frozen=True)
class BrakingZone(Zone):
    """peak_value is the max brake input, speed_change the speed lost."""
    kind = "braking"


@dataclass(frozen=True)
class AccelerationZone(Zone):
    """peak_value is the max throttle input, speed_change the speed gained."""
    kind = "acceleration"


def _runs(mask: np.ndarray, min_span: int) -> List[Tuple[int, int]]:
    """
    (start, end) index pairs of True runs closed by a False.

    A run still open when the mask ends is discarded. Runs must satisfy
    end + 1 - start > min_span.
    """
    runs = []
    in_run = False
    start = 0
    for i, active in enumerate(mask):
        if active and not in_run:
            in_run = True
            start = i
        elif not active and in_run:
            in_run = False
            if i - start > min_span:
                runs.append((start, i - 1))
    return runs


class ZoneDetector:
    """
    Detects braking and acceleration zones.

    Braking: brake > brake_threshold.
    Acceleration: throttle > throttle_threshold and speed above the previous sample.

    A zone must span more than min_span samples and be closed before the
    stream ends.
    """

    DEFAULT_BRAKE_THRESHOLD = Config.BRAKE_ZONE_THRESHOLD
    DEFAULT_THROTTLE_THRESHOLD = Config.THROTTLE_ZONE_THRESHOLD
    DEFAULT_MIN_SPAN = Config.ZONE_MIN_SPAN

    def __init__(
        self,
        brake_threshold: float = DEFAULT_BRAKE_THRESHOLD,
        throttle_threshold: float = DEFAULT_THROTTLE_THRESHOLD,
        min_span: int = DEFAULT_MIN_SPAN
    ):
        self.brake_threshold = brake_threshold
        self.throttle_threshold = throttle_threshold
        self.min_span = min_span

    def detect_braking(self, samples: Sequence, centerline=None) -> List[BrakingZone]:
        df = samples_to_frame(samples)
        if df.empty:
            return []
        mask = (df["brake"] > self.brake_threshold).to_numpy()
        return self._build(BrakingZone, df, mask, "brake", centerline)

    def detect_acceleration(self, samples: Sequence, centerline=None) -> List[AccelerationZone]:
        df = samples_to_frame(samples)
        if df.empty:
            return []
        # diff() is NaN on the first row, so it never counts as gaining
        gaining = df["speed"].diff() > 0
        mask = ((df["throttle"] > self.throttle_threshold) & gaining).to_numpy()
        return self._build(AccelerationZone, df, mask, "throttle", centerline)

    def _build(
        self,
        zone_cls: Type[Zone],
        df: pd.DataFrame,
        mask: np.ndarray,
        pedal: str,
        centerline
    ) -> List[Zone]:
        points = as_points(centerline) if centerline is not None else None
        cum = cumulative_distance(points) if points is not None else None
        index = PointIndex(points) if points is not None and len(points) > 0 else None

        zones = []
        for start, end in _runs(mask, self.min_span):
            first = df.iloc[start]
            last = df.iloc[end]
            start_pos = (float(first["x"]), float(first["y"]), float(first["z"]))
            end_pos = (float(last["x"]), float(last["y"]), float(last["z"]))

            if zone_cls is BrakingZone:
                speed_change = float(first["speed"] - last["speed"])
            else:
                speed_change = float(last["speed"] - first["speed"])

            start_distance = end_distance = 0.0
            if index is not None:
                _, idx = index.query([start_pos, end_pos])
                start_distance = float(cum[idx[0]])
                end_distance = float(cum[idx[1]])

            zones.append(zone_cls(
                id=len(zones) + 1,
                start_index=start,
                end_index=end,
                start_position=start_pos,
                end_position=end_pos,
                peak_value=float(df[pedal].iloc[start:end + 1].max()),
                duration=float(last["timestamp"] - first["timestamp"]),
                speed_change=speed_change,
                start_distance=start_distance,
                end_distance=end_distance,
            ))

        logger.debug(f"Found {len(zones)} {zone_cls.kind} zones")
        return zones
