"""
Sector planning for a reconstructed track.

Splits the centerline into equal-length sectors and assigns each corner to
the sector that contains its apex.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from ..analysis.geometry import as_points, cumulative_distance, position_at_distance
from ..config.config import Config

logger = logging.getLogger(__name__)

Vector3 = Tuple[float, float, float]


@dataclass(frozen=True)
class Sector:
    """One contiguous span [start_distance, end_distance) of the centerline."""
    number: int
    start_distance: float
    end_distance: float
    start_position: Vector3
    end_position: Vector3
    corner_ids: Tuple[int, ...] = ()

    @property
    def length(self) -> float:
        return self.end_distance - self.start_distance

    def contains(self, distance: float, is_last: bool = False) -> bool:
        if is_last:
            return self.start_distance <= distance <= self.end_distance
        return self.start_distance <= distance < self.end_distance

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "start_distance": round(self.start_distance, 2),
            "end_distance": round(self.end_distance, 2),
            "length": round(self.length, 2),
            "start": list(self.start_position),
            "end": list(self.end_position),
            "corner_ids": list(self.corner_ids),
        }


def sector_index_for(sectors: Sequence[Sector], distance: float) -> int:
    """Index of the sector containing distance, or -1 if outside all of them."""
    for j, sector in enumerate(sectors):
        if sector.contains(distance, is_last=(j == len(sectors) - 1)):
            return j
    return -1


class SectorPlanner:
    """Divides a centerline into a fixed number of equal-length sectors."""

    DEFAULT_SECTOR_COUNT = Config.SECTOR_COUNT

    def __init__(self, sector_count: int = DEFAULT_SECTOR_COUNT):
        if sector_count < 1:
            raise ValueError(f"sector_count must be at least 1, got {sector_count}")
        self.sector_count = sector_count

    def plan(self, centerline, corners: Sequence = ()) -> List[Sector]:
        """
        Build sectors for a centerline.

        The last sector always ends exactly at the track length, so the
        sectors partition [0, length) with no gap or overlap.

        Args:
            centerline: (N, 3) smoothed positions
            corners: Detected corners (anything with id and apex_distance)

        Returns:
            Sectors numbered from 1. Empty when the centerline has no points.
        """
        points = as_points(centerline)
        if len(points) == 0:
            return []

        cum = cumulative_distance(points)
        length = float(cum[-1])
        step = length / self.sector_count

        bounds = []
        for j in range(self.sector_count):
            start = step * j
            end = length if j == self.sector_count - 1 else step * (j + 1)
            bounds.append((start, end))

        assigned = [[] for _ in bounds]
        for corner in corners:
            for j, (start, end) in enumerate(bounds):
                is_last = j == len(bounds) - 1
                if start <= corner.apex_distance < end or (is_last and corner.apex_distance == end):
                    assigned[j].append(corner.id)
                    break
            else:
                logger.warning(f"Corner {corner.id} at {corner.apex_distance:.1f} is outside every sector")

        sectors = []
        for j, (start, end) in enumerate(bounds):
            sectors.append(Sector(
                number=j + 1,
                start_distance=start,
                end_distance=end,
                start_position=tuple(float(v) for v in position_at_distance(points, cum, start)),
                end_position=tuple(float(v) for v in position_at_distance(points, cum, end)),
                corner_ids=tuple(assigned[j]),
            ))
        return sectors

    @staticmethod
    def boundaries(sectors: Sequence[Sector]) -> np.ndarray:
        """Sector edges as distances: [start_1, start_2, ..., end_n]."""
        if not sectors:
            return np.zeros(0)
        return np.array([s.start_distance for s in sectors] + [sectors[-1].end_distance])
