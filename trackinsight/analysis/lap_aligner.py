"""
Lap alignment onto a common distance axis.

Two laps are sampled at different instants, so they are compared by
distance instead: each lap's path is resampled every `spacing` units of
travelled distance and each resampled point borrows time, speed and pedal
values from the original sample nearest to it in travelled distance.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ..config.config import Config
from ..utils.dataframe_helpers import positions_array, samples_to_frame
from .geometry import cumulative_distance, resample_by_distance

logger = logging.getLogger(__name__)


@dataclass
class AlignedTrace:
    """One lap resampled at fixed distance steps."""
    distance: np.ndarray
    positions: np.ndarray
    elapsed: np.ndarray  # seconds since the lap's first sample
    speed: np.ndarray
    throttle: np.ndarray
    brake: np.ndarray
    gear: np.ndarray
    source_index: np.ndarray  # original sample behind each point

    def __len__(self) -> int:
        return len(self.distance)

    def truncated(self, count: int) -> "AlignedTrace":
        return AlignedTrace(
            distance=self.distance[:count],
            positions=self.positions[:count],
            elapsed=self.elapsed[:count],
            speed=self.speed[:count],
            throttle=self.throttle[:count],
            brake=self.brake[:count],
            gear=self.gear[:count],
            source_index=self.source_index[:count],
        )


@dataclass
class AlignedLaps:
    reference: AlignedTrace
    target: AlignedTrace
    spacing: float

    def __len__(self) -> int:
        return len(self.reference)


def _nearest_by_distance(cum: np.ndarray, targets: np.ndarray) -> np.ndarray:
    """Index into cum of the value closest to each target."""
    right = np.clip(np.searchsorted(cum, targets, side="left"), 0, len(cum) - 1)
    left = np.clip(right - 1, 0, len(cum) - 1)
    pick_left = np.abs(targets - cum[left]) <= np.abs(cum[right] - targets)
    return np.where(pick_left, left, right)


class LapAligner:
    """Resamples laps by travelled distance so they can be compared point by point."""

    DEFAULT_SPACING = Config.ALIGNMENT_SPACING

    def __init__(self, spacing: float = DEFAULT_SPACING):
        if spacing <= 0:
            raise ValueError(f"spacing must be positive, got {spacing}")
        self.spacing = spacing

    def trace(self, samples: Sequence) -> AlignedTrace:
        """
        Resample one lap.

        Laps with fewer than two samples come back with their samples as
        is (zero or one point).
        """
        df = samples_to_frame(samples)
        positions = positions_array(samples)
        cum = cumulative_distance(positions)

        if len(positions) < 2:
            resampled = positions.copy()
            idx = np.arange(len(positions))
        else:
            resampled = resample_by_distance(positions, self.spacing)
            steps = np.arange(len(resampled)) * self.spacing
            idx = _nearest_by_distance(cum, steps)

        times = df["timestamp"].to_numpy(dtype=float)
        start = times[0] if len(times) else 0.0
        return AlignedTrace(
            distance=np.arange(len(resampled)) * self.spacing,
            positions=resampled,
            elapsed=times[idx] - start if len(idx) else np.zeros(0),
            speed=df["speed"].to_numpy(dtype=float)[idx],
            throttle=df["throttle"].to_numpy(dtype=float)[idx],
            brake=df["brake"].to_numpy(dtype=float)[idx],
            gear=df["gear"].to_numpy(dtype=float)[idx],
            source_index=idx,
        )

    def align(self, reference: Sequence, target: Sequence) -> AlignedLaps:
        """
        Resample both laps and cut them to the same number of points.

        Args:
            reference: Reference lap samples
            target: Target lap samples

        Returns:
            AlignedLaps with equal-length traces
        """
        ref = self.trace(reference)
        tgt = self.trace(target)
        count = min(len(ref), len(tgt))
        if len(ref) != len(tgt):
            logger.debug(f"Truncating aligned traces to {count} points ({len(ref)} vs {len(tgt)})")
        return AlignedLaps(reference=ref.truncated(count), target=tgt.truncated(count), spacing=self.spacing)
