"""
Trajectory smoothing for raw position traces.

Turns the noisy per-sample positions of a lap into a centerline: a
centered moving average followed by an outlier pass that pulls in or drops
points that jump too far from the previous kept point.
"""

import logging

import numpy as np

from ..config.config import Config
from .geometry import as_points

logger = logging.getLogger(__name__)


class TrajectorySmoother:
    """
    Smooths a position trace into a centerline.

    The outlier pass compares each point against the last point it kept:
    - within max_step: kept as is
    - within 3 * max_step: replaced by the midpoint of the two
    - farther: dropped

    So consecutive output points are never more than 1.5 * max_step apart
    and the output is never longer than the input.
    """

    DEFAULT_WINDOW = Config.SMOOTHING_WINDOW
    DEFAULT_MAX_STEP = Config.OUTLIER_MAX_STEP

    def __init__(self, window: int = DEFAULT_WINDOW, max_step: float = DEFAULT_MAX_STEP):
        if window < 1:
            raise ValueError(f"window must be at least 1, got {window}")
        if max_step <= 0:
            raise ValueError(f"max_step must be positive, got {max_step}")
        self.window = window
        self.max_step = max_step

    def smooth(self, positions) -> np.ndarray:
        """
        Smooth a position trace.

        Args:
            positions: Sequence of (x, y, z) or an (N, 3) array

        Returns:
            (M, 3) array with M <= N. Inputs shorter than the window come
            back unchanged.
        """
        points = as_points(positions)
        if len(points) < self.window:
            logger.debug(f"Only {len(points)} points (window {self.window}), skipping smoothing")
            return points.copy()

        averaged = self.moving_average(points)
        cleaned = self.remove_outliers(averaged)
        if len(cleaned) < len(averaged):
            logger.debug(f"Outlier pass dropped {len(averaged) - len(cleaned)} of {len(averaged)} points")
        return cleaned

    def moving_average(self, points: np.ndarray) -> np.ndarray:
        """Centered moving average, the window clamped at both ends."""
        n = len(points)
        half = self.window // 2
        # Prefix sums give each clamped window mean in O(1)
        prefix = np.vstack([np.zeros((1, 3)), np.cumsum(points, axis=0)])
        idx = np.arange(n)
        lo = np.maximum(0, idx - half)
        hi = np.minimum(n - 1, idx + half) + 1
        counts = (hi - lo).reshape(-1, 1)
        return (prefix[hi] - prefix[lo]) / counts

    def remove_outliers(self, points: np.ndarray) -> np.ndarray:
        """Pull in or drop points that jump too far from the last kept point."""
        if len(points) == 0:
            return points.copy()

        kept = [points[0]]
        limit = 3.0 * self.max_step
        for p in points[1:]:
            last = kept[-1]
            step = float(np.linalg.norm(p - last))
            if step <= self.max_step:
                kept.append(p)
            elif step <= limit:
                kept.append((last + p) / 2.0)
        return np.array(kept)
