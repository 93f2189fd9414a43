"""
Geometry helpers for 3-D track positions.

All positions are (x, y, z) with Y vertical. Point sequences are numpy
arrays of shape (N, 3). Turn direction is measured in the horizontal
plane: positive curvature is a right-hand turn, negative a left-hand turn.
"""

import math
from typing import Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

UP = np.array([0.0, 1.0, 0.0])

# Segments and vectors shorter than this are treated as degenerate
EPSILON = 1e-9


def as_points(points: Sequence) -> np.ndarray:
    """Coerce a sequence of (x, y, z) into a float (N, 3) array."""
    arr = np.asarray(points, dtype=float)
    if arr.size == 0:
        return np.zeros((0, 3))
    return arr.reshape(-1, 3)


def distance(a, b) -> float:
    """Euclidean distance between two points."""
    return float(np.linalg.norm(np.asarray(b, dtype=float) - np.asarray(a, dtype=float)))


def cumulative_distance(points: np.ndarray) -> np.ndarray:
    """
    Cumulative path length at each point.

    Returns an array the same length as points, starting at 0.0.
    """
    points = as_points(points)
    if len(points) == 0:
        return np.zeros(0)
    steps = np.linalg.norm(np.diff(points, axis=0), axis=1)
    return np.concatenate(([0.0], np.cumsum(steps)))


def path_length(points: np.ndarray) -> float:
    """Total length of the polyline through points."""
    cum = cumulative_distance(points)
    return float(cum[-1]) if len(cum) else 0.0


def signed_curvature(p_prev, p, p_next) -> float:
    """
    Signed turning angle at p, in radians.

    The angle between the unit vectors (p - p_prev) and (p_next - p), signed
    by the vertical component of their cross product. Degenerate (zero
    length) vectors give 0.0.

    Args:
        p_prev: Point before p
        p: Candidate point
        p_next: Point after p

    Returns:
        Angle in [-pi, pi]; positive turns right, negative turns left
    """
    v1 = np.asarray(p, dtype=float) - np.asarray(p_prev, dtype=float)
    v2 = np.asarray(p_next, dtype=float) - np.asarray(p, dtype=float)
    n1 = np.linalg.norm(v1)
    n2 = np.linalg.norm(v2)
    if n1 < EPSILON or n2 < EPSILON:
        return 0.0

    v1 = v1 / n1
    v2 = v2 / n2
    cross = np.cross(v1, v2)
    angle = math.atan2(float(np.linalg.norm(cross)), float(np.dot(v1, v2)))
    return angle * float(np.sign(cross[1]))


def lerp(a, b, t: float) -> np.ndarray:
    """Linear interpolation between a and b."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    return a + (b - a) * t


def position_at_distance(points: np.ndarray, cum: np.ndarray, target: float) -> np.ndarray:
    """
    Point at a given travelled distance along a polyline.

    Finds the segment whose cumulative span contains the target and
    interpolates inside it. Targets before the start clamp to the first
    point, targets beyond the end clamp to the last.

    Args:
        points: (N, 3) polyline
        cum: Cumulative distance for points
        target: Distance along the polyline

    Returns:
        (3,) position
    """
    points = as_points(points)
    if len(points) == 0:
        return np.zeros(3)
    if target <= 0.0 or len(points) == 1:
        return points[0].copy()
    if target >= cum[-1]:
        return points[-1].copy()

    i = int(np.searchsorted(cum, target, side='right'))
    seg = cum[i] - cum[i - 1]
    if seg < EPSILON:
        return points[i].copy()
    return lerp(points[i - 1], points[i], (target - cum[i - 1]) / seg)


def resample_by_distance(points: np.ndarray, spacing: float) -> np.ndarray:
    """
    Resample a polyline at fixed travelled-distance intervals.

    Output points sit at distances 0, spacing, 2*spacing, ... up to the
    path length (inclusive when it lands exactly).

    Raises:
        ValueError: If spacing is not positive
    """
    if spacing <= 0:
        raise ValueError(f"spacing must be positive, got {spacing}")
    points = as_points(points)
    if len(points) < 2:
        return points.copy()

    cum = cumulative_distance(points)
    targets = np.arange(0.0, cum[-1] + EPSILON, spacing)
    out = np.empty((len(targets), 3))
    for axis in range(3):
        out[:, axis] = np.interp(targets, cum, points[:, axis])
    return out


class PointIndex:
    """
    Nearest-point lookups over a fixed point sequence.

    Backed by a KD-tree built once, so querying N positions against M points
    needs O(N) memory rather than an N x M distance matrix. With
    horizontal=True distances are measured in the x-z plane only.
    """

    def __init__(self, points, horizontal: bool = False):
        pts = as_points(points)
        self.horizontal = horizontal
        self._size = len(pts)
        self._tree = cKDTree(self._project(pts)) if self._size else None

    def __len__(self) -> int:
        return self._size

    def _project(self, points: np.ndarray) -> np.ndarray:
        return points[:, [0, 2]] if self.horizontal else points

    def query(self, positions) -> Tuple[np.ndarray, np.ndarray]:
        """(distances, indices) of the nearest point for each (N, 3) position."""
        positions = as_points(positions)
        if self._tree is None or len(positions) == 0:
            return np.zeros(len(positions)), np.full(len(positions), -1, dtype=int)
        dist, idx = self._tree.query(self._project(positions))
        return np.asarray(dist, dtype=float), np.asarray(idx, dtype=int)

    def nearest(self, target) -> int:
        """Index of the point closest to target (-1 for no points)."""
        return int(self.query([target])[1][0])


def nearest_index(points: np.ndarray, target) -> int:
    """Index of the point closest to target (-1 for no points)."""
    return PointIndex(points).nearest(target)


def lateral_unit(tangent) -> np.ndarray:
    """
    Horizontal unit vector pointing to the right of travel.

    Computed as up x tangent; a vertical or zero tangent gives a zero vector.
    """
    right = np.cross(UP, np.asarray(tangent, dtype=float))
    norm = np.linalg.norm(right)
    if norm < EPSILON:
        return np.zeros(3)
    return right / norm


def tangents(points: np.ndarray) -> np.ndarray:
    """Central-difference direction at each point (one-sided at the ends)."""
    points = as_points(points)
    n = len(points)
    if n < 2:
        return np.zeros((n, 3))
    out = np.empty_like(points)
    out[0] = points[1] - points[0]
    out[-1] = points[-1] - points[-2]
    if n > 2:
        out[1:-1] = points[2:] - points[:-2]
    return out


def frozen(arr: np.ndarray) -> np.ndarray:
    """Return a read-only copy of arr."""
    out = np.array(arr, dtype=float, copy=True)
    out.setflags(write=False)
    return out
