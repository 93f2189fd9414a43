"""
Shared DataFrame utilities for telemetry analysis.

- samples_to_frame(): Column view of a sample run, one row per sample
- positions_array(): (N, 3) position array from a sample run
- sanitize_for_json(): NaN/Inf/numpy type cleanup for JSON serialization
- safe_float(): Single-value NaN/Inf guard
- SAMPLE_COLUMNS: Column names produced by samples_to_frame()
"""

import math
from typing import List, Sequence

import numpy as np
import pandas as pd


# --- Constants ---

SAMPLE_COLUMNS: List[str] = [
    "timestamp", "x", "y", "z", "speed", "throttle", "brake", "steering",
    "gear", "rpm", "fuel_level", "lap_number", "g_force",
]
"""Columns of the frame built by samples_to_frame()."""


# --- Frame construction ---

def samples_to_frame(samples: Sequence) -> pd.DataFrame:
    """
    Build a DataFrame from a run of telemetry samples.

    One row per sample, in input order. The index is a plain RangeIndex so
    that row positions line up with sample indices; timestamps are a column.

    Args:
        samples: Sequence of TelemetrySample

    Returns:
        DataFrame with SAMPLE_COLUMNS (empty frame with those columns if no samples)
    """
    if len(samples) == 0:
        return pd.DataFrame(columns=SAMPLE_COLUMNS)

    rows = []
    for s in samples:
        rows.append({
            "timestamp": s.timestamp,
            "x": s.position[0],
            "y": s.position[1],
            "z": s.position[2],
            "speed": s.speed,
            "throttle": s.throttle,
            "brake": s.brake,
            "steering": s.steering,
            "gear": s.gear,
            "rpm": s.rpm,
            "fuel_level": s.fuel_level,
            "lap_number": s.lap_number,
            "g_force": s.g_force,
        })
    return pd.DataFrame(rows, columns=SAMPLE_COLUMNS)


def positions_array(samples: Sequence) -> np.ndarray:
    """
    Stack sample positions into an (N, 3) float array.

    Returns an empty (0, 3) array for an empty run.
    """
    if len(samples) == 0:
        return np.zeros((0, 3))
    return np.array([s.position for s in samples], dtype=float)


# --- JSON Sanitization ---

def sanitize_for_json(obj):
    """
    Recursively replace NaN/Inf with None and numpy types with native Python types.

    Handles dicts, lists, tuples, numpy arrays, numpy scalars, and Python floats.
    """
    if isinstance(obj, dict):
        return {k: sanitize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [sanitize_for_json(v) for v in obj]
    elif isinstance(obj, float) and (math.isnan(obj) or math.isinf(obj)):
        return None
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        v = float(obj)
        return None if math.isnan(v) or math.isinf(v) else v
    elif isinstance(obj, np.ndarray):
        return sanitize_for_json(obj.tolist())
    return obj


def safe_float(value: float, default: float = 0.0) -> float:
    """
    Convert a float to a JSON-safe value, replacing NaN/inf with default.

    Args:
        value: Float value to check
        default: Value to return if NaN/Inf

    Returns:
        The value if valid, otherwise default
    """
    if np.isnan(value) or np.isinf(value):
        return default
    return float(value)
