"""
Track and lap analysis engine.

Reconstructs a track layout from raw telemetry, splits the stream into
validated laps with metrics, and compares laps against each other.
"""

__version__ = "0.1.0"
