"""
Service layer for track analysis.

Provides the track map store and the telemetry sample sources.
"""

from .sample_sources import PollingSampleSource, ReplaySampleSource, SampleBuffer, SampleSource
from .track_map_store import TrackMapStore

__all__ = ["PollingSampleSource", "ReplaySampleSource", "SampleBuffer", "SampleSource", "TrackMapStore"]
