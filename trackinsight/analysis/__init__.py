"""
Core trajectory analysis: geometry, smoothing, lap segmentation and alignment
"""

from .lap_aligner import AlignedLaps, AlignedTrace, LapAligner
from .lap_segmenter import LapRun, LapSegmenter
from .smoothing import TrajectorySmoother

__all__ = ['AlignedLaps', 'AlignedTrace', 'LapAligner', 'LapRun', 'LapSegmenter', 'TrajectorySmoother']
