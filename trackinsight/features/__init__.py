"""
Features module for track and lap analysis
Contains the track map, lap metrics and lap comparison built on the analysis core
"""

from .base_analyzer import BaseAnalysisReport
from .corner_analysis import CornerAnalyzer, CornerPassage, LapCornerAnalysis
from .corner_detection import Corner, CornerDetector, CornerDirection, CornerType
from .lap_comparison import (
    FailureKind,
    LapComparator,
    LapComparison,
    LapComparisonResult,
    compare_tracking_lines,
)
from .lap_metrics import LapMetricsCalculator
from .sector_planner import Sector, SectorPlanner
from .track_map import TrackMap, TrackMapBuilder
from .zone_detection import AccelerationZone, BrakingZone, ZoneDetector

__all__ = [
    'BaseAnalysisReport',
    'CornerAnalyzer',
    'CornerPassage',
    'LapCornerAnalysis',
    'Corner',
    'CornerDetector',
    'CornerDirection',
    'CornerType',
    'FailureKind',
    'LapComparator',
    'LapComparison',
    'LapComparisonResult',
    'compare_tracking_lines',
    'LapMetricsCalculator',
    'Sector',
    'SectorPlanner',
    'TrackMap',
    'TrackMapBuilder',
    'AccelerationZone',
    'BrakingZone',
    'ZoneDetector',
]
