"""
Insight generation for lap comparisons.

Turns time differences (overall and per sector) into strengths,
weaknesses, ranked key insights, training recommendations and a 0-100
score.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

from ..config.config import Config


class InsightCategory(str, Enum):
    STRENGTH = "strength"
    WEAKNESS = "weakness"
    OPPORTUNITY = "opportunity"


class DifferenceCategory(str, Enum):
    VERY_CLOSE = "very_close"
    CLOSE = "close"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"
    LARGE = "large"


@dataclass
class KeyInsight:
    category: InsightCategory
    title: str
    description: str
    impact: float  # 0-1

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "impact": round(self.impact, 3),
        }


@dataclass
class TrainingRecommendations:
    immediate_focus: List[str] = field(default_factory=list)
    medium_term_goals: List[str] = field(default_factory=list)
    long_term_development: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "immediate_focus": self.immediate_focus,
            "medium_term_goals": self.medium_term_goals,
            "long_term_development": self.long_term_development,
        }


@dataclass
class OverallAnalysis:
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    key_insights: List[KeyInsight] = field(default_factory=list)
    recommendations: TrainingRecommendations = field(default_factory=TrainingRecommendations)
    overall_score: float = 100.0

    def to_dict(self) -> dict:
        return {
            "strengths": self.strengths,
            "weaknesses": self.weaknesses,
            "key_insights": [i.to_dict() for i in self.key_insights],
            "recommendations": self.recommendations.to_dict(),
            "overall_score": round(self.overall_score, 1),
        }


LONG_TERM_DEVELOPMENT = [
    "Build consistency across full stints",
    "Refine racing line through every corner",
]

MEDIUM_TERM_GOALS = [
    "Close the overall gap to the reference lap",
    "Match reference braking points",
]


def categorize_difference(time_difference: float) -> DifferenceCategory:
    """Bucket |time difference| in seconds: <0.5, <1, <2, <5, larger."""
    magnitude = abs(time_difference)
    if magnitude < 0.5:
        return DifferenceCategory.VERY_CLOSE
    if magnitude < 1.0:
        return DifferenceCategory.CLOSE
    if magnitude < 2.0:
        return DifferenceCategory.MODERATE
    if magnitude < 5.0:
        return DifferenceCategory.SIGNIFICANT
    return DifferenceCategory.LARGE


def overall_score(time_difference: float, reference_time: float) -> float:
    """
    100 minus ten points per percent of lap time lost or gained, clamped to 0-100.

    A non-positive reference time scores 0.
    """
    if reference_time <= 0:
        return 0.0
    pct = abs(time_difference) / reference_time * 100.0
    return min(100.0, max(0.0, 100.0 - pct * 10.0))


def build_overall_analysis(
    time_difference: float,
    reference_time: float,
    sector_deltas: Sequence,
    sector_threshold: float = Config.SECTOR_DELTA_THRESHOLD
) -> OverallAnalysis:
    """
    Build the overall analysis of a comparison.

    Args:
        time_difference: target lap time minus reference lap time
        reference_time: reference lap time
        sector_deltas: (sector_number, target minus reference time) pairs
        sector_threshold: seconds a sector must differ by to count

    Returns:
        OverallAnalysis with key insights sorted by impact
    """
    analysis = OverallAnalysis(overall_score=overall_score(time_difference, reference_time))

    for number, delta in sector_deltas:
        if delta < -sector_threshold:
            analysis.strengths.append(f"Sector {number}: {abs(delta):.3f}s faster than reference")
        elif delta > sector_threshold:
            analysis.weaknesses.append(f"Sector {number}: {delta:.3f}s slower than reference")

    if abs(time_difference) > 0.5:
        slower = time_difference > 0
        analysis.key_insights.append(KeyInsight(
            category=InsightCategory.WEAKNESS if slower else InsightCategory.STRENGTH,
            title="Lap time gap",
            description=(
                f"{abs(time_difference):.3f}s {'slower' if slower else 'faster'} than the reference lap"
            ),
            impact=min(1.0, abs(time_difference) / 5.0),
        ))

    if sector_deltas:
        worst_number, worst_delta = max(sector_deltas, key=lambda item: item[1])
        if worst_delta > 0.2:
            analysis.key_insights.append(KeyInsight(
                category=InsightCategory.OPPORTUNITY,
                title=f"Sector {worst_number}",
                description=f"Biggest time loss: {worst_delta:.3f}s in sector {worst_number}",
                impact=0.8,
            ))

    analysis.key_insights.sort(key=lambda insight: insight.impact, reverse=True)

    losing = sorted(
        [(n, d) for n, d in sector_deltas if d > sector_threshold],
        key=lambda item: item[1],
        reverse=True,
    )
    analysis.recommendations.immediate_focus = [
        f"Focus on sector {n}: {d:.3f}s to gain" for n, d in losing[:2]
    ]
    if time_difference > 1.0:
        analysis.recommendations.medium_term_goals = list(MEDIUM_TERM_GOALS)
    analysis.recommendations.long_term_development = list(LONG_TERM_DEVELOPMENT)

    return analysis
