"""
Qualification scoring strategies.

Two interchangeable strategies sit behind the ``Scorer`` protocol; a
deployment picks exactly one:

- ``WeightedConfidenceScorer``: fractional weights scaled by detection
  confidence, normalised to 0-100
- ``BooleanWeightScorer``: fixed point values summed for every signal that
  is present, capped at 100

Both are pure functions of the criteria map: the same criteria always give
the same score, in O(number of criteria).
"""

import logging
from enum import Enum
from typing import Dict, Mapping, Optional, Protocol, runtime_checkable

from .models import CriterionStatus, QualificationCriterion

logger = logging.getLogger(__name__)

CriteriaMap = Mapping[str, QualificationCriterion]


class LeadPriority(Enum):
    """Lead priority levels."""
    HOT = "hot"                    # Score >= hot threshold - Immediate follow-up
    WARM = "warm"                  # Score >= warm threshold - Keep qualifying
    COLD = "cold"                  # Score >= 30 - Nurture campaign
    UNQUALIFIED = "unqualified"    # Too little signal to act on

    @property
    def label(self) -> str:
        return self.value.title()


COLD_FLOOR = 30


def priority_for(score: int, hot: int = 85, warm: int = 60) -> LeadPriority:
    """Bucket a score into a lead priority."""
    if score >= hot:
        return LeadPriority.HOT
    if score >= warm:
        return LeadPriority.WARM
    if score >= COLD_FLOOR:
        return LeadPriority.COLD
    return LeadPriority.UNQUALIFIED


@runtime_checkable
class Scorer(Protocol):
    """Maps a criteria map to an integer score in [0, 100]."""

    name: str

    def score(self, criteria: CriteriaMap) -> int:
        ...


class WeightedConfidenceScorer:
    """
    Strategy A.

    score = round(100 * sum(weight * confidence for qualified criteria)
                      / sum(weight for all criteria))

    Unknown and unqualified criteria contribute nothing to the numerator
    but still count toward the total weight.
    """

    name = "weighted_confidence"

    def score(self, criteria: CriteriaMap) -> int:
        total_weight = 0.0
        qualified_weight = 0.0

        for criterion in criteria.values():
            total_weight += criterion.weight
            if criterion.status == CriterionStatus.QUALIFIED:
                qualified_weight += criterion.weight * criterion.confidence

        if total_weight <= 0:
            return 0
        return max(0, min(100, round(qualified_weight / total_weight * 100)))


class BooleanWeightScorer:
    """
    Strategy B.

    score = min(100, sum(points for every signal that is present))

    A criterion counts as present when its status is ``qualified``.
    Criteria without a configured point value fall back to their fractional
    weight expressed in points.
    """

    name = "boolean_weight"

    DEFAULT_POINTS = {
        "budget": 20,
        "timeline": 15,
        "painPoint": 15,
        "contactInfo": 10,
        "demoInterest": 15,
    }

    def __init__(self, points: Optional[Mapping[str, int]] = None):
        self.points: Dict[str, int] = dict(self.DEFAULT_POINTS)
        if points:
            self.points.update(points)

    def _points_for(self, criterion: QualificationCriterion) -> int:
        if criterion.id in self.points:
            return self.points[criterion.id]
        return round(criterion.weight * 100)

    def score(self, criteria: CriteriaMap) -> int:
        total = sum(
            self._points_for(c)
            for c in criteria.values()
            if c.status == CriterionStatus.QUALIFIED
        )
        return max(0, min(100, total))

    def score_signals(self, signals: Mapping[str, bool]) -> int:
        """Score a plain ``{signal: present}`` map."""
        total = sum(self.points.get(signal, 0) for signal, present in signals.items() if present)
        return max(0, min(100, total))


SCORERS = {
    WeightedConfidenceScorer.name: WeightedConfidenceScorer,
    BooleanWeightScorer.name: BooleanWeightScorer,
}


def get_scorer(name: str) -> Scorer:
    """Instantiate a scoring strategy by name."""
    try:
        return SCORERS[name]()
    except KeyError:
        logger.warning(f"Unknown scoring strategy {name!r}, using {WeightedConfidenceScorer.name}")
        return WeightedConfidenceScorer()
