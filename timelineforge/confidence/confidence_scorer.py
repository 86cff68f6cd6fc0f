"""
Confidence Scorer

Score arithmetic shared by every writer of credibility and branch
confidence:
- clamping LLM-produced scores into 0..100
- averaging evidence credibility into a branch score
- applying a signed hypothesis impact to a branch score
"""

from typing import Iterable, Optional

SCORE_MIN = 0.0
SCORE_MAX = 100.0
IMPACT_MIN = -100.0
IMPACT_MAX = 100.0


def clamp_score(value, default: float = 50.0) -> float:
    """
    Coerce an untrusted score into [0, 100].
    Non-numeric input (None, "", "high", NaN) yields `default`.
    """
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(SCORE_MIN, min(SCORE_MAX, number))


def clamp_impact(value) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:
        return 0.0
    return max(IMPACT_MIN, min(IMPACT_MAX, number))


class ConfidenceScorer:
    """
    Branch confidence rules.

    - A branch's score is the arithmetic mean of its evidence credibility
      scores, ignoring rows without a score.
    - A branch with no scored evidence keeps its current score.
    - A hypothesis verdict shifts the score by its impact, clamped to 0..100.
    """

    def mean_credibility(self, scores: Iterable[Optional[float]]) -> Optional[float]:
        """
        Returns the mean of the non-null scores, or None when there are none.
        """
        present = [float(s) for s in scores if s is not None]
        if not present:
            return None
        return clamp_score(sum(present) / len(present))

    def recompute(self, current: float, scores: Iterable[Optional[float]]) -> float:
        mean = self.mean_credibility(scores)
        return current if mean is None else mean

    def apply_impact(self, current: Optional[float], impact) -> float:
        base = clamp_score(current)
        return clamp_score(base + clamp_impact(impact))
