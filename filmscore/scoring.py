"""Bayesian-shrunk weighted composite over normalized source scores.

Every weighted source has a prior strength ``m`` (the vote/review count at
which its raw score is trusted as much as the baseline) and a baseline ``C``
(the score assumed before any evidence). With ``v`` votes::

    reliability = v / (v + m)
    adjusted    = reliability * raw + (1 - reliability) * C

The overall score is the weight-normalized mean of ``adjusted`` over the
sources that produced a value, coverage is the weight-normalized mean
reliability, and disagreement is the (unweighted) population standard
deviation of the adjusted values.
"""

import math
from dataclasses import dataclass
from typing import Iterable

from .schemas import OverallScore, SourceScore

DEFAULT_RELIABILITY = 0.7


@dataclass(frozen=True)
class SourcePrior:
    weight: float
    prior_strength: float
    baseline: float


SOURCE_PRIORS: dict[str, SourcePrior] = {
    # Audience aggregates
    "imdb": SourcePrior(weight=0.15, prior_strength=10_000, baseline=64.0),
    "letterboxd": SourcePrior(weight=0.15, prior_strength=5_000, baseline=66.0),
    "rotten_tomatoes_audience": SourcePrior(weight=0.08, prior_strength=500, baseline=68.0),
    "douban": SourcePrior(weight=0.06, prior_strength=5_000, baseline=68.0),
    "allocine_user": SourcePrior(weight=0.06, prior_strength=1_000, baseline=64.0),
    # Critic aggregates
    "metacritic": SourcePrior(weight=0.18, prior_strength=20, baseline=60.0),
    "rotten_tomatoes_top": SourcePrior(weight=0.14, prior_strength=10, baseline=60.0),
    "rotten_tomatoes_all": SourcePrior(weight=0.10, prior_strength=40, baseline=62.0),
    "allocine_press": SourcePrior(weight=0.08, prior_strength=10, baseline=62.0),
}

WEIGHTED_SOURCES: frozenset[str] = frozenset(SOURCE_PRIORS)


def compute_reliability(count: int | float | None, source: str) -> float:
    prior = SOURCE_PRIORS.get(source)
    if count is None or prior is None or count < 0:
        return DEFAULT_RELIABILITY
    return count / (count + prior.prior_strength)


def compute_adjusted_score(raw: float, reliability: float, baseline: float) -> float:
    return reliability * raw + (1 - reliability) * baseline


def scoreable(scores: Iterable[SourceScore]) -> list[SourceScore]:
    """Sources that take part in the composite: weighted and carrying a value."""
    return [
        score
        for score in scores
        if score.source in SOURCE_PRIORS and score.normalized is not None and math.isfinite(score.normalized)
    ]


def compute_overall_score(scores: Iterable[SourceScore]) -> OverallScore | None:
    valid = scoreable(scores)
    if not valid:
        return None

    total_weight = 0.0
    weighted_score = 0.0
    weighted_reliability = 0.0
    adjusted_values: list[float] = []
    for score in valid:
        prior = SOURCE_PRIORS[score.source]
        reliability = compute_reliability(score.count, score.source)
        adjusted = compute_adjusted_score(score.normalized, reliability, prior.baseline)
        adjusted_values.append(adjusted)
        total_weight += prior.weight
        weighted_score += prior.weight * adjusted
        weighted_reliability += prior.weight * reliability

    if total_weight <= 0:
        return None

    mean_adjusted = sum(adjusted_values) / len(adjusted_values)
    variance = sum((value - mean_adjusted) ** 2 for value in adjusted_values) / len(adjusted_values)

    return OverallScore(
        score=weighted_score / total_weight,
        coverage=weighted_reliability / total_weight,
        disagreement=math.sqrt(variance),
    )
