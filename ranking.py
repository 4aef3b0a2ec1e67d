from typing import List, Sequence

from avalanche import NBITS, EvaluationResult

# A perfect avalanche flips half of the output bits on average.
IDEAL_MEAN = NBITS / 2

# Spread and outright diffusion failures cost more than an off-center mean.
MEAN_WEIGHT = 10.0
STDDEV_WEIGHT = 15.0
ZERO_WEIGHT = 5.0


def score(result: EvaluationResult) -> float:
    """Composite badness of a candidate; lower is better."""
    return (
        MEAN_WEIGHT * abs(result.mean - IDEAL_MEAN)
        + STDDEV_WEIGHT * result.stddev
        + ZERO_WEIGHT * result.zero_change_percentage
    )


def rank(results: Sequence[EvaluationResult]) -> List[EvaluationResult]:
    """
    Returns a new list ordered best first.

    The sort is stable, so results with equal scores keep their input order.
    """
    return sorted(results, key=score)
