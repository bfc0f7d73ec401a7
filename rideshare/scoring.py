"""
Compatibility scoring.

    score = 100 - pickup share - destination share - time share, floored at 0

Each share is the observed value over its tolerance, times the weight below.
"""

from __future__ import annotations

from pydantic import BaseModel

PICKUP_WEIGHT = 25.0
DESTINATION_WEIGHT = 25.0
TIME_WEIGHT = 50.0
MAX_SCORE = 100.0


class ScoreWeights(BaseModel):
    pickup: float = PICKUP_WEIGHT
    destination: float = DESTINATION_WEIGHT
    time: float = TIME_WEIGHT


DEFAULT_WEIGHTS = ScoreWeights()


def compatibility_score(
    pickup_distance_km: float,
    destination_distance_km: float,
    time_difference_min: float,
    max_distance_km: float,
    time_flexibility_min: float,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> float:
    """Score in [0, 100]; non-increasing in each of the three inputs."""
    if max_distance_km <= 0 or time_flexibility_min <= 0:
        raise ValueError("max_distance_km and time_flexibility_min must be positive")

    score = (
        MAX_SCORE
        - (pickup_distance_km / max_distance_km) * weights.pickup
        - (destination_distance_km / max_distance_km) * weights.destination
        - (time_difference_min / time_flexibility_min) * weights.time
    )
    return min(MAX_SCORE, max(0.0, score))
