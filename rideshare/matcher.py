"""
RideMatcher: bounding-box query -> exact distances -> hard radius cutoff ->
compatibility score -> best candidate.

The matcher only reads. Query and scoring failures come back as a MatchError
value instead of an exception so the caller decides what a failed search means.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from .errors import MatcherError
from .geo import bounding_box, haversine_km, travel_minutes
from .schemas import (
    MatchError,
    MatchFound,
    MatchNotFound,
    MatchOutcome,
    MatchRequest,
    MatchResult,
    MatchedActivity,
    Position,
    VehicleRead,
)
from .scoring import DEFAULT_WEIGHTS, ScoreWeights, compatibility_score
from .store import ActivityStore, Candidate, CandidateQuery
from .timewindow import minutes_between, time_window, to_utc

logger = logging.getLogger(__name__)


class MatchOptions(BaseModel):
    max_distance_km: float = Field(default=5.0, gt=0)
    time_flexibility_min: float = Field(default=30.0, gt=0)
    candidate_limit: int = Field(default=50, gt=0)
    weights: ScoreWeights = DEFAULT_WEIGHTS


class RideMatcher:
    def __init__(self, store: ActivityStore, options: Optional[MatchOptions] = None):
        self.store = store
        self.options = options or MatchOptions()

    def find_match(self, request: MatchRequest, options: Optional[MatchOptions] = None) -> MatchOutcome:
        """Best opposite-role candidate for the request, as a tagged outcome."""
        if not _has_inputs(request):
            logger.warning("match skipped for user %s: pickup, destination or departure time missing",
                           request.user_id)
            return MatchNotFound(reason="pickup, destination or departure time missing")

        try:
            ranked = self.rank(request, options)
        except MatcherError as exc:
            logger.exception("ride matching failed for user %s", request.user_id)
            return MatchError(cause=exc)

        if not ranked:
            return MatchNotFound()
        return MatchFound(result=ranked[0])

    def rank(self, request: MatchRequest, options: Optional[MatchOptions] = None) -> List[MatchResult]:
        """
        Every admissible candidate, best first.

        Candidates beyond max_distance_km at either end are dropped even when the
        bounding box let them through. Ties keep query order (activity id).
        """
        if not _has_inputs(request):
            return []
        options = options or self.options

        try:
            candidates = self.store.find_candidates(self._query(request, options))
            scored = [self._score(request, c, options) for c in candidates]
        except (SQLAlchemyError, ArithmeticError, ValueError) as exc:
            raise MatcherError(f"candidate search failed: {exc}") from exc

        admitted = [
            r for r in scored
            if r.pickup_distance <= options.max_distance_km
            and r.destination_distance <= options.max_distance_km
        ]
        logger.debug("match for user %s: %d candidates, %d within %.1f km",
                     request.user_id, len(scored), len(admitted), options.max_distance_km)

        # list.sort is stable
        admitted.sort(key=lambda r: r.compatibility_score, reverse=True)
        return admitted

    def _query(self, request: MatchRequest, options: MatchOptions) -> CandidateQuery:
        radius = options.max_distance_km
        return CandidateQuery(
            role=request.role.opposite,
            window=time_window(request.departure_time, options.time_flexibility_min),
            pickup_box=bounding_box(request.pickup.lat, request.pickup.lng, radius),
            destination_box=bounding_box(request.destination.lat, request.destination.lng, radius),
            exclude_user_id=request.user_id,
            vehicle_type=request.vehicle_type_preference,
            seats=request.seats,
            limit=options.candidate_limit,
        )

    def _score(self, request: MatchRequest, candidate: Candidate, options: MatchOptions) -> MatchResult:
        activity = candidate.activity
        pickup_distance = haversine_km(request.pickup.lat, request.pickup.lng,
                                       activity.pickup_lat, activity.pickup_lng)
        destination_distance = haversine_km(request.destination.lat, request.destination.lng,
                                            activity.destination_lat, activity.destination_lng)
        time_difference = minutes_between(request.departure_time, activity.departure_time)
        score = compatibility_score(
            pickup_distance,
            destination_distance,
            time_difference,
            options.max_distance_km,
            options.time_flexibility_min,
            options.weights,
        )
        return MatchResult(
            matched_activity=_matched_activity(activity),
            member_id=candidate.member.id if candidate.member else None,
            pickup_distance=pickup_distance,
            destination_distance=destination_distance,
            time_difference=time_difference,
            compatibility_score=score,
            estimated_pickup_minutes=travel_minutes(activity.pickup_lat, activity.pickup_lng,
                                                    request.pickup.lat, request.pickup.lng),
            group_id=candidate.group.id if candidate.group else None,
            vehicle_info=VehicleRead.model_validate(candidate.vehicle) if candidate.vehicle else None,
        )


def _has_inputs(request: MatchRequest) -> bool:
    return (
        request.pickup is not None
        and request.destination is not None
        and request.departure_time is not None
    )


def _matched_activity(activity) -> MatchedActivity:
    return MatchedActivity(
        id=activity.id,
        user_id=activity.user_id,
        role=activity.role,
        pickup=Position(lat=activity.pickup_lat, lng=activity.pickup_lng, label=activity.pickup_label),
        destination=Position(lat=activity.destination_lat, lng=activity.destination_lng,
                             label=activity.destination_label),
        departure_time=to_utc(activity.departure_time),
        vehicle_type_preference=activity.vehicle_type_preference,
        price=activity.price,
        seats_available=activity.seats_available,
        seats_requested=activity.seats_requested,
    )
