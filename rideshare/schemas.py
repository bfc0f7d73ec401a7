from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import Role


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ------------------------------------------------------------------
# Shared value types
# ------------------------------------------------------------------
class Position(BaseModel):
    # the poles are excluded: the bounding box needs cos(lat) > 0
    lat: float = Field(gt=-90, lt=90)
    lng: float = Field(ge=-180, le=180)
    label: Optional[str] = None


class VehicleInfo(BaseModel):
    model: str = Field(min_length=1)
    license_plate: str = Field(min_length=1)
    color: str = Field(min_length=1)


class VehicleRead(ORMModel):
    id: int
    model: str
    license_plate: str
    color: str


# ------------------------------------------------------------------
# Registration requests
# ------------------------------------------------------------------
class ShareRideRequest(BaseModel):
    user_id: int
    pickup: Position
    destination: Position
    departure_time: datetime
    vehicle_info: VehicleInfo
    price: Optional[float] = Field(default=None, ge=0)
    vehicle_type_preference: Optional[str] = None
    seats: Optional[int] = Field(default=None, gt=0)   # None -> configured default


class BookRideRequest(BaseModel):
    user_id: int
    pickup: Position
    destination: Position
    departure_time: datetime
    seats: int = Field(default=1, gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    vehicle_type_preference: Optional[str] = None


# ------------------------------------------------------------------
# Matching
# ------------------------------------------------------------------
class MatchRequest(BaseModel):
    """What the matcher needs. Missing points or time mean "no match", not an error."""
    role: Role                          # role of the requester
    user_id: Optional[int] = None
    pickup: Optional[Position] = None
    destination: Optional[Position] = None
    departure_time: Optional[datetime] = None
    seats: int = Field(default=1, gt=0)
    vehicle_type_preference: Optional[str] = None


class MatchedActivity(BaseModel):
    id: int
    user_id: int
    role: Role
    pickup: Position
    destination: Position
    departure_time: datetime
    vehicle_type_preference: Optional[str] = None
    price: Optional[float] = None
    seats_available: Optional[int] = None
    seats_requested: int = 1


class MatchResult(BaseModel):
    matched_activity: MatchedActivity
    member_id: Optional[int] = None
    pickup_distance: float              # km
    destination_distance: float         # km
    time_difference: float              # minutes
    compatibility_score: float          # 0..100
    estimated_pickup_minutes: int
    group_id: Optional[int] = None
    vehicle_info: Optional[VehicleRead] = None


class MatchFound(BaseModel):
    kind: Literal["found"] = "found"
    result: MatchResult


class MatchNotFound(BaseModel):
    kind: Literal["not_found"] = "not_found"
    reason: str = "no compatible candidates"


class MatchError(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)
    kind: Literal["error"] = "error"
    cause: Exception


MatchOutcome = Annotated[Union[MatchFound, MatchNotFound, MatchError], Field(discriminator="kind")]


# ------------------------------------------------------------------
# Registration results
# ------------------------------------------------------------------
class ShareRideResult(BaseModel):
    activity_id: int
    vehicle_id: int
    group_id: int
    member_id: int
    match: Optional[MatchResult] = None


class BookRideResult(BaseModel):
    activity_id: int
    member_id: int
    group_id: Optional[int] = None      # set when bound to a driver's group
    match: Optional[MatchResult] = None


# ------------------------------------------------------------------
# HTTP bodies (distances to 0.1 km, minutes and score as integers)
# ------------------------------------------------------------------
class MatchSummary(BaseModel):
    matched: MatchedActivity
    pickup_distance: float
    destination_distance: float
    time_difference: int
    compatibility_score: int
    estimated_pickup_minutes: int
    group_id: Optional[int] = None
    vehicle_info: Optional[VehicleRead] = None

    @classmethod
    def from_result(cls, result: MatchResult) -> "MatchSummary":
        return cls(
            matched=result.matched_activity,
            pickup_distance=round(result.pickup_distance, 1),
            destination_distance=round(result.destination_distance, 1),
            time_difference=round(result.time_difference),
            compatibility_score=round(result.compatibility_score),
            estimated_pickup_minutes=result.estimated_pickup_minutes,
            group_id=result.group_id,
            vehicle_info=result.vehicle_info,
        )


class ShareRideResponse(BaseModel):
    message: str
    activity_id: int
    group_id: int
    matched_ride: Optional[MatchSummary] = None


class BookRideResponse(BaseModel):
    message: str
    activity_id: int
    group_id: Optional[int] = None
    matched_ride: Optional[MatchSummary] = None


class SearchRequest(MatchRequest):
    limit: int = Field(default=10, ge=1, le=50)


class SearchResponse(BaseModel):
    matches: List[MatchSummary]
