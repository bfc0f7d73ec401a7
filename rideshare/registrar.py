"""
RideRegistrar: one unit of work per share/book request.

    START -> PERSISTING -> MATCHING -> COMMIT
    START -> PERSISTING -> ROLLBACK            (any insert/update failed)

A failed or empty match never rolls anything back; the requester is simply
registered unmatched. Seat claims are guarded three ways inside the same
transaction: row lock on the group, conditional seat decrement on the driver
activity, conditional member link.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .database import SessionFactory
from .errors import InvalidRideRequest, MatcherError, PersistenceError, SeatConflict
from .matcher import MatchOptions, RideMatcher
from .models import Activity, Member, RideGroup, Role, Vehicle
from .schemas import (
    BookRideRequest,
    BookRideResult,
    MatchError,
    MatchFound,
    MatchRequest,
    MatchResult,
    ShareRideRequest,
    ShareRideResult,
)
from .store import ActivityStore
from .timewindow import to_utc

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT", bound=BaseModel)
DEFAULT_GROUP_TYPE = "car"


class RideRegistrar:
    def __init__(
        self,
        session_factory: SessionFactory,
        options: Optional[MatchOptions] = None,
        default_driver_seats: int = 4,
        matcher_cls: Type[RideMatcher] = RideMatcher,
    ):
        self.session_factory = session_factory
        self.options = options or MatchOptions()
        self.default_driver_seats = default_driver_seats
        self.matcher_cls = matcher_cls

    # ---------------- share (driver) --------
    def share_ride(self, request: Union[ShareRideRequest, Mapping[str, Any]]) -> ShareRideResult:
        """
        Register a driver's ride: activity, vehicle, group, driver member.
        Then look for a waiting passenger and pull them into the new group.
        """
        req = _parse(ShareRideRequest, request)
        seats = req.seats or self.default_driver_seats

        with self.session_factory() as session:
            try:
                with session.begin():
                    store = ActivityStore(session)
                    activity = store.add_activity(_activity(req, Role.DRIVER, seats_available=seats))
                    vehicle = store.add_vehicle(Vehicle(
                        owner_user_id=req.user_id,
                        model=req.vehicle_info.model,
                        license_plate=req.vehicle_info.license_plate,
                        color=req.vehicle_info.color,
                    ))
                    group = store.add_group(RideGroup(
                        activity_id=activity.id,
                        vehicle_id=vehicle.id,
                        start_time=to_utc(req.departure_time),
                        type=req.vehicle_type_preference or DEFAULT_GROUP_TYPE,
                    ))
                    member = store.add_member(Member(
                        activity_id=activity.id,
                        user_id=req.user_id,
                        group_id=group.id,
                        role=Role.DRIVER,
                    ))

                    match = self._match(store, _match_request(req, Role.DRIVER, seats, vehicle_type=group.type))
                    if match is not None:
                        bound = match.member_id is not None and self._bind(
                            store,
                            group_id=group.id,
                            driver_activity_id=activity.id,
                            member_id=match.member_id,
                            seats=match.matched_activity.seats_requested,
                        )
                        match = match.model_copy(update={"group_id": group.id}) if bound else None

                    result = ShareRideResult(
                        activity_id=activity.id,
                        vehicle_id=vehicle.id,
                        group_id=group.id,
                        member_id=member.id,
                        match=match,
                    )
            except SQLAlchemyError as exc:
                logger.exception("share-ride registration failed for user %s", req.user_id)
                raise PersistenceError("could not register shared ride") from exc

        logger.info("user %s shared ride activity=%s group=%s matched=%s",
                    req.user_id, result.activity_id, result.group_id, result.match is not None)
        return result

    # ---------------- book (passenger) ------
    def book_ride(self, request: Union[BookRideRequest, Mapping[str, Any]]) -> BookRideResult:
        """Register a passenger and bind them to the best driver group, if any has room."""
        req = _parse(BookRideRequest, request)

        with self.session_factory() as session:
            try:
                with session.begin():
                    store = ActivityStore(session)
                    activity = store.add_activity(_activity(req, Role.PASSENGER, seats_requested=req.seats))
                    member = store.add_member(Member(
                        activity_id=activity.id,
                        user_id=req.user_id,
                        role=Role.PASSENGER,
                    ))

                    match = self._match(store, _match_request(
                        req, Role.PASSENGER, req.seats, vehicle_type=req.vehicle_type_preference))
                    if match is not None:
                        bound = match.group_id is not None and self._bind(
                            store,
                            group_id=match.group_id,
                            driver_activity_id=match.matched_activity.id,
                            member_id=member.id,
                            seats=req.seats,
                        )
                        if not bound:
                            match = None

                    result = BookRideResult(
                        activity_id=activity.id,
                        member_id=member.id,
                        group_id=match.group_id if match else None,
                        match=match,
                    )
            except SQLAlchemyError as exc:
                logger.exception("book-ride registration failed for user %s", req.user_id)
                raise PersistenceError("could not register ride booking") from exc

        logger.info("user %s booked ride activity=%s group=%s",
                    req.user_id, result.activity_id, result.group_id)
        return result

    # ---------------- helpers ---------------
    def _match(self, store: ActivityStore, request: MatchRequest) -> Optional[MatchResult]:
        # a failed query must not poison the outer transaction
        savepoint = store.savepoint()
        try:
            outcome = self.matcher_cls(store, self.options).find_match(request)
        except Exception as exc:
            # matching is best effort; the requester's own rows must survive it
            logger.exception("matcher raised for user %s", request.user_id)
            cause = MatcherError(f"matcher raised {type(exc).__name__}: {exc}")
            cause.__cause__ = exc
            outcome = MatchError(cause=cause)
        if isinstance(outcome, MatchError):
            savepoint.rollback()
            logger.warning("user %s registered unmatched after matcher error: %s",
                           request.user_id, outcome.cause)
            return None
        savepoint.commit()
        return outcome.result if isinstance(outcome, MatchFound) else None

    def _bind(self, store: ActivityStore, group_id: int, driver_activity_id: int,
              member_id: int, seats: int) -> bool:
        savepoint = store.savepoint()
        try:
            _claim_seats(store, group_id, driver_activity_id, member_id, seats)
        except SeatConflict as exc:
            savepoint.rollback()
            logger.warning("seat claim for member %s on group %s lost: %s", member_id, group_id, exc)
            return False
        savepoint.commit()
        return True


def _claim_seats(store: ActivityStore, group_id: int, driver_activity_id: int,
                 member_id: int, seats: int) -> None:
    if store.lock_group(group_id) is None:
        raise SeatConflict(f"group {group_id} does not exist")
    if not store.take_seats(driver_activity_id, seats):
        raise SeatConflict(f"fewer than {seats} seat(s) left on activity {driver_activity_id}")
    if not store.link_member(member_id, group_id):
        raise SeatConflict(f"member {member_id} is already in a group")


def _parse(model: Type[RequestT], payload: Union[RequestT, Mapping[str, Any]]) -> RequestT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRideRequest(str(exc)) from exc


def _activity(req: Union[ShareRideRequest, BookRideRequest], role: Role, **seats: int) -> Activity:
    return Activity(
        user_id=req.user_id,
        role=role,
        pickup_label=req.pickup.label,
        pickup_lat=req.pickup.lat,
        pickup_lng=req.pickup.lng,
        destination_label=req.destination.label,
        destination_lat=req.destination.lat,
        destination_lng=req.destination.lng,
        departure_time=to_utc(req.departure_time),
        vehicle_type_preference=req.vehicle_type_preference,
        price=req.price,
        **seats,
    )


def _match_request(req: Union[ShareRideRequest, BookRideRequest], role: Role, seats: int,
                   vehicle_type: Optional[str]) -> MatchRequest:
    return MatchRequest(
        role=role,
        user_id=req.user_id,
        pickup=req.pickup,
        destination=req.destination,
        departure_time=req.departure_time,
        seats=seats,
        vehicle_type_preference=vehicle_type,
    )
