"""
Persistence contract used by the matcher and the registrar.

One ActivityStore wraps one Session, so every call below runs inside the
caller's unit of work. Nothing here commits.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional, Type

from sqlalchemy import or_, update
from sqlalchemy.orm import SessionTransaction
from sqlmodel import Session, SQLModel, col, select

from .geo import BoundingBox
from .models import Activity, Member, RideGroup, Role, Vehicle
from .timewindow import TimeWindow

logger = logging.getLogger(__name__)


class CandidateQuery(NamedTuple):
    role: Role                      # role of the activities we are looking for
    window: TimeWindow
    pickup_box: BoundingBox
    destination_box: BoundingBox
    exclude_user_id: Optional[int] = None
    vehicle_type: Optional[str] = None
    seats: int = 1                  # seats wanted (drivers) / seats offered (passengers)
    limit: int = 50


class Candidate(NamedTuple):
    activity: Activity
    member: Optional[Member]
    group: Optional[RideGroup]
    vehicle: Optional[Vehicle]


class ActivityStore:
    def __init__(self, session: Session):
        self.session = session

    # ---------------- reads -----------------
    def find_candidates(self, query: CandidateQuery) -> List[Candidate]:
        stmt = (
            select(Activity, Member, RideGroup, Vehicle)
            .join(Member, col(Member.activity_id) == col(Activity.id), isouter=True)
            .join(RideGroup, col(RideGroup.id) == col(Member.group_id), isouter=True)
            .join(Vehicle, col(Vehicle.id) == col(RideGroup.vehicle_id), isouter=True)
            .where(col(Activity.role) == query.role)
            .where(col(Activity.departure_time).between(query.window.earliest, query.window.latest))
            .where(col(Activity.pickup_lat).between(query.pickup_box.min_lat, query.pickup_box.max_lat))
            .where(col(Activity.pickup_lng).between(query.pickup_box.min_lng, query.pickup_box.max_lng))
            .where(col(Activity.destination_lat).between(query.destination_box.min_lat, query.destination_box.max_lat))
            .where(col(Activity.destination_lng).between(query.destination_box.min_lng, query.destination_box.max_lng))
        )
        if query.exclude_user_id is not None:
            stmt = stmt.where(col(Activity.user_id) != query.exclude_user_id)
        if query.role is Role.DRIVER:
            if query.vehicle_type:
                stmt = stmt.where(or_(col(RideGroup.type).is_(None), col(RideGroup.type) == query.vehicle_type))
            stmt = stmt.where(or_(
                col(Activity.seats_available).is_(None),
                col(Activity.seats_available) >= query.seats,
            ))
        else:
            # passengers already riding with someone are not up for grabs
            stmt = stmt.where(col(Member.group_id).is_(None))
            stmt = stmt.where(col(Activity.seats_requested) <= query.seats)
            if query.vehicle_type:
                # vehicle_type is the driver's group type; passengers state theirs on the activity
                stmt = stmt.where(or_(
                    col(Activity.vehicle_type_preference).is_(None),
                    col(Activity.vehicle_type_preference) == query.vehicle_type,
                ))

        stmt = stmt.order_by(col(Activity.id)).limit(query.limit)
        rows = self.session.exec(stmt).all()
        return [Candidate(*row) for row in rows]

    def lock_group(self, group_id: int) -> Optional[RideGroup]:
        """SELECT ... FOR UPDATE on the group row (no-op lock on SQLite)."""
        return self.session.exec(
            select(RideGroup).where(RideGroup.id == group_id).with_for_update()
        ).one_or_none()

    def savepoint(self) -> SessionTransaction:
        return self.session.begin_nested()

    # ---------------- inserts ---------------
    def add_activity(self, activity: Activity) -> Activity:
        return self._insert(activity)

    def add_vehicle(self, vehicle: Vehicle) -> Vehicle:
        return self._insert(vehicle)

    def add_group(self, group: RideGroup) -> RideGroup:
        return self._insert(group)

    def add_member(self, member: Member) -> Member:
        return self._insert(member)

    # ---------------- compare-and-set ------
    def take_seats(self, activity_id: int, seats: int) -> bool:
        """Decrement a driver's free seats only if enough are left."""
        table = Activity.__table__
        stmt = (
            update(table)
            .where(table.c.id == activity_id)
            .where(table.c.seats_available >= seats)
            .values(seats_available=table.c.seats_available - seats)
        )
        return self._compare_and_set(stmt, Activity, activity_id)

    def link_member(self, member_id: int, group_id: int) -> bool:
        """Bind a member to a group only if it is still unbound."""
        table = Member.__table__
        stmt = (
            update(table)
            .where(table.c.id == member_id)
            .where(table.c.group_id.is_(None))
            .values(group_id=group_id)
        )
        return self._compare_and_set(stmt, Member, member_id)

    # ---------------- helpers ---------------
    def _insert(self, row: SQLModel) -> SQLModel:
        self.session.add(row)
        self.session.flush()
        return row

    def _compare_and_set(self, stmt, model: Type[SQLModel], pk: int) -> bool:
        self.session.flush()
        result = self.session.connection().execute(stmt)
        # the row may be cached in this session with the old value
        cached = self.session.identity_map.get(self.session.identity_key(model, pk))
        if cached is not None:
            self.session.expire(cached)
        updated = result.rowcount == 1
        if not updated:
            logger.debug("compare-and-set on %s id=%s matched no row", model.__name__, pk)
        return updated
