# rideshare/models.py
from enum import Enum
from typing import Optional
from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field, UniqueConstraint

from .timewindow import utcnow


class Role(str, Enum):
    DRIVER = "driver"
    PASSENGER = "passenger"

    @property
    def opposite(self) -> "Role":
        return Role.PASSENGER if self is Role.DRIVER else Role.DRIVER


class Activity(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    role: Role = Field(index=True)
    pickup_label: Optional[str] = None
    pickup_lat: float = Field(index=True)
    pickup_lng: float
    destination_label: Optional[str] = None
    destination_lat: float = Field(index=True)
    destination_lng: float
    departure_time: datetime = Field(sa_type=DateTime(timezone=True), index=True)
    vehicle_type_preference: Optional[str] = None
    price: Optional[float] = None
    seats_available: Optional[int] = None   # drivers: seats still free
    seats_requested: int = 1                # passengers: seats wanted
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Vehicle(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_user_id: int = Field(index=True)
    model: str
    license_plate: str
    color: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class RideGroup(SQLModel, table=True):
    __tablename__ = "ride_group"
    __table_args__ = (UniqueConstraint("activity_id"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    activity_id: int = Field(foreign_key="activity.id")
    vehicle_id: int = Field(foreign_key="vehicle.id", index=True)
    start_time: datetime = Field(sa_type=DateTime(timezone=True))
    type: str = "car"
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Member(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    activity_id: int = Field(foreign_key="activity.id", index=True)
    user_id: int = Field(index=True)
    group_id: Optional[int] = Field(default=None, foreign_key="ride_group.id", index=True)
    role: Role
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
