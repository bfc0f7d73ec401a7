"""Shared fixtures: a throwaway SQLite database per test, registrar, HTTP client."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlmodel import select

from rideshare.config import Settings
from rideshare.database import build_engine, init_db, session_factory
from rideshare.main import create_app
from rideshare.matcher import MatchOptions
from rideshare.models import Activity, Member, RideGroup, Role, Vehicle
from rideshare.registrar import RideRegistrar

T = datetime(2030, 1, 15, 8, 0, tzinfo=timezone.utc)

DRIVER_PICKUP = {"lat": 10.80, "lng": 106.70, "label": "Ben Thanh Market"}
DRIVER_DESTINATION = {"lat": 10.77, "lng": 106.68, "label": "District 3"}
PASSENGER_PICKUP = {"lat": 10.801, "lng": 106.701, "label": "Le Loi"}
PASSENGER_DESTINATION = {"lat": 10.769, "lng": 106.681, "label": "Vo Van Tan"}


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'rides.db'}"


@pytest.fixture
def engine(db_url):
    engine = build_engine(db_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sessions(engine):
    return session_factory(engine)


@pytest.fixture
def options():
    return MatchOptions(max_distance_km=5, time_flexibility_min=30)


@pytest.fixture
def registrar(sessions, options):
    return RideRegistrar(sessions, options=options)


@pytest.fixture
def client(db_url, engine):
    app = create_app(Settings(database_url=db_url, log_level="DEBUG"), engine=engine)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def share_payload():
    def build(**overrides):
        payload = {
            "user_id": 1,
            "pickup": dict(DRIVER_PICKUP),
            "destination": dict(DRIVER_DESTINATION),
            "departure_time": T,
            "price": 45000,
            "vehicle_info": {"model": "Toyota Vios", "license_plate": "51A-123.45", "color": "white"},
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def book_payload():
    def build(minutes_after=10, **overrides):
        payload = {
            "user_id": 2,
            "pickup": dict(PASSENGER_PICKUP),
            "destination": dict(PASSENGER_DESTINATION),
            "departure_time": T + timedelta(minutes=minutes_after),
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def rows(sessions):
    """rows(Model, field=value, ...) -> list of matching rows, read in a fresh session."""
    def fetch(model, **filters):
        with sessions() as session:
            stmt = select(model)
            for name, value in filters.items():
                stmt = stmt.where(getattr(model, name) == value)
            return session.exec(stmt).all()
    return fetch


@pytest.fixture
def seed(sessions):
    """Insert activities directly, bypassing the registrar (and its matching)."""

    class Seeder:
        def driver(self, user_id, pickup=DRIVER_PICKUP, destination=DRIVER_DESTINATION,
                   departure=T, seats=4, group_type="car"):
            with sessions() as session, session.begin():
                activity = _add(session, _activity(user_id, Role.DRIVER, pickup, destination, departure,
                                                   seats_available=seats))
                vehicle = _add(session, Vehicle(owner_user_id=user_id, model="Honda City",
                                                license_plate=f"51F-{user_id:05d}", color="blue"))
                group = _add(session, RideGroup(activity_id=activity.id, vehicle_id=vehicle.id,
                                                start_time=departure, type=group_type))
                _add(session, Member(activity_id=activity.id, user_id=user_id, group_id=group.id,
                                     role=Role.DRIVER))
                return activity.id, group.id

        def passenger(self, user_id, pickup=PASSENGER_PICKUP, destination=PASSENGER_DESTINATION,
                      departure=T, seats=1, group_id=None):
            with sessions() as session, session.begin():
                activity = _add(session, _activity(user_id, Role.PASSENGER, pickup, destination, departure,
                                                   seats_requested=seats))
                member = _add(session, Member(activity_id=activity.id, user_id=user_id, group_id=group_id,
                                              role=Role.PASSENGER))
                return activity.id, member.id

    return Seeder()


def _add(session, row):
    session.add(row)
    session.flush()
    return row


def _activity(user_id, role, pickup, destination, departure, **seats):
    return Activity(
        user_id=user_id,
        role=role,
        pickup_label=pickup.get("label"),
        pickup_lat=pickup["lat"],
        pickup_lng=pickup["lng"],
        destination_label=destination.get("label"),
        destination_lat=destination["lat"],
        destination_lng=destination["lng"],
        departure_time=departure,
        **seats,
    )
