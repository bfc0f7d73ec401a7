# rideshare/main.py
"""
HTTP surface for ride registration and matching.

Run with:  uvicorn --factory rideshare.main:create_app
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from .config import Settings, configure_logging, load_settings
from .database import build_engine, init_db, session_factory
from .errors import InvalidRideRequest, MatcherError, PersistenceError
from .matcher import MatchOptions, RideMatcher
from .registrar import RideRegistrar
from .store import ActivityStore
from . import schemas as s

APP_VERSION = "0.1.0"


def match_options(settings: Settings) -> MatchOptions:
    return MatchOptions(
        max_distance_km=settings.match_max_distance_km,
        time_flexibility_min=settings.match_time_flexibility_min,
        candidate_limit=settings.match_candidate_limit,
    )


def get_registrar(request: Request) -> RideRegistrar:
    return request.app.state.registrar


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    engine = engine or build_engine(settings.database_url, settings.database_sslmode)
    sessions = session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        yield
        engine.dispose()

    app = FastAPI(title="Rideshare Matching API", version=APP_VERSION, lifespan=lifespan)
    app.state.registrar = RideRegistrar(
        sessions,
        options=match_options(settings),
        default_driver_seats=settings.default_driver_seats,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidRideRequest)
    async def _invalid_request(request: Request, exc: InvalidRideRequest):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def _persistence_failed(request: Request, exc: PersistenceError):
        return JSONResponse(status_code=500, content={"detail": "Registration failed, please retry"})

    # ---------------- Health ----------------
    @app.get("/api/health")
    def health():
        return {"status": "ok", "version": APP_VERSION}

    # ---------------- Rides -----------------
    @app.post("/api/rides/share-ride", response_model=s.ShareRideResponse, status_code=201)
    def share_ride(
        payload: s.ShareRideRequest,
        registrar: RideRegistrar = Depends(get_registrar),
    ):
        result = registrar.share_ride(payload)
        matched = s.MatchSummary.from_result(result.match) if result.match else None
        return s.ShareRideResponse(
            message="Ride shared and matched" if matched else "Ride shared, looking for passengers",
            activity_id=result.activity_id,
            group_id=result.group_id,
            matched_ride=matched,
        )

    @app.post("/api/rides/book-ride", response_model=s.BookRideResponse, status_code=201)
    def book_ride(
        payload: s.BookRideRequest,
        registrar: RideRegistrar = Depends(get_registrar),
    ):
        result = registrar.book_ride(payload)
        matched = s.MatchSummary.from_result(result.match) if result.match else None
        return s.BookRideResponse(
            message="Seat booked" if matched else "Booking registered, waiting for a driver",
            activity_id=result.activity_id,
            group_id=result.group_id,
            matched_ride=matched,
        )

    @app.post("/api/rides/search", response_model=s.SearchResponse)
    def search(
        payload: s.SearchRequest,
        registrar: RideRegistrar = Depends(get_registrar),
    ):
        # read-only: nothing is registered, nothing is bound
        with sessions() as session:
            matcher = RideMatcher(ActivityStore(session), registrar.options)
            try:
                ranked = matcher.rank(payload)
            except MatcherError:
                raise HTTPException(503, "Matching is temporarily unavailable")
        return s.SearchResponse(matches=[s.MatchSummary.from_result(r) for r in ranked[:payload.limit]])

    return app
