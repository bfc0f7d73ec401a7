# rideshare/database.py
from __future__ import annotations
from functools import partial
from typing import Callable, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

SessionFactory = Callable[[], Session]


def normalize_url(url: str, sslmode: Optional[str] = None) -> str:
    url = url.strip()
    # SQLAlchemy + psycopg = postgresql+psycopg://
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    if sslmode and url.startswith("postgresql") and "sslmode=" not in url:
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}sslmode={sslmode}"
    return url


def _use_explicit_begin(engine: Engine) -> None:
    # pysqlite defers BEGIN on its own; let SQLAlchemy emit it so SAVEPOINT works
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, sslmode: Optional[str] = None, echo: bool = False) -> Engine:
    url = normalize_url(url, sslmode)
    if url.startswith("sqlite"):
        engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
        _use_explicit_begin(engine)
        return engine
    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,   # auto-reconnect
        pool_size=5,
        max_overflow=10,
    )


def init_db(engine: Engine) -> None:
    # Creates tables that don't exist; does not drop/alter
    from . import models  # noqa: F401  (registers tables on SQLModel.metadata)
    SQLModel.metadata.create_all(engine)


def session_factory(engine: Engine) -> SessionFactory:
    """Sessions that keep loaded values readable after commit."""
    return partial(Session, engine, expire_on_commit=False)
