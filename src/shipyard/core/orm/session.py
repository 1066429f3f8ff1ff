"""Engine and session factories for the ledger database.

Schema migrations are owned by the platform; ``create_schema`` exists for
development databases and tests.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def create_shipyard_engine(url: str = "sqlite:///shipyard.db", *, echo: bool = False, **kwargs: Any) -> Engine:
    """Engine for the ledger database.

    SQLite engines are shared by the worker threads of one process, so they
    get ``check_same_thread=False``, a busy timeout, WAL and foreign keys.
    Other backends get ``pool_pre_ping``.
    """
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
        return _sa_create_engine(url, echo=echo, **kwargs)

    connect_args = kwargs.setdefault("connect_args", {})
    connect_args.setdefault("check_same_thread", False)
    connect_args.setdefault("timeout", 30)
    engine = _sa_create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class ShipyardSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Rows read inside a ``with factory.begin()`` block stay usable after
    the block commits.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def shipyard_session_factory(engine: Engine) -> sessionmaker[ShipyardSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``ShipyardSession`` instances."""
    return sessionmaker(bind=engine, class_=ShipyardSession)


def create_schema(engine: Engine) -> None:
    """Create every shipyard table that does not exist yet."""
    from shipyard.core.orm import tables  # noqa: F401  (registers the tables)
    from shipyard.core.orm.base import ShipyardBase

    ShipyardBase.metadata.create_all(engine)
