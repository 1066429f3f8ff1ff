"""SQLAlchemy ORM layer for the deployment ledger.

Usage::

    from shipyard.core.orm import create_shipyard_engine, create_schema, shipyard_session_factory

    engine = create_shipyard_engine("sqlite:///shipyard.db")
    create_schema(engine)
    session_factory = shipyard_session_factory(engine)
"""

from shipyard.core.orm.base import ShipyardBase, as_utc
from shipyard.core.orm.session import (
    ShipyardSession,
    create_schema,
    create_shipyard_engine,
    shipyard_session_factory,
)
from shipyard.core.orm.tables import (
    ApplicationTable,
    DeploymentQueueTable,
    DestinationTable,
    FailedJobTable,
    RollbackEventTable,
    ServerTable,
)

__all__ = [
    "ShipyardBase",
    "as_utc",
    "ShipyardSession",
    "create_schema",
    "create_shipyard_engine",
    "shipyard_session_factory",
    "ApplicationTable",
    "DeploymentQueueTable",
    "DestinationTable",
    "FailedJobTable",
    "RollbackEventTable",
    "ServerTable",
]
