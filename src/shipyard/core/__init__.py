"""Shipyard Core -- foundation layer shared by every shipyard process.

Architecture::

    settings.py        Environment-driven configuration (pydantic-settings)
    logging.py         Structured logging (structlog)
    errors.py          Error hierarchy with categories and retryability
    orm/               SQLAlchemy 2.0 tables, engine and session factory
    health.py          Probe aggregation and the health report model
    health_checks.py   Database, cache and realtime-gateway probes
"""
