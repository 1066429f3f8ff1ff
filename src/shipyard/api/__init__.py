"""
REST API layer for shipyard-core.

Provides a FastAPI application factory whose endpoints delegate to the
operations layer (``shipyard.ops``).  This package handles only HTTP
transport concerns: serialisation, error mapping and request context.

Quick start::

    from shipyard.api import create_app

    app = create_app()  # ready for uvicorn
"""

from shipyard.api.app import create_app

__all__ = ["create_app"]
