"""
API-specific settings.

Extends :class:`~shipyard.core.settings.ShipyardSettings` with the knobs
that govern the REST transport (prefix, OpenAPI metadata, CORS).

All values can be overridden via ``SHIPYARD_*`` environment variables.
"""

from __future__ import annotations

from pydantic import Field

from shipyard import __version__
from shipyard.core.settings import ShipyardSettings


class ShipyardAPISettings(ShipyardSettings):
    """Settings for the shipyard REST API.

    Order of precedence (highest → lowest):
        1. Constructor keyword arguments
        2. Environment variables (``SHIPYARD_API_PREFIX``, etc.)
        3. ``.env`` file
        4. Defaults below
    """

    # ── API ──────────────────────────────────────────────────────────────
    api_prefix: str = Field(default="/api/v1", description="URL prefix for the deployment endpoints")
    api_title: str = Field(default="shipyard API", description="OpenAPI title")
    api_version: str = Field(default=__version__, description="OpenAPI version string")

    # ── CORS ─────────────────────────────────────────────────────────────
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )
