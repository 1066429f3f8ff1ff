"""
CLI layer for shipyard-core.

Typer sub-commands that delegate to the operations layer
(``shipyard.ops``); this package handles only argument parsing and
terminal output.

Entry point::

    shipyard --help
"""

from shipyard.cli.app import app

__all__ = ["app"]
