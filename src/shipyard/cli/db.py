"""
CLI: ``shipyard db``: database management commands.
"""

from __future__ import annotations

import typer

from shipyard.cli.utils import make_context, output_result

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview without changes"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create the ledger tables (idempotent)."""
    from shipyard.ops.database import initialize_database
    from shipyard.ops.requests import DatabaseInitRequest

    ctx = make_context(database, dry_run=dry_run)
    result = initialize_database(ctx, DatabaseInitRequest())
    output_result(result, as_json=json_out, title="Database Init")
