"""
Root Typer application for the shipyard CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from shipyard import __version__

app = Typer(
    name="shipyard",
    help="shipyard: deployment queue, workers and rollbacks.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"shipyard {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """shipyard CLI: queue deployments, run workers, check health."""


# ── Sub-command registration ─────────────────────────────────────────────

from shipyard.cli.db import app as db_app  # noqa: E402
from shipyard.cli.deploy import app as deploy_app  # noqa: E402
from shipyard.cli.health import app as health_app  # noqa: E402
from shipyard.cli.serve import app as serve_app  # noqa: E402
from shipyard.cli.worker import app as worker_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(deploy_app, name="deploy", help="Trigger, list, cancel and roll back deployments.")
app.add_typer(health_app, name="health", help="Dependency health.")
app.add_typer(serve_app, name="serve", help="Start the API server.")
app.add_typer(worker_app, name="worker", help="Deployment worker.")
