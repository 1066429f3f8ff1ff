"""
CLI: ``shipyard serve``: start the API server.
"""

from __future__ import annotations

import typer
import uvicorn

from shipyard.cli.utils import console
from shipyard.core.logging import configure_logging

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    workers: int = typer.Option(1, "--workers", "-w", help="Number of workers"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the shipyard REST API server."""
    configure_logging(level=log_level, service="shipyard-api")
    console.print(f"[bold green]Starting shipyard API[/bold green] on {host}:{port}")
    uvicorn.run(
        "shipyard.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_level=log_level,
    )
