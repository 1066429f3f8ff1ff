"""
CLI: ``shipyard worker``: start the deployment worker.
"""

from __future__ import annotations

import typer

from shipyard.cli.utils import console, load_settings

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    workers: int = typer.Option(4, "--workers", "-w", help="Applications drained concurrently"),
    poll_interval: float = typer.Option(2.0, "--poll-interval", help="Seconds between poll cycles"),
    worker_id: str | None = typer.Option(None, "--id", help="Custom worker identifier"),  # noqa: UP007
    dry_run: bool = typer.Option(False, "--dry-run", help="List applications with queued work and exit"),
) -> None:
    """Start the worker that claims and executes queued deployments.

    The worker polls the ledger for applications with queued entries and
    runs them one at a time per application through the runner configured
    in ``SHIPYARD_DEPLOYMENT_RUNNER``.

    Example::

        shipyard worker start --workers 4 --poll-interval 2
    """
    from shipyard.core.logging import configure_logging
    from shipyard.core.orm import create_schema, create_shipyard_engine, shipyard_session_factory
    from shipyard.execution.dlq import FailedJobStore
    from shipyard.execution.executors.local import LocalExecutor
    from shipyard.execution.hooks import default_hooks
    from shipyard.execution.inventory import Inventory
    from shipyard.execution.ledger import DeploymentLedger
    from shipyard.execution.scheduler import DeploymentScheduler
    from shipyard.execution.worker import WorkerLoop

    settings = load_settings(database)
    engine = create_shipyard_engine(settings.database_url)
    create_schema(engine)
    session_factory = shipyard_session_factory(engine)
    inventory = Inventory(session_factory)
    ledger = DeploymentLedger(session_factory, default_hooks(inventory))

    if dry_run:
        pending = ledger.pending_applications()
        console.print(f"[bold]{len(pending)}[/bold] application(s) with queued deployments")
        for application_id in pending:
            console.print(f"  {application_id}")
        return

    configure_logging(level=settings.log_level, json_format=settings.log_json, service="shipyard-worker")
    console.print(
        f"[bold green]Starting shipyard worker[/bold green] (threads={workers}, poll={poll_interval}s)"
    )

    try:
        with LocalExecutor.from_settings(settings, max_workers=workers) as executor:
            scheduler = DeploymentScheduler(ledger, executor, inventory=inventory, settings=settings)
            loop = WorkerLoop(
                scheduler,
                failed_jobs=FailedJobStore(session_factory),
                poll_interval=poll_interval,
                max_workers=workers,
                worker_id=worker_id,
            )
            loop.start()
    except KeyboardInterrupt:
        console.print("\n[yellow]Worker stopped by user[/yellow]")
    except Exception as exc:
        console.print(f"[red]Worker error: {exc}[/red]")
        raise typer.Exit(code=1) from exc


@app.command("status")
def status() -> None:
    """Show active workers in this process (if running as library)."""
    from shipyard.execution.worker import get_active_workers

    workers = get_active_workers()
    if not workers:
        console.print("[yellow]No active workers found in this process[/yellow]")
        return

    for w in workers:
        console.print(f"  [bold]{w.worker_id}[/bold]  pid={w.pid}  status={w.status}  host={w.hostname}")
