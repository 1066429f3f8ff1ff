"""
CLI utility helpers: output formatting and context construction.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from shipyard.core.orm import create_shipyard_engine, shipyard_session_factory
from shipyard.core.settings import ShipyardSettings
from shipyard.execution.hooks import default_hooks
from shipyard.execution.inventory import Inventory
from shipyard.ops.context import OperationContext
from shipyard.ops.result import OperationResult, PagedResult

console = Console()
err_console = Console(stderr=True)


# ── Context helpers ──────────────────────────────────────────────────────


def load_settings(database: str | None = None) -> ShipyardSettings:
    """Settings from the environment, with ``--database`` taking precedence."""
    if database:
        return ShipyardSettings(database_url=database)
    return ShipyardSettings()


def make_context(
    database: str | None = None,
    *,
    dry_run: bool = False,
    initiator: str | None = None,
) -> OperationContext:
    """Create an ``OperationContext`` for a CLI command.

    New entries are dispatched to the job queue when
    ``SHIPYARD_DISPATCH_ON_ENQUEUE`` is set (the default).
    """
    settings = load_settings(database)
    engine = create_shipyard_engine(settings.database_url)
    session_factory = shipyard_session_factory(engine)

    send = None
    if settings.dispatch_on_enqueue:
        from shipyard.execution.tasks import dispatch_application

        send = dispatch_application

    return OperationContext(
        session_factory=session_factory,
        settings=settings,
        caller="cli",
        initiator=initiator,
        dry_run=dry_run,
        hooks=default_hooks(Inventory(session_factory), send=send),
    )


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def _fail(result: OperationResult) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    code = err.code if err else "ERROR"
    err_console.print(f"[bold red]Error[/bold red] ({code}): {msg}")
    raise typer.Exit(code=1)


def output_result(
    result: OperationResult,
    *,
    as_json: bool = False,
    title: str = "",
    columns: tuple[str, ...] | None = None,
) -> None:
    """Render an ``OperationResult`` to the terminal.  Exits 1 on failure."""
    if not result.success:
        _fail(result)

    data = result.data

    if as_json:
        payload = _to_dict(data) if not isinstance(data, list | tuple) else [_to_dict(d) for d in data]
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title, columns=columns)
    else:
        _print_dict(_to_dict(data), title=title)

    for warning in result.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


def output_paged(
    result: PagedResult,
    *,
    as_json: bool = False,
    title: str = "",
    columns: tuple[str, ...] | None = None,
) -> None:
    """Render a ``PagedResult`` to the terminal with pagination info."""
    if not result.success:
        _fail(result)

    items = result.data or []

    if as_json:
        payload = {
            "items": [_to_dict(d) for d in items],
            "total": result.total,
            "skip": result.skip,
            "take": result.take,
            "has_more": result.has_more,
        }
        console.print_json(json.dumps(payload, default=str))
        return

    if not items:
        console.print("[dim]No items.[/dim]")
        return

    _print_table(items, title=title, columns=columns)
    console.print(f"\n[dim]Showing {len(items)} of {result.total} (skipped {result.skip})[/dim]")


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "", columns: tuple[str, ...] | None = None) -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    cols = columns or tuple(_to_dict(items[0]))
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in cols:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(d.get(c, "")) for c in cols))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
