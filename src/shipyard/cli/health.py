"""
CLI: ``shipyard health``: dependency health.
"""

from __future__ import annotations

import asyncio

import typer

from shipyard.cli.utils import console, make_context, output_result

app = typer.Typer(no_args_is_help=True)


@app.command("check")
def health_check(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Probe database, cache, realtime gateway and the failed-jobs backlog.

    Exits 1 when the overall status is ``degraded``.
    """
    from shipyard.core.health_checks import default_health_checks
    from shipyard.ops.health import get_health

    ctx = make_context(database)
    checks = default_health_checks(ctx.settings, ctx.engine, ctx.failed_jobs().count_unresolved)
    result = asyncio.run(get_health(ctx, checks))
    output_result(result, as_json=json_out, title="Health")

    if result.data is not None and result.data.status != "healthy":
        if not json_out:
            console.print(f"[bold red]{result.data.status}[/bold red]")
        raise typer.Exit(code=1)
