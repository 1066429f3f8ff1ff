"""
CLI: ``shipyard deploy``: deployment commands.

Usage::

    shipyard deploy trigger app-1 --commit abc123def456
    shipyard deploy list app-1
    shipyard deploy show <uuid>
    shipyard deploy cancel <uuid>
    shipyard deploy rollback app-1
    shipyard deploy rollback app-1 --to <uuid>
    shipyard deploy rollback-events app-1
"""

from __future__ import annotations

import getpass

import typer

from shipyard.cli.utils import make_context, output_paged, output_result

app = typer.Typer(no_args_is_help=True)

LIST_COLUMNS = ("deployment_uuid", "commit", "status", "pull_request_id", "rollback", "created_at", "finished_at")
EVENT_COLUMNS = ("id", "from_commit", "to_commit", "trigger_type", "status", "triggered_by", "triggered_at")


@app.command()
def trigger(
    application_id: str = typer.Argument(..., help="Application ID"),
    commit: str = typer.Option("HEAD", "--commit", "-c", help="Commit to deploy"),
    pull_request_id: int = typer.Option(0, "--pr", help="Pull request preview to build"),
    force: bool = typer.Option(False, "--force", "-f", help="Rebuild without cache"),
    database: str | None = typer.Option(None, "--database", "-d"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Resolve the target without queueing"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Queue a deployment of an application."""
    from shipyard.ops.deployments import trigger_deploy
    from shipyard.ops.requests import TriggerDeployRequest

    ctx = make_context(database, dry_run=dry_run)
    request = TriggerDeployRequest(
        application_id=application_id,
        commit=commit,
        pull_request_id=pull_request_id,
        force_rebuild=force,
    )
    output_result(trigger_deploy(ctx, request), as_json=json_out, title="Deployment queued")


@app.command("list")
def list_deployments(
    application_id: str = typer.Argument(..., help="Application ID"),
    status: str | None = typer.Option(None, "--status", "-s"),
    include_prs: bool = typer.Option(False, "--include-prs", help="Include pull-request previews"),
    take: int = typer.Option(20, "--take", "-n"),
    skip: int = typer.Option(0, "--skip"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List an application's deployments, newest first."""
    from shipyard.ops.deployments import list_deployments as _list
    from shipyard.ops.requests import ListDeploymentsRequest

    ctx = make_context(database)
    request = ListDeploymentsRequest(
        application_id=application_id,
        skip=skip,
        take=take,
        include_pull_requests=include_prs,
        status=status,
    )
    output_paged(_list(ctx, request), as_json=json_out, title="Deployments", columns=LIST_COLUMNS)


@app.command("show")
def show(
    deployment_uuid: str = typer.Argument(..., help="Deployment token"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one deployment with its log."""
    from shipyard.ops.deployments import get_deployment
    from shipyard.ops.requests import GetDeploymentRequest

    ctx = make_context(database)
    result = get_deployment(ctx, GetDeploymentRequest(deployment_uuid=deployment_uuid))
    output_result(result, as_json=json_out, title=f"Deployment: {deployment_uuid}")


@app.command()
def cancel(
    deployment_uuid: str = typer.Argument(..., help="Deployment token"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Cancel a queued deployment, or ask its worker to abort it."""
    from shipyard.ops.deployments import cancel_deployment
    from shipyard.ops.requests import CancelDeploymentRequest

    ctx = make_context(database)
    result = cancel_deployment(ctx, CancelDeploymentRequest(deployment_uuid=deployment_uuid))
    output_result(result, as_json=json_out, title="Cancel")


@app.command()
def rollback(
    application_id: str = typer.Argument(..., help="Application ID"),
    to: str | None = typer.Option(None, "--to", help="Token of the deployment to restore"),
    database: str | None = typer.Option(None, "--database", "-d"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the chosen target without queueing"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Roll an application back to its previous successful deployment."""
    from shipyard.ops.requests import RollbackRequest, RollbackToRequest
    from shipyard.ops.rollbacks import rollback_application, rollback_to_deployment

    ctx = make_context(database, dry_run=dry_run, initiator=getpass.getuser())
    if to:
        result = rollback_to_deployment(ctx, RollbackToRequest(application_id=application_id, deployment_uuid=to))
    else:
        result = rollback_application(ctx, RollbackRequest(application_id=application_id))
    output_result(result, as_json=json_out, title="Rollback")


@app.command("rollback-events")
def rollback_events(
    application_id: str = typer.Argument(..., help="Application ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List an application's rollback events."""
    from shipyard.ops.requests import ListRollbackEventsRequest
    from shipyard.ops.rollbacks import list_rollback_events

    ctx = make_context(database)
    result = list_rollback_events(ctx, ListRollbackEventsRequest(application_id=application_id))
    output_result(result, as_json=json_out, title="Rollback events", columns=EVENT_COLUMNS)
