"""CLI commands for running playbooks against incidents."""

import json

import click

from responder.cli.common import fail, get_formatter, get_service, require_firm
from responder.core.errors import ResponderError
from responder.models.execution import Execution, StepOutcome

EXECUTION_COLUMNS = [
    "id",
    "playbook_name",
    "status",
    "current_step_index",
    "started_at",
    "started_by",
]


@click.group()
def execution() -> None:
    """Run playbooks against incidents.

    An execution waits on its current step until the outcome is
    reported; failed steps are retried, skipped or the whole
    execution is aborted.
    """
    pass


def _show(ctx: click.Context, result: Execution) -> None:
    formatter = get_formatter(ctx)
    formatter.output(result, title=f"Execution {result.id}")
    if formatter.is_human():
        step = result.current_step
        label = f" '{step.name}'" if step else ""
        click.echo(
            f"\nStatus: {result.status.value} - step "
            f"{result.current_step_index}/{result.step_count}{label}",
            err=True,
        )


@execution.command("start")
@click.argument("incident_id")
@click.option("--playbook", "-p", "playbook_id", help="Playbook to run")
@click.option(
    "--match",
    "use_match",
    is_flag=True,
    help="Pick the playbook by matching the registered incident",
)
@click.pass_context
def start_execution(
    ctx: click.Context,
    incident_id: str,
    playbook_id: str | None,
    use_match: bool,
) -> None:
    """Start a playbook for an incident and trigger its first step."""
    firm_id = require_firm(ctx)
    service = get_service(ctx)

    if bool(playbook_id) == use_match:
        raise click.UsageError("Pass exactly one of --playbook or --match", ctx=ctx)

    try:
        if use_match:
            matched = service.match_incident(firm_id, incident_id)
            if matched is None:
                click.echo(f"No playbook matches incident {incident_id}", err=True)
                get_formatter(ctx).output({"match": None})
                ctx.exit(1)
            playbook_id = str(matched.id)

        result = service.start_execution(
            firm_id, incident_id, playbook_id, ctx.obj.get("user_id")
        )
    except ResponderError as e:
        fail(ctx, e)

    _show(ctx, result)


@execution.command("advance")
@click.argument("execution_id")
@click.option("--success/--failure", "success", required=True, help="Outcome of the current step")
@click.option("--error", "error_text", help="Error description for a failed step")
@click.option("--notes", help="Operator notes")
@click.option("--data", "data_json", help="Step output as a JSON object")
@click.pass_context
def advance_step(
    ctx: click.Context,
    execution_id: str,
    success: bool,
    error_text: str | None,
    notes: str | None,
    data_json: str | None,
) -> None:
    """Report the outcome of the step an execution is waiting on."""
    firm_id = require_firm(ctx)

    data = None
    if data_json:
        try:
            data = json.loads(data_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Invalid JSON: {e}", param_hint="--data") from e
        if not isinstance(data, dict):
            raise click.BadParameter("Must be a JSON object", param_hint="--data")

    outcome = StepOutcome(
        success=success,
        data=data,
        error=error_text,
        notes=notes,
        user_id=ctx.obj.get("user_id"),
    )
    try:
        result = get_service(ctx).advance_step(firm_id, execution_id, outcome)
    except ResponderError as e:
        fail(ctx, e)

    _show(ctx, result)


@execution.command("skip")
@click.argument("execution_id")
@click.option("--reason", "-r", required=True, help="Why the failed step is skipped")
@click.pass_context
def skip_step(ctx: click.Context, execution_id: str, reason: str) -> None:
    """Skip the failed current step."""
    firm_id = require_firm(ctx)
    try:
        result = get_service(ctx).skip_step(
            firm_id, execution_id, reason, user_id=ctx.obj.get("user_id")
        )
    except ResponderError as e:
        fail(ctx, e)

    _show(ctx, result)


@execution.command("retry")
@click.argument("execution_id")
@click.option("--step", "-s", "step_index", type=int, required=True, help="Index of the failed step")
@click.pass_context
def retry_step(ctx: click.Context, execution_id: str, step_index: int) -> None:
    """Retry the failed current step."""
    firm_id = require_firm(ctx)
    try:
        result = get_service(ctx).retry_step(
            firm_id, execution_id, step_index, user_id=ctx.obj.get("user_id")
        )
    except ResponderError as e:
        fail(ctx, e)

    _show(ctx, result)


@execution.command("abort")
@click.argument("execution_id")
@click.option("--reason", "-r", required=True, help="Why the execution is aborted")
@click.pass_context
def abort_execution(ctx: click.Context, execution_id: str, reason: str) -> None:
    """Abort an execution and notify its escalation path."""
    firm_id = require_firm(ctx)
    try:
        result = get_service(ctx).abort_execution(
            firm_id, execution_id, ctx.obj.get("user_id"), reason
        )
    except ResponderError as e:
        fail(ctx, e)

    _show(ctx, result)


@execution.command("status")
@click.argument("execution_id")
@click.pass_context
def execution_status(ctx: click.Context, execution_id: str) -> None:
    """Show an execution with its step results."""
    firm_id = require_firm(ctx)
    try:
        result = get_service(ctx).get_execution_status(firm_id, execution_id)
    except ResponderError as e:
        fail(ctx, e)

    _show(ctx, result)


@execution.command("history")
@click.argument("incident_id")
@click.pass_context
def execution_history(ctx: click.Context, incident_id: str) -> None:
    """List an incident's executions, newest first."""
    firm_id = require_firm(ctx)
    executions = get_service(ctx).get_execution_history(firm_id, incident_id)
    get_formatter(ctx).records(
        executions, columns=EXECUTION_COLUMNS, title=f"Executions for incident {incident_id}"
    )
