"""Helpers shared by the CLI command groups."""

import click

from responder.cli.output import OutputFormatter
from responder.core.errors import ResponderError
from responder.service import ResponderService


def get_service(ctx: click.Context) -> ResponderService:
    return ctx.obj["service"]


def get_formatter(ctx: click.Context) -> OutputFormatter:
    return ctx.obj["formatter"]


def require_firm(ctx: click.Context) -> str:
    """Return the firm for this invocation or fail with a usage error."""
    firm_id = ctx.obj.get("firm_id")
    if not firm_id:
        raise click.UsageError(
            "No firm given. Pass --firm, set RESPONDER_FIRM or default_firm in responder.yaml",
            ctx=ctx,
        )
    return firm_id


def fail(ctx: click.Context, error: ResponderError) -> None:
    """Print a structured error and exit with the error's code."""
    get_formatter(ctx).error(error.to_structured_error())
    ctx.exit(error.exit_code)
