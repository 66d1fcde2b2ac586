"""Responder CLI entry point and global options."""

from pathlib import Path
from typing import Literal

import click

from responder import __version__
from responder.cli.execution import execution
from responder.cli.incident import incident
from responder.cli.output import OutputFormat, OutputFormatter, set_output_format
from responder.cli.playbook import playbook
from responder.core.config import load_config
from responder.core.errors import ResponderError, handle_error
from responder.core.logging import configure_logging
from responder.service import ResponderService


@click.group()
@click.option(
    "--format",
    "-f",
    type=click.Choice(["json", "jsonl", "human"]),
    default="json",
    help="Output format (default: json)",
)
@click.option(
    "--data-dir",
    "-d",
    type=click.Path(path_type=Path),
    default=".responder",
    envvar="RESPONDER_DATA_DIR",
    show_envvar=True,
    help="Directory holding the database and responder.yaml",
)
@click.option(
    "--firm",
    "firm_id",
    envvar="RESPONDER_FIRM",
    show_envvar=True,
    default=None,
    help="Firm (tenant) to operate on",
)
@click.option(
    "--user",
    "user_id",
    envvar="RESPONDER_USER",
    default=None,
    help="User recorded on executions and step results",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose logging to stderr",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    default=False,
    help="Suppress informational output",
)
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"]),
    default=None,
    help="Log format for stderr (default: text)",
)
@click.version_option(version=__version__, prog_name="responder")
@click.pass_context
def cli(
    ctx: click.Context,
    format: OutputFormat,
    data_dir: Path,
    firm_id: str | None,
    user_id: str | None,
    verbose: bool,
    quiet: bool,
    log_format: Literal["text", "json"] | None,
) -> None:
    """Responder: incident playbook matching and execution.

    Selects the response playbook for an incident and drives it step by
    step through advance, skip, retry and abort.
    """
    formatter = OutputFormatter(format=format)
    set_output_format(format)

    try:
        config = load_config(data_dir, {"log_format": log_format})
    except ResponderError as e:
        formatter.error(e.to_structured_error())
        ctx.exit(e.exit_code)

    configure_logging(log_format=config.log_format, quiet=quiet, verbose=verbose)

    ctx.ensure_object(dict)
    ctx.obj = {
        "format": format,
        "formatter": formatter,
        "config": config,
        "firm_id": firm_id or config.default_firm,
        "user_id": user_id,
        "service": ResponderService.from_config(config),
    }


# Register command groups
cli.add_command(playbook)
cli.add_command(execution)
cli.add_command(incident)


# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_VALIDATION = 2
EXIT_NOT_FOUND = 3
EXIT_CONFLICT = 4


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except Exception as e:
        handle_error(e)


if __name__ == "__main__":
    main()
