"""CLI commands for managing and matching playbooks."""

from pathlib import Path
from typing import Any

import click
import yaml

from responder.cli.common import fail, get_formatter, get_service, require_firm
from responder.core.errors import ResponderError, ValidationError
from responder.models.playbook import Category, Severity

PLAYBOOK_COLUMNS = ["id", "name", "category", "severity", "version", "is_active"]


@click.group()
def playbook() -> None:
    """Manage incident response playbooks.

    Playbooks are linear lists of response steps, selected for an
    incident by category, type and severity.
    """
    pass


@playbook.command("list")
@click.option(
    "--category",
    "-c",
    type=click.Choice([c.value for c in Category]),
    help="Only playbooks of this category",
)
@click.option(
    "--severity",
    "-s",
    type=click.Choice([s.value for s in Severity]),
    help="Only playbooks of this severity",
)
@click.option("--active/--inactive", "is_active", default=None, help="Filter on the active flag")
@click.pass_context
def list_playbooks(
    ctx: click.Context,
    category: str | None,
    severity: str | None,
    is_active: bool | None,
) -> None:
    """List the firm's playbooks."""
    firm_id = require_firm(ctx)
    try:
        playbooks = get_service(ctx).list_playbooks(
            firm_id, category=category, severity=severity, is_active=is_active
        )
    except ResponderError as e:
        fail(ctx, e)

    get_formatter(ctx).records(playbooks, columns=PLAYBOOK_COLUMNS, title="Playbooks")


@playbook.command("show")
@click.argument("playbook_id")
@click.pass_context
def show_playbook(ctx: click.Context, playbook_id: str) -> None:
    """Show a playbook with its steps."""
    firm_id = require_firm(ctx)
    try:
        pb = get_service(ctx).get_playbook(firm_id, playbook_id)
    except ResponderError as e:
        fail(ctx, e)

    get_formatter(ctx).output(pb, title=f"Playbook: {pb.name} v{pb.version}")


@playbook.command("import")
@click.argument("source")
@click.option(
    "--var",
    "variables",
    multiple=True,
    help="Variable substitution in KEY=VALUE format",
)
@click.pass_context
def import_playbooks(ctx: click.Context, source: str, variables: tuple[str, ...]) -> None:
    """Create playbooks from a YAML file or a directory of YAML files.

    SOURCE may also be a bare name looked up in the playbook_paths
    configured in responder.yaml.

    All files are validated before any playbook is created.
    """
    firm_id = require_firm(ctx)
    try:
        created = get_service(ctx).import_playbooks(
            firm_id,
            source,
            variables=_parse_variables(variables),
            created_by=ctx.obj.get("user_id"),
        )
    except ResponderError as e:
        fail(ctx, e)

    click.echo(f"Imported {len(created)} playbook(s)", err=True)
    get_formatter(ctx).records(created, columns=PLAYBOOK_COLUMNS, title="Imported playbooks")


@playbook.command("update")
@click.argument("playbook_id")
@click.option(
    "--file",
    "patch_file",
    type=click.Path(exists=True, path_type=Path),
    help="YAML file with the fields to change",
)
@click.option("--name", help="New playbook name")
@click.option("--description", help="New description")
@click.option(
    "--escalation",
    "escalation_path",
    multiple=True,
    help="Escalation contact or role (repeat to replace the whole path)",
)
@click.option("--active/--inactive", "is_active", default=None, help="Set the active flag")
@click.pass_context
def update_playbook(
    ctx: click.Context,
    playbook_id: str,
    patch_file: Path | None,
    name: str | None,
    description: str | None,
    escalation_path: tuple[str, ...],
    is_active: bool | None,
) -> None:
    """Change a playbook.

    Steps, category, severity and trigger conditions are frozen while
    the playbook has active executions.
    """
    firm_id = require_firm(ctx)
    try:
        patch = _load_patch(patch_file)
        if name is not None:
            patch["name"] = name
        if description is not None:
            patch["description"] = description
        if escalation_path:
            patch["escalation_path"] = list(escalation_path)
        if is_active is not None:
            patch["is_active"] = is_active

        pb = get_service(ctx).update_playbook(firm_id, playbook_id, patch)
    except ResponderError as e:
        fail(ctx, e)

    get_formatter(ctx).output(pb, title=f"Playbook: {pb.name} v{pb.version}")


@playbook.command("delete")
@click.argument("playbook_id")
@click.pass_context
def delete_playbook(ctx: click.Context, playbook_id: str) -> None:
    """Delete a playbook that no execution references."""
    firm_id = require_firm(ctx)
    try:
        deleted = get_service(ctx).delete_playbook(firm_id, playbook_id)
    except ResponderError as e:
        fail(ctx, e)

    get_formatter(ctx).output({"playbook_id": playbook_id, "deleted": deleted})


@playbook.command("match")
@click.option("--type", "-t", "incident_type", required=True, help="Incident type, e.g. ransomware")
@click.option(
    "--severity",
    "-s",
    required=True,
    type=click.Choice([s.value for s in Severity]),
    help="Incident severity",
)
@click.option(
    "--category",
    "-c",
    type=click.Choice([c.value for c in Category]),
    help="Incident category (derived from the type when omitted)",
)
@click.option("--tag", "tags", multiple=True, help="Incident tag (can be repeated)")
@click.option("--explain", is_flag=True, help="List every applicable playbook with its ranking")
@click.pass_context
def match_playbook(
    ctx: click.Context,
    incident_type: str,
    severity: str,
    category: str | None,
    tags: tuple[str, ...],
    explain: bool,
) -> None:
    """Find the playbook that applies to an incident."""
    firm_id = require_firm(ctx)
    formatter = get_formatter(ctx)
    service = get_service(ctx)

    try:
        if explain:
            candidates = service.explain_match(
                incident_type, severity, firm_id, category=category, tags=list(tags)
            )
            formatter.records(
                [c.to_json_dict() for c in candidates],
                columns=["playbook_id", "name", "specificity", "severity_distance"],
                title="Match candidates",
            )
            return

        pb = service.match_playbook(
            incident_type, severity, firm_id, category=category, tags=list(tags)
        )
    except ResponderError as e:
        fail(ctx, e)

    if pb is None:
        click.echo(f"No playbook matches incident type '{incident_type}'", err=True)
        formatter.output({"match": None})
        return

    formatter.output(pb, title=f"Matched: {pb.name}")


@playbook.command("stats")
@click.argument("playbook_id")
@click.pass_context
def playbook_stats(ctx: click.Context, playbook_id: str) -> None:
    """Show execution statistics for a playbook."""
    firm_id = require_firm(ctx)
    try:
        stats = get_service(ctx).get_playbook_stats(firm_id, playbook_id)
    except ResponderError as e:
        fail(ctx, e)

    get_formatter(ctx).output(stats, title="Playbook statistics")


def _parse_variables(variables: tuple[str, ...]) -> dict[str, str]:
    var_dict = {}
    for var in variables:
        if "=" in var:
            key, value = var.split("=", 1)
            var_dict[key] = value
    return var_dict


def _load_patch(path: Path | None) -> dict[str, Any]:
    if path is None:
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValidationError.for_field("file", f"YAML parse error: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError.for_field("file", "Patch must be a YAML object")
    return data
