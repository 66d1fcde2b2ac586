"""Incident reference CLI commands."""

import click

from responder.cli.common import fail, get_formatter, get_service, require_firm
from responder.core.errors import ResponderError
from responder.models.incident import Incident
from responder.models.playbook import Category, Severity


@click.group()
def incident() -> None:
    """Register incidents that playbooks can run against."""
    pass


@incident.command("register")
@click.argument("incident_id")
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
@click.option("--tag", "tags", multiple=True, help="Classification tag (can be repeated)")
@click.option("--title", help="Short description")
@click.pass_context
def register(
    ctx: click.Context,
    incident_id: str,
    incident_type: str,
    severity: str,
    category: str | None,
    tags: tuple[str, ...],
    title: str | None,
) -> None:
    """Register or replace an incident reference."""
    firm_id = require_firm(ctx)
    service = get_service(ctx)

    registered = service.register_incident(
        Incident(
            id=incident_id,
            firm_id=firm_id,
            incident_type=incident_type,
            severity=Severity(severity),
            category=Category(category) if category else None,
            tags=list(tags),
            title=title,
        )
    )
    get_formatter(ctx).output(registered.to_json_dict())


@incident.command("show")
@click.argument("incident_id")
@click.pass_context
def show(ctx: click.Context, incident_id: str) -> None:
    """Show a registered incident."""
    firm_id = require_firm(ctx)
    try:
        found = get_service(ctx).get_incident(firm_id, incident_id)
    except ResponderError as e:
        fail(ctx, e)

    get_formatter(ctx).output(found.to_json_dict(), title=f"Incident {incident_id}")


@incident.command("list")
@click.pass_context
def list_incidents(ctx: click.Context) -> None:
    """List registered incidents."""
    firm_id = require_firm(ctx)
    get_formatter(ctx).records(
        [i.to_json_dict() for i in get_service(ctx).list_incidents(firm_id)],
        columns=["id", "incident_type", "severity", "title"],
        title="Incidents",
    )


@incident.command("remove")
@click.argument("incident_id")
@click.pass_context
def remove(ctx: click.Context, incident_id: str) -> None:
    """Forget an incident reference; its executions are kept."""
    firm_id = require_firm(ctx)
    try:
        removed = get_service(ctx).remove_incident(firm_id, incident_id)
    except ResponderError as e:
        fail(ctx, e)

    get_formatter(ctx).output({"incident_id": incident_id, "removed": removed})
