import pytest

from conftest import FIRM, OTHER_FIRM, make_definition
from responder.core.errors import ConflictError, NotFoundError, ValidationError
from responder.models.playbook import ActionType, Category, Severity


def test_create_assigns_indices_and_defaults(service):
    pb = service.create_playbook(FIRM, make_definition(), created_by="alice")

    assert [s.index for s in pb.steps] == [1, 2, 3]
    assert pb.version == 1
    assert pb.is_active is True
    assert pb.created_by == "alice"
    assert pb.steps[0].action_type == ActionType.MANUAL
    assert service.get_playbook(FIRM, pb.id) == pb


def test_create_reports_every_invalid_field(service):
    definition = make_definition(
        name="",
        category="weather",
        steps=[
            {"index": 1, "name": "First", "action_type": "manual"},
            {"index": 3, "name": "Second", "action_type": "teleport"},
        ],
    )

    with pytest.raises(ValidationError) as exc_info:
        service.create_playbook(FIRM, definition)

    fields = exc_info.value.fields
    assert "name" in fields
    assert "category" in fields
    assert "steps.2.index" in fields
    assert "steps.2.action_type" in fields
    assert exc_info.value.exit_code == 2


def test_create_rejects_empty_steps_and_unknown_fields(service):
    with pytest.raises(ValidationError) as exc_info:
        service.create_playbook(FIRM, make_definition(steps=[], owner="bob"))

    assert set(exc_info.value.fields) == {"owner", "steps"}


def test_step_retry_fields_are_validated(service):
    steps = [{"name": "Scan", "action_type": "script", "max_retries": -1, "timeout_seconds": 0}]

    with pytest.raises(ValidationError) as exc_info:
        service.create_playbook(FIRM, make_definition(steps=steps))

    assert set(exc_info.value.fields) == {"steps.1.max_retries", "steps.1.timeout_seconds"}


def test_other_firm_cannot_see_playbook(service, playbook):
    with pytest.raises(NotFoundError):
        service.get_playbook(OTHER_FIRM, playbook.id)

    assert service.list_playbooks(OTHER_FIRM) == []


def test_malformed_id_is_not_found(service):
    with pytest.raises(NotFoundError):
        service.get_playbook(FIRM, "not-a-uuid")


def test_list_filters(service, playbook):
    service.create_playbook(
        FIRM,
        make_definition(name="DDoS mitigation", category="availability", severity="critical"),
    )
    service.create_playbook(FIRM, make_definition(name="Archived", is_active=False))

    names = [p.name for p in service.list_playbooks(FIRM)]
    assert names == ["Archived", "DDoS mitigation", "Ransomware containment"]

    availability = service.list_playbooks(FIRM, category=Category.AVAILABILITY)
    assert [p.name for p in availability] == ["DDoS mitigation"]

    high = service.list_playbooks(FIRM, severity="high", is_active=True)
    assert [p.name for p in high] == ["Ransomware containment"]

    with pytest.raises(ValidationError):
        service.list_playbooks(FIRM, severity="urgent")


def test_update_bumps_version(service, playbook):
    updated = service.update_playbook(
        FIRM, playbook.id, {"description": "Updated", "severity": "critical"}
    )

    assert updated.version == 2
    assert updated.severity == Severity.CRITICAL
    assert updated.updated_at >= playbook.updated_at
    assert service.get_playbook(FIRM, playbook.id).description == "Updated"


def test_update_without_changes_keeps_version(service, playbook):
    updated = service.update_playbook(FIRM, playbook.id, {"name": playbook.name})

    assert updated.version == 1


def test_update_rejects_id_and_firm_changes(service, playbook):
    with pytest.raises(ValidationError) as exc_info:
        service.update_playbook(FIRM, playbook.id, {"firm_id": OTHER_FIRM, "version": 9})

    assert set(exc_info.value.fields) == {"firm_id", "version"}


def test_steps_frozen_while_execution_active(service, playbook, incident):
    service.start_execution(FIRM, incident.id, playbook.id, "alice")

    with pytest.raises(ConflictError) as exc_info:
        service.update_playbook(
            FIRM, playbook.id, {"steps": [{"name": "Only step", "action_type": "manual"}]}
        )
    assert exc_info.value.error.context["fields"] == ["steps"]

    renamed = service.update_playbook(
        FIRM, playbook.id, {"name": "Ransomware v2", "escalation_path": ["soc"]}
    )
    assert renamed.name == "Ransomware v2"
    assert renamed.version == 2


def test_delete_unreferenced_playbook(service, playbook):
    assert service.delete_playbook(FIRM, playbook.id) is True

    with pytest.raises(NotFoundError):
        service.get_playbook(FIRM, playbook.id)


def test_delete_referenced_playbook_conflicts(service, playbook, incident):
    execution = service.start_execution(FIRM, incident.id, playbook.id, "alice")
    service.abort_execution(FIRM, execution.id, "alice", "false positive")

    with pytest.raises(ConflictError):
        service.delete_playbook(FIRM, playbook.id)

    deactivated = service.update_playbook(FIRM, playbook.id, {"is_active": False})
    assert deactivated.is_active is False
