import pytest

from conftest import FIRM
from responder.core.errors import NotFoundError, ValidationError
from responder.playbook.loader import PlaybookLoader
from responder.service import ResponderService
from responder.storage import (
    InMemoryDatabase,
    InMemoryExecutionStore,
    InMemoryIncidentDirectory,
    InMemoryPlaybookStore,
)

RANSOMWARE_YAML = """
name: Ransomware containment
category: security
severity: ${SEVERITY:-high}
trigger_conditions:
  incident_types: [ransomware]
escalation_path:
  - ${ONCALL}
steps:
  - name: Isolate host
    action_type: containment
    action_params:
      host: ${HOST}
  - name: Notify legal
    action_type: notification
author: ignored by the loader
"""

BROKEN_YAML = """
name: Broken
category: security
severity: high
steps:
  - name: Mystery
    action_type: teleport
"""


def write(path, content):
    path.write_text(content, encoding="utf-8")
    return path


def test_load_file_substitutes_variables(tmp_path):
    path = write(tmp_path / "ransomware.yaml", RANSOMWARE_YAML)

    definition = PlaybookLoader().load(str(path), {"ONCALL": "soc-lead", "HOST": "fs01"})

    assert definition["severity"] == "high"
    assert definition["escalation_path"] == ["soc-lead"]
    assert definition["steps"][0]["action_params"] == {"host": "fs01"}
    assert "author" not in definition


def test_load_by_name_from_search_paths(tmp_path):
    write(tmp_path / "ransomware.yml", RANSOMWARE_YAML)

    definition = PlaybookLoader([tmp_path]).load("ransomware", {"SEVERITY": "critical"})

    assert definition["severity"] == "critical"

    with pytest.raises(NotFoundError):
        PlaybookLoader([tmp_path]).load("phishing")


def test_invalid_file_reports_fields(tmp_path):
    path = write(tmp_path / "broken.yaml", BROKEN_YAML)

    with pytest.raises(ValidationError) as exc_info:
        PlaybookLoader().load_file(path)

    assert exc_info.value.fields == ["steps.1.action_type"]


def test_yaml_syntax_error(tmp_path):
    path = write(tmp_path / "bad.yaml", "name: [unclosed\n")

    with pytest.raises(ValidationError) as exc_info:
        PlaybookLoader().load_file(path)

    assert exc_info.value.fields == ["file"]


def test_directory_errors_are_collected_per_file(tmp_path):
    write(tmp_path / "a_broken.yaml", BROKEN_YAML)
    write(tmp_path / "b_ransomware.yaml", RANSOMWARE_YAML)
    write(tmp_path / "notes.txt", "not a playbook")

    with pytest.raises(ValidationError) as exc_info:
        PlaybookLoader().load_directory(tmp_path)

    assert exc_info.value.fields == ["a_broken.yaml:steps.1.action_type"]


def test_import_creates_nothing_when_a_file_is_invalid(tmp_path, service):
    write(tmp_path / "a_broken.yaml", BROKEN_YAML)
    write(tmp_path / "b_ransomware.yaml", RANSOMWARE_YAML)

    with pytest.raises(ValidationError):
        service.import_playbooks(FIRM, tmp_path, {"ONCALL": "soc", "HOST": "fs01"})

    assert service.list_playbooks(FIRM) == []


def test_import_directory(tmp_path, service):
    write(tmp_path / "ransomware.yaml", RANSOMWARE_YAML)
    write(
        tmp_path / "ddos.yaml",
        RANSOMWARE_YAML.replace("Ransomware containment", "DDoS mitigation"),
    )

    created = service.import_playbooks(
        FIRM, tmp_path, {"ONCALL": "soc", "HOST": "lb01"}, created_by="alice"
    )

    assert [p.name for p in created] == ["DDoS mitigation", "Ransomware containment"]
    assert all(p.created_by == "alice" for p in created)
    assert [s.index for s in created[0].steps] == [1, 2]


def test_import_by_name_from_playbook_paths(tmp_path):
    write(tmp_path / "ransomware.yaml", RANSOMWARE_YAML)
    database = InMemoryDatabase()
    service = ResponderService(
        InMemoryPlaybookStore(database),
        InMemoryExecutionStore(database),
        InMemoryIncidentDirectory(database),
        playbook_paths=[tmp_path],
    )

    [created] = service.import_playbooks(FIRM, "ransomware", {"ONCALL": "soc", "HOST": "fs01"})

    assert created.name == "Ransomware containment"
