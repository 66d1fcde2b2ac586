import json

import pytest
from click.testing import CliRunner

from responder.cli.main import cli

PLAYBOOK_YAML = """
name: Ransomware containment
category: security
severity: high
trigger_conditions:
  incident_types: [ransomware]
escalation_path: [${ONCALL:-soc}]
steps:
  - name: Isolate host
    action_type: containment
  - name: Notify legal
    action_type: manual
"""


@pytest.fixture
def invoke(tmp_path):
    runner = CliRunner()

    def run(*args):
        return runner.invoke(
            cli, ["--data-dir", str(tmp_path), "--firm", "firm-a", "--user", "alice", "-q", *args]
        )

    return run


def last_json(result):
    lines = [line for line in result.stdout.splitlines() if line.strip()]
    return json.loads(lines[-1])


@pytest.fixture
def playbook_id(invoke, tmp_path):
    path = tmp_path / "ransomware.yaml"
    path.write_text(PLAYBOOK_YAML, encoding="utf-8")
    result = invoke("playbook", "import", str(path), "--var", "ONCALL=ciso")
    assert result.exit_code == 0, result.output
    [created] = last_json(result)
    return created["id"]


def test_import_and_list(invoke, playbook_id):
    result = invoke("playbook", "list")

    assert result.exit_code == 0
    [listed] = last_json(result)
    assert listed["id"] == playbook_id
    assert listed["escalation_path"] == ["ciso"]
    assert listed["created_by"] == "alice"


def test_match(invoke, playbook_id):
    result = invoke("playbook", "match", "--type", "ransomware", "--severity", "critical")

    assert result.exit_code == 0
    assert last_json(result)["id"] == playbook_id

    result = invoke("playbook", "match", "--type", "phishing", "--severity", "low")
    assert last_json(result) == {"match": None}


def test_execution_lifecycle(invoke, playbook_id):
    result = invoke("incident", "register", "inc-1", "--type", "ransomware", "--severity", "high")
    assert result.exit_code == 0, result.output

    result = invoke("execution", "start", "inc-1", "--match")
    assert result.exit_code == 0, result.output
    execution = last_json(result)
    assert execution["playbook_id"] == playbook_id
    assert execution["status"] == "running"
    assert execution["started_by"] == "alice"

    result = invoke("execution", "advance", execution["id"], "--success", "--data", '{"host": "fs01"}')
    assert last_json(result)["current_step_index"] == 2

    result = invoke("execution", "advance", execution["id"], "--failure", "--error", "legal unreachable")
    assert last_json(result)["status"] == "step_failed"

    result = invoke("execution", "skip", execution["id"], "--reason", "legal informed by phone")
    assert last_json(result)["status"] == "completed"

    result = invoke("execution", "history", "inc-1")
    assert [e["id"] for e in last_json(result)] == [execution["id"]]

    result = invoke("playbook", "stats", playbook_id)
    assert last_json(result)["by_status"]["completed"] == 1


def test_conflict_exit_code(invoke, playbook_id):
    invoke("incident", "register", "inc-1", "--type", "ransomware", "--severity", "high")
    execution = last_json(invoke("execution", "start", "inc-1", "--playbook", playbook_id))
    invoke("execution", "abort", execution["id"], "--reason", "false positive")

    result = invoke("execution", "advance", execution["id"], "--success")

    assert result.exit_code == 4
    assert last_json(result)["code"] == "CONFLICT"


def test_not_found_exit_code(invoke):
    result = invoke("playbook", "show", "00000000-0000-0000-0000-000000000000")

    assert result.exit_code == 3
    error = last_json(result)
    assert error["code"] == "NOT_FOUND"
    assert error["retryable"] is False


def test_validation_exit_code(invoke, tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("name: Broken\ncategory: security\nseverity: high\nsteps: []\n", encoding="utf-8")

    result = invoke("playbook", "import", str(path))

    assert result.exit_code == 2
    error = last_json(result)
    assert error["code"] == "VALIDATION_ERROR"
    assert error["context"]["errors"][0]["field"] == "steps"


def test_firm_is_required(tmp_path):
    result = CliRunner().invoke(
        cli, ["--data-dir", str(tmp_path), "playbook", "list"], env={"RESPONDER_FIRM": None}
    )

    assert result.exit_code == 2
    assert "No firm given" in result.output


def test_human_output(invoke, playbook_id):
    result = invoke("-f", "human", "playbook", "list")

    assert result.exit_code == 0
    assert "Ransomware containment" in result.stdout
    assert "Total: 1 records" in result.stdout

    result = invoke("-f", "human", "playbook", "show", playbook_id)
    assert "Playbook: Ransomware containment v1" in result.stdout
    assert "escalation_path:" in result.stdout
