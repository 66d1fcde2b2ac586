import pytest

from responder.execution.dispatcher import EscalationNotifier
from responder.models.incident import Incident
from responder.models.playbook import Severity
from responder.service import ResponderService

FIRM = "firm-a"
OTHER_FIRM = "firm-b"


def make_definition(**overrides):
    definition = {
        "name": "Ransomware containment",
        "description": "Isolate, collect evidence, notify",
        "category": "security",
        "severity": "high",
        "trigger_conditions": {"incident_types": ["ransomware"]},
        "steps": [
            {"name": "Isolate host", "action_type": "manual"},
            {
                "name": "Collect evidence",
                "action_type": "manual",
                "retryable": True,
                "max_retries": 2,
            },
            {"name": "Notify legal", "action_type": "manual"},
        ],
        "escalation_path": ["ciso", "legal"],
    }
    definition.update(overrides)
    return definition


class RecordingNotifier(EscalationNotifier):
    """Collects escalation events instead of delivering them."""

    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(notifier):
    return ResponderService.in_memory(notifier=notifier)


@pytest.fixture
def incident(service):
    return service.register_incident(
        Incident(id="inc-1", firm_id=FIRM, incident_type="ransomware", severity=Severity.HIGH)
    )


@pytest.fixture
def playbook(service):
    return service.create_playbook(FIRM, make_definition(), created_by="alice")
