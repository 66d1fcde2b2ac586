import pytest

from conftest import FIRM, OTHER_FIRM, make_definition
from responder.core.errors import NotFoundError, ValidationError
from responder.models.incident import Incident
from responder.models.playbook import Category, Severity, category_for_incident_type
from responder.playbook.matcher import Specificity


def create(service, name, **overrides):
    return service.create_playbook(FIRM, make_definition(name=name, **overrides))


def test_incident_type_taxonomy():
    assert category_for_incident_type("Ransomware") == Category.SECURITY
    assert category_for_incident_type("ddos") == Category.AVAILABILITY
    assert category_for_incident_type("meteor_strike") == Category.OTHER


def test_pinned_type_beats_category_level(service):
    pinned = create(service, "Pinned", severity="low")
    create(service, "Category", severity="high", trigger_conditions={})

    assert service.match_playbook("ransomware", "high", FIRM).id == pinned.id


def test_category_level_beats_wildcard(service):
    category = create(service, "Category", trigger_conditions={})
    create(service, "Catch-all", category="other", trigger_conditions={"incident_types": ["*"]})

    assert service.match_playbook("malware", Severity.HIGH, FIRM).id == category.id


def test_closer_severity_wins(service):
    create(service, "Critical", severity="critical")
    medium = create(service, "Medium", severity="medium")
    create(service, "Low", severity="low")

    assert service.match_playbook("ransomware", "medium", FIRM).id == medium.id


def test_most_recently_updated_wins_tie(service):
    first = create(service, "First")
    create(service, "Second")
    service.update_playbook(FIRM, first.id, {"description": "Refreshed"})

    assert service.match_playbook("ransomware", "high", FIRM).id == first.id


def test_wildcard_matches_unknown_types(service):
    catch_all = create(
        service, "Catch-all", category="other", trigger_conditions={"incident_types": ["*"]}
    )

    assert service.match_playbook("meteor_strike", "low", FIRM).id == catch_all.id


def test_inactive_and_foreign_playbooks_are_ignored(service):
    create(service, "Inactive", is_active=False)
    service.create_playbook(OTHER_FIRM, make_definition(name="Foreign"))

    assert service.match_playbook("ransomware", "high", FIRM) is None


def test_severity_conditions(service):
    create(
        service,
        "Serious only",
        trigger_conditions={"incident_types": ["ransomware"], "min_severity": "high"},
    )
    create(
        service,
        "Low only",
        category="data",
        trigger_conditions={"incident_types": ["data_leak"], "severities": ["low"]},
    )

    assert service.match_playbook("ransomware", "medium", FIRM) is None
    assert service.match_playbook("ransomware", "critical", FIRM).name == "Serious only"
    assert service.match_playbook("data_leak", "high", FIRM) is None
    assert service.match_playbook("data_leak", "low", FIRM).name == "Low only"


def test_required_tags(service):
    create(
        service,
        "Production",
        trigger_conditions={"incident_types": ["ransomware"], "tags": ["prod"]},
    )

    assert service.match_playbook("ransomware", "high", FIRM) is None
    assert service.match_playbook("ransomware", "high", FIRM, tags=["PROD", "eu"]).name == "Production"


def test_explicit_category_overrides_taxonomy(service):
    fraud = create(service, "Fraud desk", category="fraud", trigger_conditions={})

    assert service.match_playbook("ransomware", "high", FIRM) is None
    assert service.match_playbook("ransomware", "high", FIRM, category="fraud").id == fraud.id


def test_explain_ranks_candidates(service):
    create(service, "Category", trigger_conditions={})
    create(service, "Pinned")
    create(service, "Catch-all", trigger_conditions={"incident_types": ["*"]})

    candidates = service.explain_match("ransomware", "high", FIRM)

    assert [c.playbook.name for c in candidates] == ["Pinned", "Category", "Catch-all"]
    assert [c.specificity for c in candidates] == [
        Specificity.PINNED,
        Specificity.CATEGORY,
        Specificity.WILDCARD,
    ]
    assert candidates[0].to_json_dict()["specificity"] == "pinned"


def test_invalid_severity(service):
    with pytest.raises(ValidationError):
        service.match_playbook("ransomware", "urgent", FIRM)


def test_match_registered_incident(service):
    pinned = create(service, "Pinned")
    service.register_incident(
        Incident(id="inc-9", firm_id=FIRM, incident_type="ransomware", severity=Severity.HIGH)
    )

    assert service.match_incident(FIRM, "inc-9").id == pinned.id
    with pytest.raises(NotFoundError):
        service.match_incident(OTHER_FIRM, "inc-9")
