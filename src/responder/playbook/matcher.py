"""Playbook matching for incidents.

Candidates are the firm's active playbooks whose trigger conditions
hold for the incident. The winner is picked by, in order:

1. specificity: pinned incident type > category-level > wildcard
2. severity exactness: distance between playbook and incident severity
3. most recently updated
4. playbook ID, so the choice is deterministic
"""

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum

from responder.core import logging as log
from responder.core.errors import ValidationError
from responder.models.playbook import (
    Category,
    Playbook,
    Severity,
    WILDCARD,
    category_for_incident_type,
)
from responder.playbook.catalog import PlaybookCatalog


class Specificity(IntEnum):
    """How precisely a playbook's trigger names the incident type."""

    WILDCARD = 0
    CATEGORY = 1
    PINNED = 2


@dataclass
class MatchCandidate:
    """A playbook whose trigger conditions hold, with its ranking."""

    playbook: Playbook
    specificity: Specificity
    severity_distance: int

    @property
    def sort_key(self) -> tuple[int, int, datetime, str]:
        return (
            self.specificity,
            -self.severity_distance,
            self.playbook.updated_at,
            str(self.playbook.id),
        )

    def to_json_dict(self) -> dict:
        return {
            "playbook_id": str(self.playbook.id),
            "name": self.playbook.name,
            "specificity": self.specificity.name.lower(),
            "severity_distance": self.severity_distance,
            "updated_at": self.playbook.updated_at.isoformat(),
        }


class Matcher:
    """Selects the most specific applicable playbook for an incident."""

    def __init__(self, catalog: PlaybookCatalog) -> None:
        self.catalog = catalog

    def match(
        self,
        incident_type: str,
        severity: Severity | str,
        firm_id: str,
        *,
        category: Category | str | None = None,
        tags: list[str] | None = None,
    ) -> Playbook | None:
        """Pick the best playbook, or None when nothing applies.

        Args:
            incident_type: Incident type, e.g. ``ransomware``
            severity: Incident severity
            firm_id: Firm whose playbooks are considered
            category: Incident category (derived from the type when omitted)
            tags: Incident tags checked against trigger tag requirements
        """
        candidates = self.explain(
            incident_type, severity, firm_id, category=category, tags=tags
        )
        if not candidates:
            log.debug(f"No playbook matches incident type '{incident_type}'", firm_id=firm_id)
            return None

        best = candidates[0]
        log.debug(
            f"Matched playbook '{best.playbook.name}' for incident type '{incident_type}'",
            playbook_id=best.playbook.id,
            specificity=best.specificity.name.lower(),
            candidates=len(candidates),
        )
        return best.playbook

    def explain(
        self,
        incident_type: str,
        severity: Severity | str,
        firm_id: str,
        *,
        category: Category | str | None = None,
        tags: list[str] | None = None,
    ) -> list[MatchCandidate]:
        """Rank every applicable playbook, best first."""
        severity = _coerce(Severity, severity, "severity")
        incident_type = incident_type.strip().lower()
        incident_category = (
            _coerce(Category, category, "category") if category is not None
            else category_for_incident_type(incident_type)
        )
        incident_tags = {t.strip().lower() for t in tags or []}

        candidates = []
        for playbook in self.catalog.list(firm_id, is_active=True):
            specificity = _type_specificity(playbook, incident_type, incident_category)
            if specificity is None:
                continue
            if not _severity_allowed(playbook, severity):
                continue
            required_tags = {t.strip().lower() for t in playbook.trigger_conditions.tags}
            if not required_tags <= incident_tags:
                continue
            candidates.append(
                MatchCandidate(
                    playbook=playbook,
                    specificity=specificity,
                    severity_distance=abs(playbook.severity.rank - severity.rank),
                )
            )

        candidates.sort(key=lambda c: c.sort_key, reverse=True)
        return candidates


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError.for_field(
            field, f"Must be one of: {', '.join(e.value for e in enum_cls)}"
        ) from None


def _type_specificity(
    playbook: Playbook, incident_type: str, incident_category: Category
) -> Specificity | None:
    trigger = playbook.trigger_conditions
    pinned = {t.strip().lower() for t in trigger.incident_types} - {WILDCARD}

    if trigger.is_pinned and incident_type in pinned:
        return Specificity.PINNED
    if trigger.is_wildcard:
        return Specificity.WILDCARD
    if not trigger.incident_types and playbook.category == incident_category:
        return Specificity.CATEGORY
    return None


def _severity_allowed(playbook: Playbook, severity: Severity) -> bool:
    trigger = playbook.trigger_conditions
    if trigger.severities and severity not in trigger.severities:
        return False
    if trigger.min_severity is not None and severity.rank < trigger.min_severity.rank:
        return False
    return True
