"""Playbook models for incident response procedures.

A playbook is a firm-owned, versioned, linear list of response steps
together with the trigger conditions used to pick it for an incident.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Ordered incident severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Position in the low < medium < high < critical ordering."""
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class Category(str, Enum):
    """Incident classification a playbook responds to."""

    SECURITY = "security"
    AVAILABILITY = "availability"
    DATA = "data"
    COMPLIANCE = "compliance"
    INFRASTRUCTURE = "infrastructure"
    APPLICATION = "application"
    FRAUD = "fraud"
    OTHER = "other"


class ActionType(str, Enum):
    """Kind of side effect a step performs.

    MANUAL steps are never dispatched; they wait for an operator
    to report the outcome.
    """

    MANUAL = "manual"
    NOTIFICATION = "notification"
    ALERT = "alert"
    SCRIPT = "script"
    TASK = "task"
    WEBHOOK = "webhook"
    APPROVAL = "approval"
    CONTAINMENT = "containment"
    EVIDENCE_COLLECTION = "evidence_collection"


WILDCARD = "*"

INCIDENT_TYPE_CATEGORIES: dict[str, Category] = {
    "ransomware": Category.SECURITY,
    "malware": Category.SECURITY,
    "phishing": Category.SECURITY,
    "unauthorized_access": Category.SECURITY,
    "brute_force": Category.SECURITY,
    "account_compromise": Category.SECURITY,
    "insider_threat": Category.SECURITY,
    "ddos": Category.AVAILABILITY,
    "outage": Category.AVAILABILITY,
    "degradation": Category.AVAILABILITY,
    "data_leak": Category.DATA,
    "data_loss": Category.DATA,
    "data_corruption": Category.DATA,
    "policy_violation": Category.COMPLIANCE,
    "regulatory_breach": Category.COMPLIANCE,
    "hardware_failure": Category.INFRASTRUCTURE,
    "network_failure": Category.INFRASTRUCTURE,
    "deployment_failure": Category.APPLICATION,
    "application_error": Category.APPLICATION,
    "payment_fraud": Category.FRAUD,
    "identity_fraud": Category.FRAUD,
}


def category_for_incident_type(incident_type: str) -> Category:
    """Resolve the category of a well-known incident type."""
    return INCIDENT_TYPE_CATEGORIES.get(incident_type.strip().lower(), Category.OTHER)


class TriggerConditions(BaseModel):
    """Predicate over incident attributes used for matching."""

    incident_types: list[str] = Field(
        default_factory=list,
        description="Exact incident types; empty matches the playbook category, '*' matches anything",
    )
    severities: list[Severity] = Field(
        default_factory=list, description="Accepted severities (empty accepts all)"
    )
    min_severity: Severity | None = Field(
        default=None, description="Lowest accepted severity"
    )
    tags: list[str] = Field(
        default_factory=list, description="Tags the incident must all carry"
    )

    @property
    def is_pinned(self) -> bool:
        """Whether the conditions name concrete incident types."""
        return any(t != WILDCARD for t in self.incident_types)

    @property
    def is_wildcard(self) -> bool:
        return WILDCARD in self.incident_types


class PlaybookStep(BaseModel):
    """A single step in a playbook."""

    index: int = Field(..., ge=1, description="1-based position in the playbook")
    name: str = Field(..., min_length=1, description="Human-readable step name")
    action_type: ActionType = Field(..., description="Side effect performed by the step")
    action_params: dict[str, Any] = Field(
        default_factory=dict, description="Action parameters"
    )
    timeout_seconds: int | None = Field(
        default=None, description="Advisory step timeout in seconds"
    )
    retryable: bool = Field(default=False, description="Whether a failure may be retried")
    max_retries: int = Field(default=0, ge=0, description="Attempt budget for the step")
    description: str | None = Field(default=None, description="Detailed step description")

    def attempts_remain(self, attempt: int) -> bool:
        """Check whether another attempt is allowed after ``attempt`` failed."""
        return self.retryable and attempt < self.max_retries


class Playbook(BaseModel):
    """A firm-owned incident response procedure."""

    id: UUID = Field(default_factory=uuid4, description="Unique playbook identifier")
    firm_id: str = Field(..., min_length=1, description="Owning tenant")
    name: str = Field(..., min_length=1, description="Human-readable playbook name")
    description: str = Field(default="", description="Playbook purpose and scope")
    category: Category = Field(..., description="Incident classification")
    severity: Severity = Field(..., description="Severity the playbook is written for")
    trigger_conditions: TriggerConditions = Field(
        default_factory=TriggerConditions, description="Matching predicate"
    )
    steps: list[PlaybookStep] = Field(..., min_length=1, description="Ordered steps")
    escalation_path: list[str] = Field(
        default_factory=list, description="Contacts or roles notified on abort/exhaustion"
    )
    is_active: bool = Field(default=True, description="Gate on matching and manual start")
    version: int = Field(default=1, ge=1, description="Incremented on every change")
    created_by: str | None = Field(default=None, description="User that created the playbook")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_json_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return self.model_dump(mode="json")
