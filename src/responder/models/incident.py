"""Minimal incident reference used for matching and execution checks."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from responder.models.playbook import Category, Severity


class Incident(BaseModel):
    """Reference to an incident owned by an external incident system."""

    id: str = Field(..., min_length=1, description="Incident identifier")
    firm_id: str = Field(..., min_length=1, description="Owning tenant")
    incident_type: str = Field(..., min_length=1, description="Incident type, e.g. ransomware")
    severity: Severity = Field(..., description="Incident severity")
    category: Category | None = Field(
        default=None, description="Explicit category (derived from type when absent)"
    )
    tags: list[str] = Field(default_factory=list, description="Classification tags")
    title: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
