"""Pydantic models for Responder."""

from responder.models.error import FieldError, StructuredError
from responder.models.execution import (
    Execution,
    ExecutionStatus,
    PlaybookStats,
    StepOutcome,
    StepResult,
)
from responder.models.incident import Incident
from responder.models.playbook import (
    ActionType,
    Category,
    Playbook,
    PlaybookStep,
    Severity,
    TriggerConditions,
)

__all__ = [
    "ActionType",
    "Category",
    "Execution",
    "ExecutionStatus",
    "FieldError",
    "Incident",
    "Playbook",
    "PlaybookStats",
    "PlaybookStep",
    "Severity",
    "StepOutcome",
    "StepResult",
    "StructuredError",
    "TriggerConditions",
]
