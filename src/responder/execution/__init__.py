"""Playbook execution: the state machine and its collaborators."""

from responder.execution.dispatcher import (
    EscalationEvent,
    EscalationNotifier,
    JsonlEscalationNotifier,
    LogEscalationNotifier,
    NullDispatcher,
    RegistryDispatcher,
    StepActionDispatcher,
    StepContext,
)
from responder.execution.engine import ExecutionEngine

__all__ = [
    "EscalationEvent",
    "EscalationNotifier",
    "ExecutionEngine",
    "JsonlEscalationNotifier",
    "LogEscalationNotifier",
    "NullDispatcher",
    "RegistryDispatcher",
    "StepActionDispatcher",
    "StepContext",
]
