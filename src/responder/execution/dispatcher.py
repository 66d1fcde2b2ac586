"""Collaborator interfaces invoked by the execution engine.

A StepActionDispatcher performs the side effect of a step. It may
report the outcome immediately or return None, in which case the
outcome arrives later through ``advance_step``.

An EscalationNotifier receives the playbook's escalation path when
an execution is aborted or a step runs out of attempts.
"""

import json
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal
from uuid import UUID

from responder.core import logging as log
from responder.models.execution import Execution, StepOutcome
from responder.models.playbook import ActionType, PlaybookStep


@dataclass
class StepContext:
    """Context provided to a dispatcher for one step attempt."""

    execution_id: UUID
    firm_id: str
    incident_id: str
    playbook_id: UUID
    step: PlaybookStep
    attempt: int

    @classmethod
    def for_execution(cls, execution: Execution) -> "StepContext":
        step = execution.current_step
        if step is None:
            raise ValueError(f"Execution {execution.id} has no current step")
        return cls(
            execution_id=execution.id,
            firm_id=execution.firm_id,
            incident_id=execution.incident_id,
            playbook_id=execution.playbook_id,
            step=step,
            attempt=execution.current_attempt,
        )


class StepActionDispatcher(ABC):
    """Performs the side effect of a playbook step.

    Example:
        class PagerDispatcher(StepActionDispatcher):
            def dispatch(self, context: StepContext) -> StepOutcome | None:
                if context.step.action_type != ActionType.ALERT:
                    return None
                page(context.step.action_params["service"])
                return StepOutcome(success=True, data={"paged": True})
    """

    @abstractmethod
    def dispatch(self, context: StepContext) -> StepOutcome | None:
        """Start the step's action.

        Args:
            context: Step being started and the execution it belongs to

        Returns:
            The outcome if the action finished synchronously, otherwise None
        """
        ...


class NullDispatcher(StepActionDispatcher):
    """Dispatcher that leaves every step waiting for ``advance_step``."""

    def dispatch(self, context: StepContext) -> StepOutcome | None:
        return None


StepHandler = Callable[[StepContext], StepOutcome | None]


class RegistryDispatcher(StepActionDispatcher):
    """Routes steps to handlers registered per action type.

    Steps whose action type has no handler wait for ``advance_step``.
    """

    def __init__(self, handlers: dict[ActionType, StepHandler] | None = None) -> None:
        self._handlers: dict[ActionType, StepHandler] = dict(handlers or {})

    def register(self, action_type: ActionType, handler: StepHandler) -> None:
        self._handlers[ActionType(action_type)] = handler

    def dispatch(self, context: StepContext) -> StepOutcome | None:
        handler = self._handlers.get(context.step.action_type)
        if handler is None:
            return None
        return handler(context)


EscalationReason = Literal["aborted", "retries_exhausted"]


@dataclass
class EscalationEvent:
    """An execution that needs human follow-up."""

    execution_id: UUID
    firm_id: str
    incident_id: str
    playbook_id: UUID
    playbook_name: str
    reason: EscalationReason
    recipients: list[str]
    step_index: int | None = None
    detail: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def for_execution(
        cls, execution: Execution, reason: EscalationReason, detail: str | None = None
    ) -> "EscalationEvent":
        return cls(
            execution_id=execution.id,
            firm_id=execution.firm_id,
            incident_id=execution.incident_id,
            playbook_id=execution.playbook_id,
            playbook_name=execution.playbook_name,
            reason=reason,
            recipients=list(execution.escalation_path),
            step_index=execution.current_step_index or None,
            detail=detail,
        )

    def to_json_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["execution_id"] = str(self.execution_id)
        data["playbook_id"] = str(self.playbook_id)
        data["occurred_at"] = self.occurred_at.isoformat()
        return data


class EscalationNotifier(ABC):
    """Delivers escalation events to the escalation path."""

    @abstractmethod
    def notify(self, event: EscalationEvent) -> None:
        ...


class LogEscalationNotifier(EscalationNotifier):
    """Notifier that only writes a warning to the log."""

    def notify(self, event: EscalationEvent) -> None:
        log.warning(
            f"Escalation for execution {event.execution_id}: {event.reason}",
            recipients=event.recipients,
            incident_id=event.incident_id,
            detail=event.detail,
        )


class JsonlEscalationNotifier(EscalationNotifier):
    """Appends escalation events to a JSONL file for a delivery worker."""

    def __init__(self, path: Path) -> None:
        """Initialize the notifier.

        Args:
            path: JSONL file receiving one event per line
        """
        self.path = Path(path)

    def notify(self, event: EscalationEvent) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event.to_json_dict()) + "\n")
        log.warning(
            f"Escalation queued for execution {event.execution_id}: {event.reason}",
            recipients=event.recipients,
        )

    def get_events(self) -> list[dict[str, Any]]:
        """Read back queued events, skipping unreadable lines."""
        if not self.path.exists():
            return []

        events = []
        with open(self.path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    try:
                        events.append(json.loads(line))
                    except json.JSONDecodeError:
                        continue
        return events
