"""Storage interfaces for playbooks, executions and incident references.

Implementations must make the checks that guard a write atomic with
the write itself:

- ``ExecutionStore.insert`` requires the playbook to still exist at the
  version the execution snapshotted, and at most one active execution
  per incident and playbook.
- ``ExecutionStore.update`` only succeeds when the stored version still
  equals the version the caller read.
- ``PlaybookStore.delete`` refuses playbooks referenced by any
  execution, and ``PlaybookStore.save`` refuses changes to frozen
  fields while an execution is active.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from responder.core.errors import ConflictError
from responder.models.execution import Execution
from responder.models.incident import Incident
from responder.models.playbook import Playbook


class PlaybookStore(ABC):
    """Persistence for playbook definitions."""

    @abstractmethod
    def add(self, playbook: Playbook) -> Playbook:
        """Store a new playbook."""
        ...

    @abstractmethod
    def get(self, playbook_id: UUID) -> Playbook | None:
        """Load a playbook by ID regardless of firm."""
        ...

    @abstractmethod
    def save(self, playbook: Playbook, frozen_fields: list[str] | None = None) -> Playbook:
        """Replace a stored playbook.

        Args:
            playbook: New state of the playbook
            frozen_fields: Changed fields that may not change while an
                execution of the playbook is active

        Raises:
            NotFoundError: If the playbook is not stored
            ConflictError: If ``frozen_fields`` is non-empty and an
                execution of the playbook is active
        """
        ...

    @abstractmethod
    def delete(self, playbook_id: UUID) -> bool:
        """Delete a playbook, returning False if it was not stored.

        Raises:
            ConflictError: If any execution references the playbook
        """
        ...

    @abstractmethod
    def list(self, firm_id: str) -> list[Playbook]:
        """List all playbooks owned by a firm."""
        ...


class ExecutionStore(ABC):
    """Persistence for executions with optimistic concurrency."""

    @abstractmethod
    def insert(self, execution: Execution) -> Execution:
        """Store a new execution at version 1.

        Raises:
            NotFoundError: If the playbook is no longer stored
            ConflictError: If the playbook changed since it was read, or
                an active execution already exists for the same incident
                and playbook
        """
        ...

    @abstractmethod
    def get(self, execution_id: UUID) -> Execution | None:
        """Load an execution by ID regardless of firm."""
        ...

    @abstractmethod
    def update(self, execution: Execution, expected_version: int) -> Execution:
        """Write ``execution`` if the stored version equals ``expected_version``.

        Returns:
            The stored execution with its version incremented

        Raises:
            ConflictError: If the stored version changed since it was read
        """
        ...

    @abstractmethod
    def list_for_incident(self, firm_id: str, incident_id: str) -> list[Execution]:
        """List a firm's executions for an incident, newest first."""
        ...

    @abstractmethod
    def list_for_playbook(self, firm_id: str, playbook_id: UUID) -> list[Execution]:
        """List a firm's executions for a playbook, newest first."""
        ...

    @abstractmethod
    def count_references(self, playbook_id: UUID, active_only: bool = False) -> int:
        """Count executions referencing a playbook."""
        ...

    @abstractmethod
    def find_active(self, incident_id: str, playbook_id: UUID) -> Execution | None:
        """Find the active execution for an incident and playbook, if any."""
        ...


class IncidentDirectory(ABC):
    """Lookup of incident references owned by an external system.

    Incident IDs are only unique within a firm.
    """

    @abstractmethod
    def get(self, firm_id: str, incident_id: str) -> Incident | None:
        """Load a firm's incident reference."""
        ...

    @abstractmethod
    def register(self, incident: Incident) -> Incident:
        """Register or replace an incident reference within its firm."""
        ...

    @abstractmethod
    def remove(self, firm_id: str, incident_id: str) -> bool:
        """Forget an incident reference; executions are kept."""
        ...

    @abstractmethod
    def list(self, firm_id: str) -> list[Incident]:
        """List a firm's incident references."""
        ...


def active_conflict(incident_id: str, playbook_id: UUID, existing_id: UUID | None = None) -> ConflictError:
    """Build the error raised for a duplicate active execution."""
    context = {"incident_id": incident_id, "playbook_id": str(playbook_id)}
    if existing_id is not None:
        context["execution_id"] = str(existing_id)
    return ConflictError(
        f"An active execution of playbook {playbook_id} already exists for incident {incident_id}",
        remediation="Finish or abort the active execution before starting another",
        context=context,
    )


def version_conflict(execution_id: UUID, expected_version: int) -> ConflictError:
    """Build the error raised when a conditional write loses a race."""
    return ConflictError(
        f"Execution {execution_id} was modified concurrently",
        remediation="Re-fetch the execution and retry against its current state",
        retryable=True,
        context={"execution_id": str(execution_id), "expected_version": expected_version},
    )


def playbook_changed(playbook_id: UUID, expected_version: int, stored_version: int) -> ConflictError:
    """Build the error raised when a playbook changed under a starting execution."""
    return ConflictError(
        f"Playbook {playbook_id} changed while the execution was starting",
        remediation="Start the execution again against the current playbook",
        retryable=True,
        context={
            "playbook_id": str(playbook_id),
            "expected_version": expected_version,
            "version": stored_version,
        },
    )


def referenced_conflict(playbook_id: UUID, references: int) -> ConflictError:
    """Build the error raised when deleting a playbook executions refer to."""
    return ConflictError(
        f"Playbook {playbook_id} is referenced by {references} execution(s)",
        remediation="Deactivate the playbook instead of deleting it",
        context={"playbook_id": str(playbook_id), "executions": references},
    )


def frozen_conflict(playbook_id: UUID, fields: list[str]) -> ConflictError:
    """Build the error raised when frozen fields change under active executions."""
    return ConflictError(
        f"Playbook {playbook_id} has active executions; {', '.join(fields)} cannot change",
        remediation="Wait for active executions to finish or abort them first",
        context={"playbook_id": str(playbook_id), "fields": fields},
    )
