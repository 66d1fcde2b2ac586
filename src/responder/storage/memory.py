"""In-memory storage, used by tests and embedded callers."""

import threading
from datetime import UTC, datetime
from uuid import UUID

from responder.core.errors import NotFoundError
from responder.models.execution import Execution
from responder.models.incident import Incident
from responder.models.playbook import Playbook
from responder.storage.base import (
    ExecutionStore,
    IncidentDirectory,
    PlaybookStore,
    active_conflict,
    frozen_conflict,
    playbook_changed,
    referenced_conflict,
    version_conflict,
)


class InMemoryDatabase:
    """Tables and the lock shared by the in-memory stores.

    Stores built on the same database see each other's rows, and one
    lock guards every check-then-write across them.
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.playbooks: dict[UUID, Playbook] = {}
        self.executions: dict[UUID, Execution] = {}
        self.incidents: dict[tuple[str, str], Incident] = {}

    def count_references_locked(self, playbook_id: UUID, active_only: bool = False) -> int:
        return sum(
            1
            for e in self.executions.values()
            if e.playbook_id == playbook_id and (e.is_active or not active_only)
        )


class InMemoryPlaybookStore(PlaybookStore):
    """Dictionary-backed playbook store."""

    def __init__(self, database: InMemoryDatabase | None = None) -> None:
        self._db = database or InMemoryDatabase()

    def add(self, playbook: Playbook) -> Playbook:
        with self._db.lock:
            self._db.playbooks[playbook.id] = playbook.model_copy(deep=True)
        return playbook

    def get(self, playbook_id: UUID) -> Playbook | None:
        playbook = self._db.playbooks.get(playbook_id)
        return playbook.model_copy(deep=True) if playbook else None

    def save(self, playbook: Playbook, frozen_fields: list[str] | None = None) -> Playbook:
        with self._db.lock:
            if playbook.id not in self._db.playbooks:
                raise NotFoundError("playbook", playbook.id)
            if frozen_fields and self._db.count_references_locked(playbook.id, active_only=True):
                raise frozen_conflict(playbook.id, frozen_fields)
            self._db.playbooks[playbook.id] = playbook.model_copy(deep=True)
        return playbook

    def delete(self, playbook_id: UUID) -> bool:
        with self._db.lock:
            references = self._db.count_references_locked(playbook_id)
            if references:
                raise referenced_conflict(playbook_id, references)
            return self._db.playbooks.pop(playbook_id, None) is not None

    def list(self, firm_id: str) -> list[Playbook]:
        return [
            p.model_copy(deep=True)
            for p in list(self._db.playbooks.values())
            if p.firm_id == firm_id
        ]


class InMemoryExecutionStore(ExecutionStore):
    """Dictionary-backed execution store."""

    def __init__(self, database: InMemoryDatabase | None = None) -> None:
        self._db = database or InMemoryDatabase()

    def insert(self, execution: Execution) -> Execution:
        with self._db.lock:
            playbook = self._db.playbooks.get(execution.playbook_id)
            if playbook is None:
                raise NotFoundError("playbook", execution.playbook_id)
            if playbook.version != execution.playbook_version:
                raise playbook_changed(playbook.id, execution.playbook_version, playbook.version)
            if execution.is_active:
                existing = self._find_active_locked(execution.incident_id, execution.playbook_id)
                if existing is not None:
                    raise active_conflict(execution.incident_id, execution.playbook_id, existing.id)
            stored = execution.model_copy(
                update={"version": 1, "updated_at": datetime.now(UTC)}, deep=True
            )
            self._db.executions[stored.id] = stored
        return stored.model_copy(deep=True)

    def get(self, execution_id: UUID) -> Execution | None:
        execution = self._db.executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    def update(self, execution: Execution, expected_version: int) -> Execution:
        with self._db.lock:
            current = self._db.executions.get(execution.id)
            if current is None:
                raise NotFoundError("execution", execution.id)
            if current.version != expected_version:
                raise version_conflict(execution.id, expected_version)
            stored = execution.model_copy(
                update={"version": expected_version + 1, "updated_at": datetime.now(UTC)},
                deep=True,
            )
            self._db.executions[stored.id] = stored
        return stored.model_copy(deep=True)

    def list_for_incident(self, firm_id: str, incident_id: str) -> list[Execution]:
        return self._sorted(
            e for e in list(self._db.executions.values())
            if e.firm_id == firm_id and e.incident_id == incident_id
        )

    def list_for_playbook(self, firm_id: str, playbook_id: UUID) -> list[Execution]:
        return self._sorted(
            e for e in list(self._db.executions.values())
            if e.firm_id == firm_id and e.playbook_id == playbook_id
        )

    def count_references(self, playbook_id: UUID, active_only: bool = False) -> int:
        with self._db.lock:
            return self._db.count_references_locked(playbook_id, active_only)

    def find_active(self, incident_id: str, playbook_id: UUID) -> Execution | None:
        with self._db.lock:
            found = self._find_active_locked(incident_id, playbook_id)
        return found.model_copy(deep=True) if found else None

    def _find_active_locked(self, incident_id: str, playbook_id: UUID) -> Execution | None:
        for execution in self._db.executions.values():
            if (
                execution.incident_id == incident_id
                and execution.playbook_id == playbook_id
                and execution.is_active
            ):
                return execution
        return None

    @staticmethod
    def _sorted(executions) -> list[Execution]:
        return sorted(
            (e.model_copy(deep=True) for e in executions),
            key=lambda e: e.started_at,
            reverse=True,
        )


class InMemoryIncidentDirectory(IncidentDirectory):
    """Dictionary-backed incident references keyed by firm and ID."""

    def __init__(
        self,
        database: InMemoryDatabase | None = None,
        incidents: list[Incident] | None = None,
    ) -> None:
        self._db = database or InMemoryDatabase()
        for incident in incidents or []:
            self.register(incident)

    def get(self, firm_id: str, incident_id: str) -> Incident | None:
        return self._db.incidents.get((firm_id, incident_id))

    def register(self, incident: Incident) -> Incident:
        with self._db.lock:
            self._db.incidents[(incident.firm_id, incident.id)] = incident
        return incident

    def remove(self, firm_id: str, incident_id: str) -> bool:
        with self._db.lock:
            return self._db.incidents.pop((firm_id, incident_id), None) is not None

    def list(self, firm_id: str) -> list[Incident]:
        return sorted(
            (i for i in list(self._db.incidents.values()) if i.firm_id == firm_id),
            key=lambda i: i.id,
        )
