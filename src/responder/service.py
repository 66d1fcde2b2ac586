"""Service facade exposing the playbook and execution operations.

Transport adapters (the CLI, an HTTP layer) call this class. Every
operation takes the firm explicitly; resources of other firms are
reported as missing.
"""

from pathlib import Path
from typing import Any
from uuid import UUID

from responder.core.config import ResponderConfig
from responder.core.errors import NotFoundError
from responder.execution.dispatcher import (
    EscalationNotifier,
    JsonlEscalationNotifier,
    LogEscalationNotifier,
    StepActionDispatcher,
)
from responder.execution.engine import ExecutionEngine
from responder.models.execution import Execution, PlaybookStats, StepOutcome
from responder.models.incident import Incident
from responder.models.playbook import Category, Playbook, Severity
from responder.playbook.catalog import PlaybookCatalog
from responder.playbook.loader import PlaybookLoader
from responder.playbook.matcher import MatchCandidate, Matcher
from responder.storage.base import ExecutionStore, IncidentDirectory, PlaybookStore
from responder.storage.memory import (
    InMemoryDatabase,
    InMemoryExecutionStore,
    InMemoryIncidentDirectory,
    InMemoryPlaybookStore,
)
from responder.storage.sqlite import (
    SQLiteDatabase,
    SQLiteExecutionStore,
    SQLiteIncidentDirectory,
    SQLitePlaybookStore,
)


class ResponderService:
    """Bundles catalog, matcher and engine behind one interface."""

    def __init__(
        self,
        playbooks: PlaybookStore,
        executions: ExecutionStore,
        incidents: IncidentDirectory,
        dispatcher: StepActionDispatcher | None = None,
        notifier: EscalationNotifier | None = None,
        playbook_paths: list[Path] | None = None,
    ) -> None:
        self.incidents = incidents
        self.playbook_paths = list(playbook_paths or [])
        self.catalog = PlaybookCatalog(playbooks)
        self.matcher = Matcher(self.catalog)
        self.engine = ExecutionEngine(
            self.catalog,
            executions,
            incidents,
            dispatcher=dispatcher,
            notifier=notifier,
        )

    @classmethod
    def in_memory(
        cls,
        dispatcher: StepActionDispatcher | None = None,
        notifier: EscalationNotifier | None = None,
    ) -> "ResponderService":
        """Build a service with in-memory storage."""
        database = InMemoryDatabase()
        return cls(
            InMemoryPlaybookStore(database),
            InMemoryExecutionStore(database),
            InMemoryIncidentDirectory(database),
            dispatcher=dispatcher,
            notifier=notifier,
        )

    @classmethod
    def from_config(
        cls,
        config: ResponderConfig,
        dispatcher: StepActionDispatcher | None = None,
    ) -> "ResponderService":
        """Build a service backed by the configured SQLite database."""
        database = SQLiteDatabase(config.database_path)
        escalation_log = config.escalation_log_path
        notifier: EscalationNotifier = (
            JsonlEscalationNotifier(escalation_log) if escalation_log else LogEscalationNotifier()
        )
        return cls(
            SQLitePlaybookStore(database),
            SQLiteExecutionStore(database),
            SQLiteIncidentDirectory(database),
            dispatcher=dispatcher,
            notifier=notifier,
            playbook_paths=config.playbook_paths,
        )

    # Playbooks

    def list_playbooks(
        self,
        firm_id: str,
        category: Category | str | None = None,
        severity: Severity | str | None = None,
        is_active: bool | None = None,
    ) -> list[Playbook]:
        return self.catalog.list(firm_id, category=category, severity=severity, is_active=is_active)

    def create_playbook(
        self, firm_id: str, definition: dict[str, Any], created_by: str | None = None
    ) -> Playbook:
        return self.catalog.create(firm_id, definition, created_by=created_by)

    def get_playbook(self, firm_id: str, playbook_id: UUID | str) -> Playbook:
        return self.catalog.get(firm_id, playbook_id)

    def update_playbook(
        self, firm_id: str, playbook_id: UUID | str, patch: dict[str, Any]
    ) -> Playbook:
        return self.catalog.update(firm_id, playbook_id, patch)

    def delete_playbook(self, firm_id: str, playbook_id: UUID | str) -> bool:
        return self.catalog.delete(firm_id, playbook_id)

    def import_playbooks(
        self,
        firm_id: str,
        source: Path | str,
        variables: dict[str, Any] | None = None,
        created_by: str | None = None,
    ) -> list[Playbook]:
        """Create playbooks from YAML definitions.

        Every file is validated before any playbook is created.

        Args:
            source: YAML file, directory of YAML files, or a file name
                looked up in the configured playbook paths
            variables: Values for ``${VAR}`` substitution
            created_by: User recorded on the new playbooks
        """
        loader = PlaybookLoader(self.playbook_paths)
        if Path(source).is_dir():
            definitions = [d for _, d in loader.load_directory(Path(source), variables)]
        else:
            definitions = [loader.load(str(source), variables)]
        return [self.catalog.create(firm_id, d, created_by=created_by) for d in definitions]

    def get_playbook_stats(self, firm_id: str, playbook_id: UUID | str) -> PlaybookStats:
        return self.engine.get_playbook_stats(firm_id, playbook_id)

    # Matching

    def match_playbook(
        self,
        incident_type: str,
        severity: Severity | str,
        firm_id: str,
        *,
        category: Category | str | None = None,
        tags: list[str] | None = None,
    ) -> Playbook | None:
        return self.matcher.match(incident_type, severity, firm_id, category=category, tags=tags)

    def explain_match(
        self,
        incident_type: str,
        severity: Severity | str,
        firm_id: str,
        *,
        category: Category | str | None = None,
        tags: list[str] | None = None,
    ) -> list[MatchCandidate]:
        return self.matcher.explain(incident_type, severity, firm_id, category=category, tags=tags)

    def match_incident(self, firm_id: str, incident_id: str) -> Playbook | None:
        """Match using a registered incident's type, severity, category and tags."""
        incident = self.get_incident(firm_id, incident_id)
        return self.matcher.match(
            incident.incident_type,
            incident.severity,
            firm_id,
            category=incident.category,
            tags=incident.tags,
        )

    # Executions

    def start_execution(
        self, firm_id: str, incident_id: str, playbook_id: UUID | str, user_id: str | None
    ) -> Execution:
        return self.engine.start_execution(firm_id, incident_id, playbook_id, user_id)

    def advance_step(
        self, firm_id: str, execution_id: UUID | str, outcome: StepOutcome | dict
    ) -> Execution:
        return self.engine.advance_step(firm_id, execution_id, outcome)

    def skip_step(
        self, firm_id: str, execution_id: UUID | str, reason: str, user_id: str | None = None
    ) -> Execution:
        return self.engine.skip_step(firm_id, execution_id, reason, user_id=user_id)

    def retry_step(
        self, firm_id: str, execution_id: UUID | str, step_index: int, user_id: str | None = None
    ) -> Execution:
        return self.engine.retry_step(firm_id, execution_id, step_index, user_id=user_id)

    def abort_execution(
        self, firm_id: str, execution_id: UUID | str, user_id: str | None, reason: str
    ) -> Execution:
        return self.engine.abort_execution(firm_id, execution_id, user_id, reason)

    def get_execution_status(self, firm_id: str, execution_id: UUID | str) -> Execution:
        return self.engine.get_execution_status(firm_id, execution_id)

    def get_execution_history(self, firm_id: str, incident_id: str) -> list[Execution]:
        return self.engine.get_execution_history(firm_id, incident_id)

    # Incident references

    def register_incident(self, incident: Incident) -> Incident:
        return self.incidents.register(incident)

    def get_incident(self, firm_id: str, incident_id: str) -> Incident:
        incident = self.incidents.get(firm_id, incident_id)
        if incident is None:
            raise NotFoundError("incident", incident_id)
        return incident

    def list_incidents(self, firm_id: str) -> list[Incident]:
        return self.incidents.list(firm_id)

    def remove_incident(self, firm_id: str, incident_id: str) -> bool:
        """Forget an incident reference; its executions are kept for audit."""
        self.get_incident(firm_id, incident_id)
        return self.incidents.remove(firm_id, incident_id)
