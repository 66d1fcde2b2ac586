"""SQLite-based storage for playbooks, executions and incident references.

Models are stored as JSON documents next to the columns needed for
lookups. Execution writes are conditioned on the ``version`` column and
a partial unique index keeps at most one active execution per incident
and playbook.
"""

import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator
from uuid import UUID

from responder.core.errors import NotFoundError
from responder.models.execution import ACTIVE_STATUSES, Execution
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

_ACTIVE_SQL = ", ".join(f"'{s.value}'" for s in sorted(ACTIVE_STATUSES, key=lambda s: s.value))


class SQLiteDatabase:
    """Shared connection factory and schema for the stores."""

    SCHEMA = f"""
    CREATE TABLE IF NOT EXISTS playbooks (
        id TEXT PRIMARY KEY,
        firm_id TEXT NOT NULL,
        name TEXT NOT NULL,
        version INTEGER NOT NULL,
        document TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_playbooks_firm ON playbooks(firm_id);

    CREATE TABLE IF NOT EXISTS executions (
        id TEXT PRIMARY KEY,
        firm_id TEXT NOT NULL,
        incident_id TEXT NOT NULL,
        playbook_id TEXT NOT NULL,
        status TEXT NOT NULL,
        version INTEGER NOT NULL,
        started_at TEXT NOT NULL,
        document TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_executions_incident ON executions(firm_id, incident_id);
    CREATE INDEX IF NOT EXISTS idx_executions_playbook ON executions(playbook_id);

    CREATE UNIQUE INDEX IF NOT EXISTS idx_executions_one_active
        ON executions(incident_id, playbook_id)
        WHERE status IN ({_ACTIVE_SQL});

    CREATE TABLE IF NOT EXISTS incidents (
        firm_id TEXT NOT NULL,
        id TEXT NOT NULL,
        document TEXT NOT NULL,
        PRIMARY KEY (firm_id, id)
    );
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite file (parent directories are created)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self.connection() as conn:
            conn.executescript(self.SCHEMA)

    @contextmanager
    def connection(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections.

        Args:
            immediate: Take the write lock up front so reads and writes
                inside the block form one atomic transaction
        """
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()


class SQLitePlaybookStore(PlaybookStore):
    """Playbook store backed by the ``playbooks`` table."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, playbook: Playbook) -> Playbook:
        with self._db.connection() as conn:
            conn.execute(
                "INSERT INTO playbooks (id, firm_id, name, version, document, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    str(playbook.id),
                    playbook.firm_id,
                    playbook.name,
                    playbook.version,
                    playbook.model_dump_json(),
                    playbook.updated_at.isoformat(),
                ),
            )
        return playbook

    def get(self, playbook_id: UUID) -> Playbook | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT document FROM playbooks WHERE id = ?", (str(playbook_id),)
            ).fetchone()
        return Playbook.model_validate_json(row["document"]) if row else None

    def save(self, playbook: Playbook, frozen_fields: list[str] | None = None) -> Playbook:
        with self._db.connection(immediate=True) as conn:
            if frozen_fields and _count_references(conn, playbook.id, active_only=True):
                raise frozen_conflict(playbook.id, frozen_fields)
            cursor = conn.execute(
                "UPDATE playbooks SET name = ?, version = ?, document = ?, updated_at = ? "
                "WHERE id = ?",
                (
                    playbook.name,
                    playbook.version,
                    playbook.model_dump_json(),
                    playbook.updated_at.isoformat(),
                    str(playbook.id),
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("playbook", playbook.id)
        return playbook

    def delete(self, playbook_id: UUID) -> bool:
        with self._db.connection(immediate=True) as conn:
            references = _count_references(conn, playbook_id)
            if references:
                raise referenced_conflict(playbook_id, references)
            cursor = conn.execute("DELETE FROM playbooks WHERE id = ?", (str(playbook_id),))
        return cursor.rowcount > 0

    def list(self, firm_id: str) -> list[Playbook]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT document FROM playbooks WHERE firm_id = ?", (firm_id,)
            ).fetchall()
        return [Playbook.model_validate_json(row["document"]) for row in rows]


class SQLiteExecutionStore(ExecutionStore):
    """Execution store backed by the ``executions`` table."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def insert(self, execution: Execution) -> Execution:
        stored = execution.model_copy(update={"version": 1, "updated_at": datetime.now(UTC)})
        try:
            with self._db.connection(immediate=True) as conn:
                row = conn.execute(
                    "SELECT version FROM playbooks WHERE id = ?", (str(stored.playbook_id),)
                ).fetchone()
                if row is None:
                    raise NotFoundError("playbook", stored.playbook_id)
                if row["version"] != stored.playbook_version:
                    raise playbook_changed(stored.playbook_id, stored.playbook_version, row["version"])
                conn.execute(
                    "INSERT INTO executions "
                    "(id, firm_id, incident_id, playbook_id, status, version, started_at, document) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        str(stored.id),
                        stored.firm_id,
                        stored.incident_id,
                        str(stored.playbook_id),
                        stored.status.value,
                        stored.version,
                        stored.started_at.isoformat(),
                        stored.model_dump_json(),
                    ),
                )
        except sqlite3.IntegrityError as e:
            existing = self.find_active(stored.incident_id, stored.playbook_id)
            if existing is None:
                raise
            raise active_conflict(stored.incident_id, stored.playbook_id, existing.id) from e
        return stored

    def get(self, execution_id: UUID) -> Execution | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT document FROM executions WHERE id = ?", (str(execution_id),)
            ).fetchone()
        return Execution.model_validate_json(row["document"]) if row else None

    def update(self, execution: Execution, expected_version: int) -> Execution:
        stored = execution.model_copy(
            update={"version": expected_version + 1, "updated_at": datetime.now(UTC)}
        )
        with self._db.connection() as conn:
            cursor = conn.execute(
                "UPDATE executions SET status = ?, version = ?, document = ? "
                "WHERE id = ? AND version = ?",
                (
                    stored.status.value,
                    stored.version,
                    stored.model_dump_json(),
                    str(stored.id),
                    expected_version,
                ),
            )
            if cursor.rowcount == 0:
                exists = conn.execute(
                    "SELECT 1 FROM executions WHERE id = ?", (str(stored.id),)
                ).fetchone()
                if exists is None:
                    raise NotFoundError("execution", stored.id)
                raise version_conflict(stored.id, expected_version)
        return stored

    def list_for_incident(self, firm_id: str, incident_id: str) -> list[Execution]:
        return self._select(
            "WHERE firm_id = ? AND incident_id = ? ORDER BY started_at DESC",
            (firm_id, incident_id),
        )

    def list_for_playbook(self, firm_id: str, playbook_id: UUID) -> list[Execution]:
        return self._select(
            "WHERE firm_id = ? AND playbook_id = ? ORDER BY started_at DESC",
            (firm_id, str(playbook_id)),
        )

    def count_references(self, playbook_id: UUID, active_only: bool = False) -> int:
        with self._db.connection() as conn:
            return _count_references(conn, playbook_id, active_only)

    def find_active(self, incident_id: str, playbook_id: UUID) -> Execution | None:
        found = self._select(
            f"WHERE incident_id = ? AND playbook_id = ? AND status IN ({_ACTIVE_SQL})",
            (incident_id, str(playbook_id)),
        )
        return found[0] if found else None

    def _select(self, clause: str, params: tuple) -> list[Execution]:
        with self._db.connection() as conn:
            rows = conn.execute(f"SELECT document FROM executions {clause}", params).fetchall()
        return [Execution.model_validate_json(row["document"]) for row in rows]


class SQLiteIncidentDirectory(IncidentDirectory):
    """Incident references backed by the ``incidents`` table."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def get(self, firm_id: str, incident_id: str) -> Incident | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT document FROM incidents WHERE firm_id = ? AND id = ?",
                (firm_id, incident_id),
            ).fetchone()
        return Incident.model_validate_json(row["document"]) if row else None

    def register(self, incident: Incident) -> Incident:
        with self._db.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO incidents (firm_id, id, document) VALUES (?, ?, ?)",
                (incident.firm_id, incident.id, incident.model_dump_json()),
            )
        return incident

    def remove(self, firm_id: str, incident_id: str) -> bool:
        with self._db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM incidents WHERE firm_id = ? AND id = ?", (firm_id, incident_id)
            )
        return cursor.rowcount > 0

    def list(self, firm_id: str) -> list[Incident]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT document FROM incidents WHERE firm_id = ? ORDER BY id", (firm_id,)
            ).fetchall()
        return [Incident.model_validate_json(row["document"]) for row in rows]


def _count_references(conn: sqlite3.Connection, playbook_id: UUID, active_only: bool = False) -> int:
    query = "SELECT COUNT(*) FROM executions WHERE playbook_id = ?"
    if active_only:
        query += f" AND status IN ({_ACTIVE_SQL})"
    return conn.execute(query, (str(playbook_id),)).fetchone()[0]
