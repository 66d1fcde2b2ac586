"""Persistence for playbooks, executions and incident references."""

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

__all__ = [
    "ExecutionStore",
    "IncidentDirectory",
    "PlaybookStore",
    "InMemoryDatabase",
    "InMemoryExecutionStore",
    "InMemoryIncidentDirectory",
    "InMemoryPlaybookStore",
    "SQLiteDatabase",
    "SQLiteExecutionStore",
    "SQLiteIncidentDirectory",
    "SQLitePlaybookStore",
]
