"""Result rendering for the Responder CLI.

stdout receives command results only: one JSON document, JSONL records
or a human-readable rendering. Diagnostics go to stderr through
``responder.core.logging``.
"""

import json
import sys
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any, Literal, TextIO
from uuid import UUID

from pydantic import BaseModel

OutputFormat = Literal["json", "jsonl", "human"]

_current_format: OutputFormat = "json"


def set_output_format(format: OutputFormat) -> None:
    """Set the format used for errors raised outside a command."""
    global _current_format
    _current_format = format


class JSONEncoder(json.JSONEncoder):
    """JSON encoder aware of IDs, timestamps, enums and models."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        return super().default(obj)


def to_plain(data: Any) -> Any:
    """Convert models (and lists of them) to plain JSON-ready values."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (list, tuple)):
        return [to_plain(item) for item in data]
    return data


def write_json(data: Any, file: TextIO | None = None) -> None:
    """Write one JSON document followed by a newline."""
    file = file or sys.stdout
    file.write(json.dumps(to_plain(data), cls=JSONEncoder, ensure_ascii=False) + "\n")
    file.flush()


def write_jsonl(records: Iterable[Any], file: TextIO | None = None) -> None:
    """Write one JSON document per record."""
    file = file or sys.stdout
    for record in records:
        file.write(json.dumps(to_plain(record), cls=JSONEncoder, ensure_ascii=False) + "\n")
    file.flush()


def write_human(data: Any, title: str | None = None, file: TextIO | None = None) -> None:
    """Write nested data as an indented key/value listing."""
    file = file or sys.stdout
    if title:
        _heading(title, file)
    _render(to_plain(data), file, 0)
    file.flush()


def write_table(
    records: list[dict[str, Any]],
    columns: list[str] | None = None,
    title: str | None = None,
    file: TextIO | None = None,
    max_width: int = 40,
) -> None:
    """Write records as a fixed-width table.

    Args:
        records: Plain record dictionaries
        columns: Dotted keys to show (first six keys of the first record if None)
        title: Optional heading
        file: Destination (defaults to stdout)
        max_width: Longer cells are truncated with an ellipsis
    """
    file = file or sys.stdout
    if not records:
        file.write("No records.\n")
        return
    if title:
        _heading(title, file)

    columns = columns or list(records[0])[:6]
    rows = [[_cell(record, col) for col in columns] for record in records]
    widths = [
        min(max_width, max(len(col), *(len(row[i]) for row in rows)))
        for i, col in enumerate(columns)
    ]

    header = " | ".join(col.ljust(w)[:w] for col, w in zip(columns, widths))
    file.write(header + "\n" + "-" * len(header) + "\n")
    for row in rows:
        cells = [
            (text if len(text) <= w else text[: w - 3] + "...").ljust(w)
            for text, w in zip(row, widths)
        ]
        file.write(" | ".join(cells) + "\n")

    file.write(f"\nTotal: {len(records)} records\n")
    file.flush()


def output_error(error: Any, file: TextIO | None = None) -> None:
    """Write an error to stdout so callers can parse it like any result."""
    if _current_format == "human":
        write_human(error, title="Error", file=file)
    else:
        write_json(error, file=file)


def _heading(title: str, file: TextIO) -> None:
    file.write(f"\n{title}\n{'=' * len(title)}\n\n")


def _cell(record: dict[str, Any], column: str) -> str:
    value: Any = record
    for part in column.split("."):
        if not isinstance(value, dict) or part not in value:
            return ""
        value = value[part]
    return "" if value is None else str(value)


def _render(value: Any, file: TextIO, indent: int) -> None:
    prefix = "  " * indent
    if isinstance(value, dict):
        for key, item in value.items():
            if isinstance(item, (dict, list)) and item:
                file.write(f"{prefix}{key}:\n")
                _render(item, file, indent + 1)
            else:
                file.write(f"{prefix}{key}: {item}\n")
    elif isinstance(value, list):
        for position, item in enumerate(value):
            if isinstance(item, dict):
                file.write(f"{prefix}[{position}]:\n")
                _render(item, file, indent + 1)
            else:
                file.write(f"{prefix}- {item}\n")
    else:
        file.write(f"{prefix}{value}\n")


class OutputFormatter:
    """Renders command results in the format chosen on the command line."""

    def __init__(self, format: OutputFormat = "json"):
        self.format = format

    def output(self, data: Any, title: str | None = None) -> None:
        """Render a single result."""
        if self.format == "human":
            write_human(data, title=title)
        elif self.format == "jsonl" and isinstance(data, list):
            write_jsonl(data)
        else:
            write_json(data)

    def records(
        self,
        records: Iterable[Any],
        columns: list[str] | None = None,
        title: str | None = None,
    ) -> None:
        """Render a collection: a table for humans, a JSON array or JSONL otherwise."""
        items = [to_plain(r) for r in records]
        if self.format == "human":
            write_table(items, columns=columns, title=title)
        elif self.format == "jsonl":
            write_jsonl(items)
        else:
            write_json(items)

    def error(self, error: Any) -> None:
        """Render a structured error to stdout."""
        if self.format == "human":
            write_human(error, title="Error")
        else:
            write_json(error)

    def is_human(self) -> bool:
        return self.format == "human"
