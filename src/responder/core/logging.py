"""Logging utilities for Responder.

Log lines go to stderr; stdout is reserved for command results
(JSON/JSONL) so they can be piped.
"""

import json
import sys
from datetime import UTC, datetime
from typing import Any, Literal

LogLevel = Literal["debug", "info", "warning", "error"]

_verbose = False
_quiet = False
_log_format: Literal["text", "json"] = "text"


def configure_logging(
    log_format: Literal["text", "json"] = "text",
    quiet: bool = False,
    verbose: bool | None = None,
) -> None:
    """Configure logging settings.

    Args:
        log_format: Output format for log messages
        quiet: Drop debug and info messages
        verbose: Emit debug messages and context fields (unchanged when None)
    """
    global _log_format, _quiet, _verbose
    _log_format = log_format
    _quiet = quiet
    if verbose is not None:
        _verbose = verbose


def log(message: str, level: LogLevel = "info", **context: Any) -> None:
    """Write one log line to stderr.

    JSON lines always carry the context fields; text lines only show
    them in verbose mode.
    """
    if level in ("debug", "info") and _quiet:
        return
    if level == "debug" and not _verbose:
        return

    if _log_format == "json":
        entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": level,
            "message": message,
        }
        entry.update((key, _jsonable(value)) for key, value in context.items())
        print(json.dumps(entry), file=sys.stderr)
        return

    line = message if level == "info" else f"[{level.upper()}] {message}"
    if _verbose and context:
        line += " " + " ".join(f"{key}={_jsonable(value)}" for key, value in context.items())
    print(line, file=sys.stderr)


def debug(message: str, **context: Any) -> None:
    log(message, level="debug", **context)


def info(message: str, **context: Any) -> None:
    log(message, level="info", **context)


def warning(message: str, **context: Any) -> None:
    log(message, level="warning", **context)


def error(message: str, **context: Any) -> None:
    log(message, level="error", **context)


def _jsonable(value: Any) -> Any:
    """Reduce IDs, enums and collections to JSON-friendly values."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "value") and not isinstance(value, dict):
        return value.value
    return str(value)
