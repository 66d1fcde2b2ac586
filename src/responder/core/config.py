"""Configuration loading for Responder.

Settings live in an optional ``responder.yaml`` inside the data
directory; command-line options override anything read from it.
"""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from responder.core.errors import ConfigError

CONFIG_FILE = "responder.yaml"


class ResponderConfig(BaseModel):
    """Runtime settings for the CLI and service factory."""

    data_dir: Path = Field(default=Path(".responder"), description="State directory")
    database: str = Field(default="responder.db", description="SQLite file inside data_dir")
    default_firm: str | None = Field(default=None, description="Firm used when none is given")
    log_format: Literal["text", "json"] = Field(default="text")
    escalation_log: str | None = Field(
        default="escalations.jsonl",
        description="JSONL file inside data_dir receiving escalations (None logs only)",
    )
    playbook_paths: list[Path] = Field(
        default_factory=list, description="Directories searched by 'playbook import'"
    )

    model_config = {"extra": "forbid"}

    @property
    def database_path(self) -> Path:
        return self.data_dir / self.database

    @property
    def escalation_log_path(self) -> Path | None:
        if not self.escalation_log:
            return None
        return self.data_dir / self.escalation_log


def load_config(data_dir: Path, overrides: dict[str, Any] | None = None) -> ResponderConfig:
    """Load configuration for a data directory.

    Args:
        data_dir: Directory holding state and the optional config file
        overrides: Values that take precedence over the file (None values ignored)

    Returns:
        Merged ResponderConfig

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values
    """
    config_path = data_dir / CONFIG_FILE
    data: dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML parse error: {e}", str(config_path)) from e

        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError("Configuration must be a YAML object", str(config_path))
        data.update(loaded or {})

    data["data_dir"] = data_dir
    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        return ResponderConfig(**data)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}", str(config_path)) from e
