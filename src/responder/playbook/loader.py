"""Playbook loader for YAML playbook definitions.

Reads definition files so they can be imported into a firm's catalog.
Every file is validated with the same rules the catalog applies.
"""

import re
from pathlib import Path
from typing import Any

import yaml

from responder.core.errors import NotFoundError, ValidationError
from responder.models.error import FieldError
from responder.playbook.catalog import EDITABLE_FIELDS, validate_definition

YAML_SUFFIXES = (".yaml", ".yml")


class PlaybookLoader:
    """Loads playbook definitions from YAML files."""

    def __init__(self, playbook_paths: list[Path] | None = None) -> None:
        """Initialize the playbook loader.

        Args:
            playbook_paths: Directories searched when loading by name
        """
        self.paths: list[Path] = [Path(p) for p in playbook_paths or []]

    def load(self, name: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Load a definition by file path or by name.

        Args:
            name: Playbook file path, or file name (without extension)
            variables: Values for ``${VAR}`` substitution

        Returns:
            Validated definition dictionary

        Raises:
            NotFoundError: If no matching file exists
            ValidationError: If the file fails validation
        """
        playbook_path = self._find_playbook(name)
        if playbook_path is None:
            raise NotFoundError("playbook file", name)

        return self.load_file(playbook_path, variables)

    def load_directory(
        self, directory: Path, variables: dict[str, Any] | None = None
    ) -> list[tuple[Path, dict[str, Any]]]:
        """Load every YAML definition in a directory, sorted by file name.

        Raises:
            ValidationError: Collecting the errors of every invalid file
        """
        loaded = []
        errors: list[FieldError] = []

        files = sorted(
            p for p in Path(directory).iterdir() if p.suffix in YAML_SUFFIXES and p.is_file()
        )
        for path in files:
            try:
                loaded.append((path, self.load_file(path, variables)))
            except ValidationError as e:
                errors.extend(
                    FieldError(field=f"{path.name}:{err.field}", message=err.message)
                    for err in e.errors
                )

        if errors:
            raise ValidationError(f"Playbook files in '{directory}' failed validation", errors)
        return loaded

    def load_file(
        self, path: Path, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Load and validate a single definition file.

        Args:
            path: Path to playbook file
            variables: Values for ``${VAR}`` substitution

        Returns:
            Definition dictionary restricted to playbook fields
        """
        with open(path, encoding="utf-8") as f:
            content = f.read()

        content = self._substitute_variables(content, variables or {})

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValidationError.for_field("file", f"YAML parse error: {e}") from e

        if not isinstance(data, dict):
            raise ValidationError.for_field("file", "Playbook must be a YAML object")

        definition = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
        errors = validate_definition(definition)
        if errors:
            raise ValidationError(f"Playbook '{path}' failed validation", errors)

        return definition

    def _find_playbook(self, name: str) -> Path | None:
        """Find a playbook file by name.

        Args:
            name: Playbook name or path

        Returns:
            Path to playbook file or None if not found
        """
        if Path(name).is_file():
            return Path(name)

        name_path = Path(name)
        base_name = name_path.stem if name_path.suffix in YAML_SUFFIXES else name

        for search_path in self.paths:
            for ext in YAML_SUFFIXES:
                candidate = search_path / f"{base_name}{ext}"
                if candidate.exists():
                    return candidate

        return None

    def _substitute_variables(self, content: str, variables: dict[str, Any]) -> str:
        """Substitute variables in playbook content.

        Supports ${VAR} and ${VAR:-default} syntax. Unknown variables
        without a default are left untouched.
        """
        def replace_var(match: re.Match[str]) -> str:
            var_expr = match.group(1)
            if ":-" in var_expr:
                var_name, default = var_expr.split(":-", 1)
                return str(variables.get(var_name, default))
            return str(variables.get(var_expr, match.group(0)))

        pattern = r"\$\{([^}]+)\}"
        return re.sub(pattern, replace_var, content)
