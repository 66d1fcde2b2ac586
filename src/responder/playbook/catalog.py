"""Playbook catalog: validated, tenant-scoped playbook definitions.

Definitions arrive as plain dictionaries (from the CLI, YAML files or
an API layer) and are checked field by field so that every problem is
reported at once.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from responder.core import logging as log
from responder.core.errors import NotFoundError, ValidationError
from responder.models.error import FieldError
from responder.models.playbook import (
    ActionType,
    Category,
    Playbook,
    PlaybookStep,
    Severity,
    TriggerConditions,
)
from responder.storage.base import PlaybookStore

EDITABLE_FIELDS = frozenset({
    "name",
    "description",
    "category",
    "severity",
    "trigger_conditions",
    "steps",
    "escalation_path",
    "is_active",
})

# Fields that may change while executions of the playbook are in flight.
FREE_FIELDS = frozenset({"name", "description", "is_active", "escalation_path"})

_STEP_FIELDS = frozenset({
    "index",
    "name",
    "action_type",
    "action_params",
    "timeout_seconds",
    "retryable",
    "max_retries",
    "description",
})

_TRIGGER_FIELDS = frozenset({"incident_types", "severities", "min_severity", "tags"})


def parse_playbook_id(playbook_id: UUID | str) -> UUID:
    """Coerce a playbook ID, treating malformed IDs as missing playbooks."""
    if isinstance(playbook_id, UUID):
        return playbook_id
    try:
        return UUID(str(playbook_id))
    except ValueError:
        raise NotFoundError("playbook", playbook_id) from None


class PlaybookCatalog:
    """Stores and validates a firm's playbooks."""

    def __init__(self, store: PlaybookStore) -> None:
        """Initialize the catalog.

        Args:
            store: Playbook persistence; it refuses edits and deletes that
                executions of the playbook forbid
        """
        self.store = store

    def create(
        self,
        firm_id: str,
        definition: dict[str, Any],
        created_by: str | None = None,
    ) -> Playbook:
        """Validate a definition and store it as a new playbook.

        Args:
            firm_id: Owning firm
            definition: Playbook fields
            created_by: User creating the playbook

        Returns:
            The stored playbook

        Raises:
            ValidationError: Listing every violated field
        """
        if not isinstance(definition, dict):
            raise ValidationError.for_field("definition", "Playbook definition must be an object")

        errors = [
            FieldError(field=key, message="Unknown field")
            for key in sorted(set(definition) - EDITABLE_FIELDS)
        ]
        errors.extend(validate_definition(definition))
        if errors:
            raise ValidationError("Playbook definition is invalid", errors)

        playbook = Playbook(
            firm_id=firm_id,
            created_by=created_by,
            **normalize_definition(definition),
        )
        self.store.add(playbook)
        log.info(f"Created playbook '{playbook.name}'", playbook_id=playbook.id, firm_id=firm_id)
        return playbook

    def get(self, firm_id: str, playbook_id: UUID | str) -> Playbook:
        """Load a playbook owned by ``firm_id``.

        Raises:
            NotFoundError: If missing or owned by another firm
        """
        pid = parse_playbook_id(playbook_id)
        playbook = self.store.get(pid)
        if playbook is None or playbook.firm_id != firm_id:
            raise NotFoundError("playbook", pid)
        return playbook

    def update(
        self,
        firm_id: str,
        playbook_id: UUID | str,
        patch: dict[str, Any],
    ) -> Playbook:
        """Apply a partial update to a playbook.

        Only ``name``, ``description``, ``is_active`` and
        ``escalation_path`` may change while an execution of the
        playbook is active.

        Raises:
            NotFoundError: If missing or owned by another firm
            ValidationError: If the patch or the merged result is invalid
            ConflictError: If a frozen field changes while executions are active
        """
        current = self.get(firm_id, playbook_id)

        if not isinstance(patch, dict):
            raise ValidationError.for_field("patch", "Patch must be an object")

        errors = [
            FieldError(field=key, message="Field cannot be changed")
            for key in sorted(set(patch) - EDITABLE_FIELDS)
        ]
        merged = {
            **current.model_dump(mode="json", include=set(EDITABLE_FIELDS)),
            **{k: v for k, v in patch.items() if k in EDITABLE_FIELDS},
        }
        errors.extend(validate_definition(merged))
        if errors:
            raise ValidationError("Playbook update is invalid", errors)

        candidate = current.model_copy(update=_build_fields(normalize_definition(merged)))
        changed = {f for f in EDITABLE_FIELDS if getattr(candidate, f) != getattr(current, f)}
        if not changed:
            return current

        updated = candidate.model_copy(
            update={"version": current.version + 1, "updated_at": datetime.now(UTC)}
        )
        self.store.save(updated, frozen_fields=sorted(changed - FREE_FIELDS))
        log.info(
            f"Updated playbook '{updated.name}' to version {updated.version}",
            playbook_id=updated.id,
            fields=sorted(changed),
        )
        return updated

    def delete(self, firm_id: str, playbook_id: UUID | str) -> bool:
        """Delete a playbook that no execution references.

        Raises:
            NotFoundError: If missing or owned by another firm
            ConflictError: If any execution, terminal or not, references it
        """
        playbook = self.get(firm_id, playbook_id)
        deleted = self.store.delete(playbook.id)
        if deleted:
            log.info(f"Deleted playbook '{playbook.name}'", playbook_id=playbook.id)
        return deleted

    def list(
        self,
        firm_id: str,
        category: Category | str | None = None,
        severity: Severity | str | None = None,
        is_active: bool | None = None,
    ) -> list[Playbook]:
        """List a firm's playbooks, sorted by name.

        Raises:
            ValidationError: If a filter is not a valid enum value
        """
        category_filter = _coerce_filter(Category, category, "category")
        severity_filter = _coerce_filter(Severity, severity, "severity")

        playbooks = []
        for playbook in self.store.list(firm_id):
            if category_filter is not None and playbook.category != category_filter:
                continue
            if severity_filter is not None and playbook.severity != severity_filter:
                continue
            if is_active is not None and playbook.is_active != is_active:
                continue
            playbooks.append(playbook)

        playbooks.sort(key=lambda p: (p.name.lower(), str(p.id)))
        return playbooks


def _coerce_filter(enum_cls, value, field: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError.for_field(
            field, f"Must be one of: {', '.join(e.value for e in enum_cls)}"
        ) from None


def _build_fields(normalized: dict[str, Any]) -> dict[str, Any]:
    """Turn normalized definition data into model field values."""
    return {
        **normalized,
        "category": Category(normalized["category"]),
        "severity": Severity(normalized["severity"]),
        "trigger_conditions": TriggerConditions(**normalized["trigger_conditions"]),
        "steps": [PlaybookStep(**s) for s in normalized["steps"]],
    }


def normalize_definition(definition: dict[str, Any]) -> dict[str, Any]:
    """Fill defaults and step indices in an already validated definition."""
    steps = []
    for position, step in enumerate(definition["steps"], start=1):
        steps.append({**step, "index": step.get("index", position)})

    return {
        "name": definition["name"].strip(),
        "description": definition.get("description") or "",
        "category": definition["category"],
        "severity": definition["severity"],
        "trigger_conditions": dict(definition.get("trigger_conditions") or {}),
        "steps": steps,
        "escalation_path": list(definition.get("escalation_path") or []),
        "is_active": definition.get("is_active", True),
    }


def validate_definition(data: dict[str, Any]) -> list[FieldError]:
    """Validate a playbook definition.

    Args:
        data: Raw definition

    Returns:
        Every violated field (empty if valid)
    """
    errors: list[FieldError] = []

    def fail(field: str, message: str) -> None:
        errors.append(FieldError(field=field, message=message))

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        fail("name", "Name is required")

    description = data.get("description")
    if description is not None and not isinstance(description, str):
        fail("description", "Description must be a string")

    _check_enum(data.get("category"), Category, "category", fail, required=True)
    _check_enum(data.get("severity"), Severity, "severity", fail, required=True)

    if "is_active" in data and not isinstance(data["is_active"], bool):
        fail("is_active", "Must be true or false")

    escalation = data.get("escalation_path")
    if escalation is not None and (
        not isinstance(escalation, list)
        or not all(isinstance(c, str) and c.strip() for c in escalation)
    ):
        fail("escalation_path", "Must be a list of non-empty contact or role names")

    trigger = data.get("trigger_conditions")
    if trigger is not None:
        _validate_trigger(trigger, fail)

    steps = data.get("steps")
    if not isinstance(steps, list):
        fail("steps", "Steps must be a list")
    elif len(steps) == 0:
        fail("steps", "Playbook must have at least one step")
    else:
        for position, step in enumerate(steps, start=1):
            _validate_step(step, position, fail)

    return errors


def _check_enum(value, enum_cls, field: str, fail, required: bool = False) -> None:
    if value is None:
        if required:
            fail(field, f"{field.capitalize()} is required")
        return
    try:
        enum_cls(value)
    except ValueError:
        fail(field, f"Invalid value '{value}'. Must be one of: {', '.join(e.value for e in enum_cls)}")


def _validate_trigger(trigger: Any, fail) -> None:
    if not isinstance(trigger, dict):
        fail("trigger_conditions", "Trigger conditions must be an object")
        return

    for key in sorted(set(trigger) - _TRIGGER_FIELDS):
        fail(f"trigger_conditions.{key}", "Unknown field")

    for key in ("incident_types", "tags"):
        value = trigger.get(key)
        if value is not None and (
            not isinstance(value, list)
            or not all(isinstance(v, str) and v.strip() for v in value)
        ):
            fail(f"trigger_conditions.{key}", "Must be a list of non-empty strings")

    severities = trigger.get("severities")
    if severities is not None:
        if not isinstance(severities, list):
            fail("trigger_conditions.severities", "Must be a list")
        else:
            for i, value in enumerate(severities):
                _check_enum(value, Severity, f"trigger_conditions.severities.{i}", fail)

    _check_enum(trigger.get("min_severity"), Severity, "trigger_conditions.min_severity", fail)


def _validate_step(step: Any, position: int, fail) -> None:
    prefix = f"steps.{position}"

    if not isinstance(step, dict):
        fail(prefix, "Step must be an object")
        return

    for key in sorted(set(step) - _STEP_FIELDS):
        fail(f"{prefix}.{key}", "Unknown field")

    if "index" in step:
        index = step["index"]
        if not isinstance(index, int) or isinstance(index, bool) or index != position:
            fail(
                f"{prefix}.index",
                f"Step indices must be contiguous starting at 1 (expected {position}, got {index!r})",
            )

    name = step.get("name")
    if not isinstance(name, str) or not name.strip():
        fail(f"{prefix}.name", "Step name is required")

    _check_enum(step.get("action_type"), ActionType, f"{prefix}.action_type", fail, required=True)

    params = step.get("action_params")
    if params is not None and not isinstance(params, dict):
        fail(f"{prefix}.action_params", "Action parameters must be an object")

    timeout = step.get("timeout_seconds")
    if timeout is not None and (
        not isinstance(timeout, int) or isinstance(timeout, bool) or timeout <= 0
    ):
        fail(f"{prefix}.timeout_seconds", "Timeout must be a positive integer")

    if "retryable" in step and not isinstance(step["retryable"], bool):
        fail(f"{prefix}.retryable", "Must be true or false")

    max_retries = step.get("max_retries")
    if max_retries is not None and (
        not isinstance(max_retries, int) or isinstance(max_retries, bool) or max_retries < 0
    ):
        fail(f"{prefix}.max_retries", "Must be a non-negative integer")

    description = step.get("description")
    if description is not None and not isinstance(description, str):
        fail(f"{prefix}.description", "Description must be a string")
