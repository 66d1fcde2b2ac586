"""Structured error handling for Responder."""

import sys
from typing import TYPE_CHECKING, Any, NoReturn

from responder.models.error import ErrorCode, FieldError, StructuredError

if TYPE_CHECKING:
    from responder.models.execution import Execution


class ResponderError(Exception):
    """Base exception for Responder errors.

    Wraps a StructuredError for consistent error handling.
    """

    exit_code = 1

    def __init__(
        self,
        code: str,
        message: str,
        remediation: str,
        retryable: bool = False,
        context: dict[str, Any] | None = None,
    ):
        self.error = StructuredError(
            code=code,
            message=message,
            remediation=remediation,
            retryable=retryable,
            context=context,
        )
        super().__init__(message)

    @property
    def code(self) -> str:
        return self.error.code

    def to_structured(self) -> StructuredError:
        """Convert to StructuredError."""
        return self.error

    def to_structured_error(self) -> dict:
        """Convert to JSON-serializable dict for output."""
        return self.error.model_dump(mode="json", exclude_none=True)


class ValidationError(ResponderError):
    """Malformed or missing input.

    Carries every violated field, not just the first one found.
    """

    exit_code = 2

    def __init__(self, message: str, errors: list[FieldError] | None = None):
        self.errors = errors or []
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            remediation="Correct the listed fields and try again",
            retryable=False,
            context=(
                {"errors": [e.model_dump() for e in self.errors]} if self.errors else None
            ),
        )

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        """Build an error for a single field."""
        return cls(message, [FieldError(field=field, message=message)])

    @property
    def fields(self) -> list[str]:
        return [e.field for e in self.errors]


class NotFoundError(ResponderError):
    """Referenced resource is missing or belongs to another firm."""

    exit_code = 3

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{resource.capitalize()} {resource_id} not found",
            remediation=f"Check the {resource} ID and the firm it belongs to",
            retryable=False,
            context={"resource": resource, "resource_id": str(resource_id)},
        )


class ConflictError(ResponderError):
    """Operation is illegal in the current state."""

    exit_code = 4

    def __init__(
        self,
        message: str,
        remediation: str = "Re-fetch the current state and decide whether to retry",
        retryable: bool = False,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(
            code=ErrorCode.CONFLICT,
            message=message,
            remediation=remediation,
            retryable=retryable,
            context=context,
        )


class StepDispatchError(ResponderError):
    """Step action dispatcher raised while starting a step.

    The failure has already been recorded on the execution, which is
    available as ``execution``.
    """

    def __init__(self, execution: "Execution", step_index: int, message: str):
        self.execution = execution
        super().__init__(
            code=ErrorCode.STEP_DISPATCH_ERROR,
            message=f"Step {step_index} of execution {execution.id} failed to dispatch: {message}",
            remediation="Retry, skip or abort the failed step",
            retryable=False,
            context={
                "execution_id": str(execution.id),
                "step_index": step_index,
                "status": execution.status.value,
            },
        )


class EscalationError(ResponderError):
    """Escalation notifier raised after a state change was stored.

    The change itself (an abort or an exhausted step) is persisted and
    available as ``execution``; only the notification was lost.
    """

    def __init__(self, execution: "Execution", reason: str, message: str):
        self.execution = execution
        super().__init__(
            code=ErrorCode.ESCALATION_ERROR,
            message=f"Escalation '{reason}' for execution {execution.id} was not delivered: {message}",
            remediation="Notify the escalation path manually; do not repeat the operation",
            retryable=False,
            context={
                "execution_id": str(execution.id),
                "reason": reason,
                "status": execution.status.value,
            },
        )


class ConfigError(ResponderError):
    """Configuration file is unreadable or invalid."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(
            code=ErrorCode.CONFIG_ERROR,
            message=message,
            remediation="Fix the configuration file or pass options on the command line",
            retryable=False,
            context={"path": path} if path else None,
        )


def handle_error(error: ResponderError | Exception, exit_code: int | None = None) -> NoReturn:
    """Handle an error by outputting it and exiting.

    Args:
        error: The error to handle
        exit_code: Exit code to use (defaults to the error's own)
    """
    from responder.cli.output import output_error

    if isinstance(error, ResponderError):
        output_error(error.to_structured())
        code = exit_code if exit_code is not None else error.exit_code
    else:
        structured = StructuredError(
            code=ErrorCode.INTERNAL_ERROR,
            message=str(error),
            remediation="This is an unexpected error. Please report it.",
            retryable=False,
            context={"type": type(error).__name__},
        )
        output_error(structured)
        code = exit_code if exit_code is not None else 1

    sys.exit(code)
