"""Structured error model for Responder."""

from typing import Any

from pydantic import BaseModel, Field


class FieldError(BaseModel):
    """A single violated field reported by validation."""

    field: str = Field(..., description="Dotted path of the offending field")
    message: str = Field(..., description="What is wrong with the value")


class StructuredError(BaseModel):
    """Structured error response format.

    All errors emitted by Responder follow this schema to enable
    programmatic error handling and provide actionable remediation.
    """

    code: str = Field(
        ...,
        pattern=r"^[A-Z][A-Z0-9_]*$",
        description="Error code (e.g., NOT_FOUND)",
        examples=[
            "VALIDATION_ERROR",
            "NOT_FOUND",
            "CONFLICT",
            "STEP_DISPATCH_ERROR",
            "ESCALATION_ERROR",
        ],
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
    )

    remediation: str = Field(
        ...,
        description="Suggested fix or next step",
    )

    retryable: bool = Field(
        ...,
        description="Whether retry may succeed",
    )

    context: dict[str, Any] | None = Field(
        default=None,
        description="Additional context (execution_id, errors, etc.)",
    )

    model_config = {"extra": "forbid"}


class ErrorCode:
    """Standard error codes for Responder."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    STEP_DISPATCH_ERROR = "STEP_DISPATCH_ERROR"
    ESCALATION_ERROR = "ESCALATION_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
