"""Execution models for running playbooks against incidents."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from responder.models.playbook import PlaybookStep


class ExecutionStatus(str, Enum):
    """Status of a playbook execution."""

    PENDING = "pending"
    RUNNING = "running"
    STEP_FAILED = "step_failed"
    COMPLETED = "completed"
    ABORTED = "aborted"


TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.ABORTED})
ACTIVE_STATUSES = frozenset(
    {ExecutionStatus.PENDING, ExecutionStatus.RUNNING, ExecutionStatus.STEP_FAILED}
)


class StepResult(BaseModel):
    """Outcome recorded for one attempt at one step."""

    step_index: int = Field(..., ge=1, description="Step the result belongs to")
    status: Literal["success", "failed", "skipped"] = Field(
        ..., description="Step outcome"
    )
    attempt: int = Field(..., ge=1, description="Attempt number for the step")
    started_at: datetime = Field(..., description="When the attempt started")
    completed_at: datetime = Field(..., description="When the outcome was recorded")
    output: dict[str, Any] | None = Field(default=None, description="Action output data")
    error: str | None = Field(default=None, description="Error text, verbatim")
    notes: str | None = Field(default=None, description="Operator notes or skip reason")
    recorded_by: str | None = Field(default=None, description="User reporting the outcome")

    model_config = {"frozen": True}


class StepOutcome(BaseModel):
    """Outcome of the current step as reported by a caller or dispatcher."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    notes: str | None = None
    user_id: str | None = None


class Execution(BaseModel):
    """A single run of a playbook against one incident."""

    id: UUID = Field(default_factory=uuid4, description="Unique execution identifier")
    firm_id: str = Field(..., description="Owning tenant")
    incident_id: str = Field(..., description="Incident being responded to")
    playbook_id: UUID = Field(..., description="Playbook being executed")
    playbook_version: int = Field(..., description="Playbook version at start")
    playbook_name: str = Field(..., description="Playbook name at start")
    steps: list[PlaybookStep] = Field(..., min_length=1, description="Step snapshot")
    escalation_path: list[str] = Field(
        default_factory=list, description="Escalation snapshot"
    )
    status: ExecutionStatus = Field(default=ExecutionStatus.PENDING)
    current_step_index: int = Field(
        default=0, ge=0, description="Step awaiting action (0 before the first step)"
    )
    current_attempt: int = Field(default=0, ge=0, description="Attempt of the current step")
    step_results: list[StepResult] = Field(default_factory=list)
    started_by: str | None = Field(default=None)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    current_step_started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
    aborted_at: datetime | None = Field(default=None)
    aborted_by: str | None = Field(default=None)
    abort_reason: str | None = Field(default=None)
    version: int = Field(default=0, ge=0, description="Optimistic concurrency marker")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def current_step(self) -> PlaybookStep | None:
        """Snapshot step at ``current_step_index``, if any."""
        if 1 <= self.current_step_index <= len(self.steps):
            return self.steps[self.current_step_index - 1]
        return None

    @property
    def can_retry(self) -> bool:
        """Whether the failed current step still has attempts left."""
        step = self.current_step
        return (
            self.status == ExecutionStatus.STEP_FAILED
            and step is not None
            and step.attempts_remain(self.current_attempt)
        )

    @property
    def duration_ms(self) -> int | None:
        """Total run time for terminal executions."""
        end_time = self.completed_at or self.aborted_at
        if end_time is None:
            return None
        return int((end_time - self.started_at).total_seconds() * 1000)

    def with_result(self, result: StepResult, **changes: Any) -> "Execution":
        """Return a copy with ``result`` appended and ``changes`` applied.

        Raises:
            ValueError: If the result would break step ordering
        """
        if self.step_results and result.step_index < self.step_results[-1].step_index:
            raise ValueError(
                f"Step result for step {result.step_index} recorded after "
                f"step {self.step_results[-1].step_index}"
            )
        return self.model_copy(
            update={"step_results": [*self.step_results, result], **changes}
        )

    def to_json_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return self.model_dump(mode="json")


class PlaybookStats(BaseModel):
    """Aggregate execution statistics for a playbook."""

    playbook_id: UUID
    total_executions: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    completion_rate: float = 0.0
    average_duration_ms: int | None = None
    failed_step_results: int = 0
    skipped_step_results: int = 0
