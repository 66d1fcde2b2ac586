"""Execution engine: the playbook run state machine.

    pending --start--> running
    running --step succeeds, more steps--> running (next step)
    running --step succeeds, last step--> completed
    running --step fails--> step_failed
    step_failed --retry--> running (same step, next attempt)
    step_failed --skip--> running (next step) or completed
    pending | running | step_failed --abort--> aborted

Every mutation reads the execution, computes the next state and writes
it back conditioned on the version it read, so concurrent callers
cannot overwrite each other. The engine never waits on step actions:
a step is dispatched only after the state that entered it is stored,
and its outcome is either returned by the dispatcher or reported
later through ``advance_step``.
"""

from datetime import UTC, datetime
from uuid import UUID

from responder.core import logging as log
from responder.core.errors import (
    ConflictError,
    EscalationError,
    NotFoundError,
    StepDispatchError,
    ValidationError,
)
from responder.execution.dispatcher import (
    EscalationEvent,
    EscalationNotifier,
    LogEscalationNotifier,
    NullDispatcher,
    StepActionDispatcher,
    StepContext,
)
from responder.models.execution import (
    Execution,
    ExecutionStatus,
    PlaybookStats,
    StepOutcome,
    StepResult,
)
from responder.models.playbook import ActionType
from responder.playbook.catalog import PlaybookCatalog
from responder.storage.base import ExecutionStore, IncidentDirectory, active_conflict


def _now() -> datetime:
    return datetime.now(UTC)


class ExecutionEngine:
    """Starts executions and drives them through their steps."""

    def __init__(
        self,
        catalog: PlaybookCatalog,
        store: ExecutionStore,
        incidents: IncidentDirectory,
        dispatcher: StepActionDispatcher | None = None,
        notifier: EscalationNotifier | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            catalog: Source of playbook definitions
            store: Execution persistence
            incidents: Incident reference lookup
            dispatcher: Performs step actions (default: every step waits for advance)
            notifier: Receives escalations (default: log only)
        """
        self.catalog = catalog
        self.store = store
        self.incidents = incidents
        self.dispatcher = dispatcher or NullDispatcher()
        self.notifier = notifier or LogEscalationNotifier()

    def start_execution(
        self,
        firm_id: str,
        incident_id: str,
        playbook_id: UUID | str,
        user_id: str | None,
    ) -> Execution:
        """Start a playbook against an incident and trigger its first step.

        Raises:
            NotFoundError: If the playbook or incident is missing, inactive
                or owned by another firm, or the playbook was deleted
                while starting
            ConflictError: If an active execution already exists for the
                incident and playbook, or the playbook changed while
                starting (retryable)
            StepDispatchError: If dispatching the first step raised
            EscalationError: If the first step ran out of attempts and
                notifying the escalation path failed
        """
        playbook = self.catalog.get(firm_id, playbook_id)
        if not playbook.is_active:
            raise NotFoundError("playbook", playbook.id)
        self._require_incident(firm_id, incident_id)

        existing = self.store.find_active(incident_id, playbook.id)
        if existing is not None:
            raise active_conflict(incident_id, playbook.id, existing.id)

        pending = self.store.insert(
            Execution(
                firm_id=firm_id,
                incident_id=incident_id,
                playbook_id=playbook.id,
                playbook_version=playbook.version,
                playbook_name=playbook.name,
                steps=[s.model_copy(deep=True) for s in playbook.steps],
                escalation_path=list(playbook.escalation_path),
                status=ExecutionStatus.PENDING,
                current_step_index=0,
                started_by=user_id,
            )
        )
        log.info(
            f"Started playbook '{playbook.name}' for incident {incident_id}",
            execution_id=pending.id,
            playbook_id=playbook.id,
            user_id=user_id,
        )

        running = pending.model_copy(
            update={
                "status": ExecutionStatus.RUNNING,
                "current_step_index": 1,
                "current_attempt": 1,
                "current_step_started_at": _now(),
            }
        )
        return self._commit(running, pending.version)

    def advance_step(
        self,
        firm_id: str,
        execution_id: UUID | str,
        outcome: StepOutcome | dict,
    ) -> Execution:
        """Record the outcome of the step the execution is waiting on.

        A failure is an expected outcome, not an error: it moves the
        execution to ``step_failed`` for an operator to retry, skip or
        abort. Nothing is aborted automatically.

        Raises:
            NotFoundError: If the execution or its incident is missing
            ConflictError: If the execution is terminal, not running, or
                changed since it was read (retryable)
            StepDispatchError: If dispatching the next step raised
            EscalationError: If the outcome was stored but notifying the
                escalation path failed
        """
        if isinstance(outcome, dict):
            outcome = StepOutcome(**outcome)

        execution = self._load_for_mutation(firm_id, execution_id, require_incident=True)
        if execution.status != ExecutionStatus.RUNNING:
            raise self._illegal(execution, "advance")

        updated, events = self._apply_outcome(execution, outcome)
        return self._commit(updated, execution.version, events)

    def skip_step(
        self,
        firm_id: str,
        execution_id: UUID | str,
        reason: str,
        user_id: str | None = None,
    ) -> Execution:
        """Skip the failed current step and move on.

        Raises:
            NotFoundError: If the execution or its incident is missing
            ConflictError: If the execution is terminal or not in step_failed
            ValidationError: If no reason is given
        """
        execution = self._load_for_mutation(firm_id, execution_id, require_incident=True)
        reason = _require_reason(reason)
        if execution.status != ExecutionStatus.STEP_FAILED:
            raise self._illegal(execution, "skip")

        now = _now()
        result = StepResult(
            step_index=execution.current_step_index,
            status="skipped",
            attempt=execution.current_attempt,
            started_at=execution.current_step_started_at or now,
            completed_at=now,
            notes=reason,
            recorded_by=user_id,
        )
        log.info(
            f"Skipped step {execution.current_step_index} of execution {execution.id}",
            reason=reason,
            user_id=user_id,
        )
        return self._commit(self._move_past_current(execution, result, now), execution.version)

    def retry_step(
        self,
        firm_id: str,
        execution_id: UUID | str,
        step_index: int,
        user_id: str | None = None,
    ) -> Execution:
        """Re-run the failed current step as a new attempt.

        Raises:
            NotFoundError: If the execution or its incident is missing
            ValidationError: If ``step_index`` is not the current step
            ConflictError: If the execution is terminal, not in step_failed,
                or the step has no attempts left
            StepDispatchError: If dispatching the step raised
        """
        execution = self._load_for_mutation(firm_id, execution_id, require_incident=True)
        if step_index != execution.current_step_index:
            raise ValidationError.for_field(
                "step_index",
                f"Only the current step ({execution.current_step_index}) can be retried",
            )
        if execution.status != ExecutionStatus.STEP_FAILED:
            raise self._illegal(execution, "retry")

        step = execution.current_step
        if not step.attempts_remain(execution.current_attempt):
            raise ConflictError(
                f"Step {step.index} of execution {execution.id} has no attempts left",
                remediation="Skip the step with a reason or abort the execution",
                context={
                    "execution_id": str(execution.id),
                    "step_index": step.index,
                    "attempt": execution.current_attempt,
                    "retryable": step.retryable,
                    "max_retries": step.max_retries,
                },
            )

        log.info(
            f"Retrying step {step.index} of execution {execution.id}",
            attempt=execution.current_attempt + 1,
            user_id=user_id,
        )
        retried = execution.model_copy(
            update={
                "status": ExecutionStatus.RUNNING,
                "current_attempt": execution.current_attempt + 1,
                "current_step_started_at": _now(),
            }
        )
        return self._commit(retried, execution.version)

    def abort_execution(
        self,
        firm_id: str,
        execution_id: UUID | str,
        user_id: str | None,
        reason: str,
    ) -> Execution:
        """Abort a non-terminal execution and notify its escalation path.

        In-flight step actions are not interrupted; the execution just
        stops accepting progress.

        Raises:
            NotFoundError: If the execution is missing
            ConflictError: If the execution is already terminal
            ValidationError: If no reason is given
            EscalationError: If the abort was stored but notifying failed
        """
        execution = self._load_for_mutation(firm_id, execution_id, require_incident=False)
        reason = _require_reason(reason)

        aborted = execution.model_copy(
            update={
                "status": ExecutionStatus.ABORTED,
                "aborted_at": _now(),
                "aborted_by": user_id,
                "abort_reason": reason,
            }
        )
        stored = self.store.update(aborted, execution.version)
        log.info(f"Aborted execution {stored.id}", reason=reason, user_id=user_id)
        self._notify(stored, [EscalationEvent.for_execution(stored, "aborted", reason)])
        return stored

    def get_execution_status(self, firm_id: str, execution_id: UUID | str) -> Execution:
        """Load an execution owned by ``firm_id``.

        Raises:
            NotFoundError: If missing or owned by another firm
        """
        eid = _parse_execution_id(execution_id)
        execution = self.store.get(eid)
        if execution is None or execution.firm_id != firm_id:
            raise NotFoundError("execution", eid)
        return execution

    def get_execution_history(self, firm_id: str, incident_id: str) -> list[Execution]:
        """List an incident's executions, newest first."""
        return self.store.list_for_incident(firm_id, incident_id)

    def get_playbook_stats(self, firm_id: str, playbook_id: UUID | str) -> PlaybookStats:
        """Aggregate execution outcomes for a playbook.

        Raises:
            NotFoundError: If the playbook is missing or owned by another firm
        """
        playbook = self.catalog.get(firm_id, playbook_id)
        executions = self.store.list_for_playbook(firm_id, playbook.id)

        by_status = {status.value: 0 for status in ExecutionStatus}
        durations = []
        failed = skipped = 0
        for execution in executions:
            by_status[execution.status.value] += 1
            if execution.status == ExecutionStatus.COMPLETED and execution.duration_ms is not None:
                durations.append(execution.duration_ms)
            failed += sum(1 for r in execution.step_results if r.status == "failed")
            skipped += sum(1 for r in execution.step_results if r.status == "skipped")

        finished = by_status["completed"] + by_status["aborted"]
        return PlaybookStats(
            playbook_id=playbook.id,
            total_executions=len(executions),
            by_status=by_status,
            completion_rate=round(by_status["completed"] / finished, 4) if finished else 0.0,
            average_duration_ms=int(sum(durations) / len(durations)) if durations else None,
            failed_step_results=failed,
            skipped_step_results=skipped,
        )

    def _load_for_mutation(
        self, firm_id: str, execution_id: UUID | str, require_incident: bool
    ) -> Execution:
        execution = self.get_execution_status(firm_id, execution_id)
        if execution.is_terminal:
            raise ConflictError(
                f"Execution {execution.id} is {execution.status.value} and cannot change",
                remediation="Start a new execution if further response is needed",
                context={"execution_id": str(execution.id), "status": execution.status.value},
            )
        if require_incident:
            self._require_incident(firm_id, execution.incident_id)
        return execution

    def _require_incident(self, firm_id: str, incident_id: str) -> None:
        if self.incidents.get(firm_id, incident_id) is None:
            raise NotFoundError("incident", incident_id)

    def _apply_outcome(
        self, execution: Execution, outcome: StepOutcome
    ) -> tuple[Execution, list[EscalationEvent]]:
        """Record ``outcome`` for the current step and compute the next state."""
        step = execution.current_step
        now = _now()
        result = StepResult(
            step_index=step.index,
            status="success" if outcome.success else "failed",
            attempt=execution.current_attempt,
            started_at=execution.current_step_started_at or now,
            completed_at=now,
            output=outcome.data,
            error=None if outcome.success else outcome.error,
            notes=outcome.notes,
            recorded_by=outcome.user_id,
        )

        if outcome.success:
            log.debug(
                f"Step {step.index}/{execution.step_count} '{step.name}' succeeded",
                execution_id=execution.id,
                attempt=execution.current_attempt,
            )
            return self._move_past_current(execution, result, now), []

        log.warning(
            f"Step {step.index}/{execution.step_count} '{step.name}' failed",
            execution_id=execution.id,
            attempt=execution.current_attempt,
            error=outcome.error,
        )
        failed = execution.with_result(result, status=ExecutionStatus.STEP_FAILED)
        if step.attempts_remain(execution.current_attempt):
            return failed, []
        detail = f"Step {step.index} '{step.name}' failed on attempt {execution.current_attempt}"
        if outcome.error:
            detail += f": {outcome.error}"
        return failed, [EscalationEvent.for_execution(failed, "retries_exhausted", detail)]

    def _move_past_current(
        self, execution: Execution, result: StepResult, now: datetime
    ) -> Execution:
        if execution.current_step_index >= execution.step_count:
            log.info(f"Execution {execution.id} completed", incident_id=execution.incident_id)
            return execution.with_result(
                result, status=ExecutionStatus.COMPLETED, completed_at=now
            )
        return execution.with_result(
            result,
            status=ExecutionStatus.RUNNING,
            current_step_index=execution.current_step_index + 1,
            current_attempt=1,
            current_step_started_at=now,
        )

    def _commit(
        self,
        execution: Execution,
        expected_version: int,
        events: list[EscalationEvent] | None = None,
    ) -> Execution:
        """Write the new state, then dispatch the step it entered.

        The state is stored before any step action runs, so an action
        reporting back through ``advance_step`` finds the execution
        waiting on its step. Outcomes the dispatcher returns directly are
        written as further version-checked updates, cascading through
        consecutive automatic steps until a manual step, a pending
        action or a failure stops the run.
        """
        stored = self.store.update(execution, expected_version)
        self._notify(stored, events or [])

        while stored.status == ExecutionStatus.RUNNING:
            step = stored.current_step
            if step.action_type == ActionType.MANUAL:
                break
            log.debug(
                f"Dispatching step {step.index} '{step.name}' ({step.action_type.value})",
                execution_id=stored.id,
                attempt=stored.current_attempt,
            )
            try:
                outcome = self.dispatcher.dispatch(StepContext.for_execution(stored))
            except Exception as e:
                message = str(e) or type(e).__name__
                log.error(
                    f"Dispatcher raised on step {step.index} '{step.name}'",
                    execution_id=stored.id,
                    error=message,
                )
                stored, _ = self._record_outcome(stored, StepOutcome(success=False, error=message))
                raise StepDispatchError(stored, step.index, message) from e
            if outcome is None:
                # The action reports later; it may already have done so.
                return self.store.get(stored.id) or stored
            stored, applied = self._record_outcome(stored, outcome)
            if not applied:
                break
        return stored

    def _record_outcome(
        self, dispatched: Execution, outcome: StepOutcome
    ) -> tuple[Execution, bool]:
        """Store a dispatcher's outcome for the step attempt it was given.

        When the execution changed in the meantime the outcome still
        applies as long as the same attempt is waiting; otherwise it was
        superseded and the current state is returned unchanged.

        Returns:
            The stored execution and whether the outcome was applied
        """
        current = dispatched
        while True:
            updated, events = self._apply_outcome(current, outcome)
            try:
                stored = self.store.update(updated, current.version)
            except ConflictError:
                current = self.store.get(dispatched.id)
                if current is not None and _same_attempt(current, dispatched):
                    continue
                log.warning(
                    f"Outcome of step {dispatched.current_step_index} was superseded",
                    execution_id=dispatched.id,
                    attempt=dispatched.current_attempt,
                )
                return current or dispatched, False
            self._notify(stored, events)
            return stored, True

    def _notify(self, execution: Execution, events: list[EscalationEvent]) -> None:
        for event in events:
            try:
                self.notifier.notify(event)
            except Exception as e:
                message = str(e) or type(e).__name__
                log.error(
                    f"Escalation '{event.reason}' for execution {execution.id} failed",
                    recipients=event.recipients,
                    error=message,
                )
                raise EscalationError(execution, event.reason, message) from e

    @staticmethod
    def _illegal(execution: Execution, action: str) -> ConflictError:
        return ConflictError(
            f"Cannot {action} execution {execution.id} while it is {execution.status.value}",
            context={
                "execution_id": str(execution.id),
                "status": execution.status.value,
                "current_step_index": execution.current_step_index,
            },
        )


def _require_reason(reason: str | None) -> str:
    if reason is None or not str(reason).strip():
        raise ValidationError.for_field("reason", "A non-empty reason is required")
    return str(reason).strip()


def _parse_execution_id(execution_id: UUID | str) -> UUID:
    if isinstance(execution_id, UUID):
        return execution_id
    try:
        return UUID(str(execution_id))
    except ValueError:
        raise NotFoundError("execution", execution_id) from None


def _same_attempt(current: Execution, dispatched: Execution) -> bool:
    return (
        current.status == ExecutionStatus.RUNNING
        and current.current_step_index == dispatched.current_step_index
        and current.current_attempt == dispatched.current_attempt
    )
