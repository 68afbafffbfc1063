"""
Form-approval workflow engine.

WorkflowEngine.process() applies one human-triggered action to a submission:
load, validate (stage, role, action, source stage), run the action handler,
save, audit, and schedule auto-progression when the resulting stage asks for
it. AutoProgressor.run() is the deferred half: it advances a submission out of
an auto-progress stage without a human, and re-schedules itself while the
chain continues.

Every scheduled continuation carries the stage it expects the submission to
be in. If anything moved the submission in the meantime (a reject, a manual
approval, another continuation), the continuation is a logged no-op.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any

from app.docflow.audit import AUDIT_FAILURE, AUDIT_SUCCESS, AuditEntry, AuditRecorder
from app.docflow.errors import InvalidStateError, NotFoundError, PermissionDeniedError, WorkflowError
from app.docflow.modules.notifications.service import NotificationDispatcher
from app.docflow.modules.workflow.entities import (
    STEP_APPROVAL,
    STEP_APPROVED,
    STEP_COMPLETION,
    STEP_PENDING,
    STEP_REJECTED,
    STEP_VERIFICATION,
    Actor,
    Submission,
    WorkflowStep,
)
from app.docflow.modules.workflow.resolver import ActorResolver
from app.docflow.modules.workflow.scheduler import Scheduler
from app.docflow.modules.workflow.stages import (
    ACTION_SOURCES,
    APPROVED,
    COMPLETED,
    REJECTED,
    SUBMITTED,
    UNDER_VERIFICATION,
    VERIFIED,
    Action,
    StageDefinition,
    StageTable,
)
from app.docflow.modules.workflow.store import SubmissionStore

logger = logging.getLogger(__name__)


@dataclass
class WorkflowResult:
    success: bool
    message: str
    data: Submission

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message, "data": self.data.to_dict()}


class SubmissionLocks:
    """One mutex per submission id, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, tuple[threading.RLock, int]] = {}

    @contextmanager
    def hold(self, submission_id: int) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(submission_id, (None, 0))
            if lock is None:
                lock = threading.RLock()
            self._locks[submission_id] = (lock, users + 1)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                lock, users = self._locks[submission_id]
                if users <= 1:
                    del self._locks[submission_id]
                else:
                    self._locks[submission_id] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class WorkflowEngine:
    def __init__(
        self,
        *,
        store: SubmissionStore,
        stages: StageTable,
        resolver: ActorResolver,
        audit: AuditRecorder,
        notifications: NotificationDispatcher,
        scheduler: Scheduler,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store
        self.stages = stages
        self.resolver = resolver
        self.audit = audit
        self.notifications = notifications
        self.scheduler = scheduler
        self.clock = clock
        self.locks = SubmissionLocks()
        self.auto_progressor = AutoProgressor(self)

        self._handlers: dict[Action, Callable[[Submission, Actor | None, str], str]] = {
            Action.SUBMIT_FORM: self._submit_form,
            Action.START_VERIFICATION: self._start_verification,
            Action.VERIFY_FORM: self._verify_form,
            Action.START_APPROVAL: self._start_approval,
            Action.APPROVE_FORM: self._approve_form,
            Action.REJECT_FORM: self._reject_form,
            Action.COMPLETE_WORKFLOW: self._complete_workflow,
        }
        missing = set(Action) - set(self._handlers)
        if missing:
            raise RuntimeError(f"Workflow actions without a handler: {sorted(a.value for a in missing)}")

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def process(
        self,
        submission_id: int,
        action: str | Action,
        actor: Actor,
        options: dict[str, Any] | None = None,
    ) -> WorkflowResult:
        raw_comments = (options or {}).get("comments")
        comments = "" if raw_comments is None else str(raw_comments).strip()
        action_name = action.value if isinstance(action, Action) else str(action)

        with self.locks.hold(submission_id):
            try:
                submission, previous, message = self._process_locked(submission_id, action, actor, comments)
            except Exception as e:
                logger.warning(
                    "Workflow action %s on submission %s by user %s failed: %s",
                    action_name,
                    submission_id,
                    actor.id,
                    e,
                )
                self.audit.record(
                    AuditEntry(
                        actor_id=actor.id,
                        actor_email=actor.email,
                        action=action_name,
                        description=f"Workflow error: {e}",
                        resource_ref=str(submission_id),
                        status=AUDIT_FAILURE,
                        department=actor.department,
                        metadata={
                            "error": str(e),
                            "errorKind": e.kind if isinstance(e, WorkflowError) else type(e).__name__,
                            "comments": comments,
                        },
                        timestamp=self.clock(),
                    )
                )
                raise

            self.audit.record(
                AuditEntry(
                    actor_id=actor.id,
                    actor_email=actor.email,
                    action=action_name,
                    description=f"{message}: {submission.title}",
                    resource_ref=str(submission.id),
                    status=AUDIT_SUCCESS,
                    department=submission.department,
                    metadata={
                        "comments": comments,
                        "previousStage": previous,
                        "newStage": submission.status,
                    },
                    timestamp=self.clock(),
                )
            )
            logger.info(
                "Submission %s: %s -> %s via %s (user %s)",
                submission.submission_number,
                previous,
                submission.status,
                action_name,
                actor.id,
            )

            new_stage = self.stages.get(submission.status)
            if new_stage is not None and new_stage.auto_progress:
                self.schedule_auto_progress(submission.id, new_stage)

        return WorkflowResult(success=True, message=message, data=submission)

    def _process_locked(
        self,
        submission_id: int,
        action: str | Action,
        actor: Actor,
        comments: str,
    ) -> tuple[Submission, str, str]:
        submission = self.store.load(submission_id)

        current = self.stages.get(submission.status)
        if current is None:
            raise InvalidStateError(f"Invalid current stage: {submission.status}")

        if current.required_roles and actor.role not in current.required_roles:
            raise PermissionDeniedError(
                f"Role '{actor.role}' may not act on a submission in stage '{current.name}'"
            )

        act = Action.parse(action)
        if submission.status not in ACTION_SOURCES[act]:
            raise InvalidStateError(f"Action '{act.value}' is not allowed from stage '{submission.status}'")

        previous = submission.status
        message = self.apply(act, submission, actor, comments)
        self.store.save(submission)
        return submission, previous, message

    def apply(self, action: Action, submission: Submission, actor: Actor | None, comments: str = "") -> str:
        """Mutate `submission` in memory for `action`; returns the result message."""
        return self._handlers[action](submission, actor, comments)

    def schedule_auto_progress(self, submission_id: int, stage: StageDefinition) -> None:
        try:
            self.scheduler.after(
                stage.auto_progress_delay_ms,
                partial(self.auto_progressor.run, submission_id, stage.name),
            )
        except Exception:
            logger.exception("Could not schedule auto-progress for submission %s at %s", submission_id, stage.name)
            return
        logger.debug(
            "Scheduled auto-progress for submission %s out of %s in %sms",
            submission_id,
            stage.name,
            stage.auto_progress_delay_ms,
        )

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------

    def _step(self, step: str, status: str, actor: Actor | None, comments: str) -> WorkflowStep:
        return WorkflowStep(
            step=step,
            status=status,
            actor_id=actor.id if actor else None,
            comments=comments,
            processed_at=self.clock(),
        )

    def _settle(self, submission: Submission, step: str, status: str, actor: Actor | None, comments: str) -> None:
        """Resolve the latest pending `step`, or record an already-resolved one if none is pending."""
        pending = submission.latest_pending(step)
        if pending is None:
            submission.approval_workflow.append(self._step(step, status, actor, comments))
            return
        pending.status = status
        pending.comments = comments
        pending.processed_at = self.clock()
        if actor is not None:
            pending.actor_id = actor.id

    def _submit_form(self, submission: Submission, actor: Actor | None, comments: str) -> str:
        submission.status = SUBMITTED
        if submission.submitted_at is None:
            submission.submitted_at = self.clock()
        return "Form submitted successfully"

    def _start_verification(self, submission: Submission, actor: Actor | None, comments: str) -> str:
        submission.status = UNDER_VERIFICATION
        submission.approval_workflow.append(
            self._step(STEP_VERIFICATION, STEP_PENDING, actor, comments or "Verification started")
        )
        return "Verification started"

    def _verify_form(self, submission: Submission, actor: Actor | None, comments: str) -> str:
        submission.status = VERIFIED
        self._settle(submission, STEP_VERIFICATION, STEP_APPROVED, actor, comments or "Verification completed")
        return "Form verified successfully"

    def _start_approval(self, submission: Submission, actor: Actor | None, comments: str) -> str:
        submission.status = APPROVED
        submission.approval_workflow.append(
            self._step(STEP_APPROVAL, STEP_PENDING, actor, comments or "Approval started")
        )
        return "Approval started"

    def _approve_form(self, submission: Submission, actor: Actor | None, comments: str) -> str:
        submission.status = APPROVED
        self._settle(submission, STEP_APPROVAL, STEP_APPROVED, actor, comments or "Form approved")
        return "Form approved successfully"

    def _reject_form(self, submission: Submission, actor: Actor | None, comments: str) -> str:
        kind = STEP_VERIFICATION if submission.status == UNDER_VERIFICATION else STEP_APPROVAL
        pending = submission.latest_pending()
        if pending is not None:
            kind = pending.step
        submission.status = REJECTED
        self._settle(submission, kind, STEP_REJECTED, actor, comments or "Form rejected")
        return "Form rejected"

    def _complete_workflow(self, submission: Submission, actor: Actor | None, comments: str) -> str:
        pending = submission.latest_pending(STEP_APPROVAL)
        if pending is not None:
            pending.status = STEP_APPROVED
            pending.processed_at = self.clock()
        submission.status = COMPLETED
        if submission.completed_at is None:
            submission.completed_at = self.clock()
        submission.approval_workflow.append(
            self._step(STEP_COMPLETION, STEP_APPROVED, actor, comments or "Workflow completed")
        )
        return "Workflow completed successfully"


class AutoProgressor:
    """Advances a submission out of an auto-progress stage without a human actor."""

    def __init__(self, engine: WorkflowEngine) -> None:
        self.engine = engine

    def run(self, submission_id: int, expected_stage: str) -> None:
        try:
            with self.engine.locks.hold(submission_id):
                self._run_locked(submission_id, expected_stage)
        except Exception:
            logger.exception("Auto-progress error for submission %s (expected %s)", submission_id, expected_stage)

    def _run_locked(self, submission_id: int, expected_stage: str) -> None:
        engine = self.engine
        try:
            submission = engine.store.load(submission_id)
        except NotFoundError:
            logger.info("Auto-progress skipped: submission %s no longer exists", submission_id)
            return

        if submission.status != expected_stage:
            logger.info(
                "Auto-progress skipped: submission %s is %s, expected %s",
                submission.submission_number,
                submission.status,
                expected_stage,
            )
            return

        current = engine.stages.get(submission.status)
        if current is None or not current.auto_progress or current.next_stage is None or current.action is None:
            logger.info("Auto-progress skipped: stage %s does not auto-progress", submission.status)
            return
        next_stage = engine.stages.next_of(current)
        if next_stage is None:
            logger.error("Stage table has no stage named %s", current.next_stage)
            return

        actor: Actor | None = None
        if next_stage.required_roles:
            actor = engine.resolver.resolve(next_stage.required_roles, submission.department)
            if actor is None and not next_stage.is_terminal:
                logger.info(
                    "No user found for stage %s (department %s), skipping auto-progress of %s",
                    next_stage.name,
                    submission.department,
                    submission.submission_number,
                )
                return

        previous = submission.status
        action = Action(current.action)
        engine.apply(action, submission, actor, "")
        engine.store.save(submission)

        engine.audit.record(
            AuditEntry(
                actor_id=actor.id if actor else submission.submitted_by,
                actor_email=actor.email if actor else None,
                action=action.value,
                description=f"Auto-progressed to {next_stage.name}: {submission.title}",
                resource_ref=str(submission.id),
                status=AUDIT_SUCCESS,
                department=submission.department,
                metadata={
                    "previousStage": previous,
                    "newStage": next_stage.name,
                    "autoProgress": True,
                    "assignedUserId": actor.id if actor else None,
                },
                timestamp=engine.clock(),
            )
        )

        if actor is not None:
            engine.notifications.send_workflow_notification(actor, submission, next_stage.name)

        logger.info(
            "Auto-progressed submission %s from %s to %s",
            submission.submission_number,
            previous,
            next_stage.name,
        )

        if next_stage.auto_progress:
            engine.schedule_auto_progress(submission.id, next_stage)
