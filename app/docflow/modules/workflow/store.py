from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.docflow.db import session_scope
from app.docflow.errors import NotFoundError, PersistenceError
from app.docflow.modules.workflow.entities import STEP_PENDING, Submission, WorkflowStep
from app.docflow.modules.workflow.models import FormSubmission, FormSubmissionStep
from app.docflow.modules.workflow.stages import DRAFT

logger = logging.getLogger(__name__)

VALID_PRIORITIES = ("Low", "Medium", "High", "Critical")


class SubmissionStore(Protocol):
    def load(self, submission_id: int) -> Submission: ...

    def save(self, submission: Submission) -> None: ...


def generate_submission_number(now: datetime | None = None) -> str:
    now = now or datetime.utcnow()
    return f"SUB-{now:%Y%m%d}-{random.randint(0, 9999):04d}"


def to_entity(row: FormSubmission) -> Submission:
    return Submission(
        id=row.id,
        submission_number=row.submission_number,
        title=row.title,
        status=row.status,
        department=row.department,
        submitted_by=row.submitted_by_user_id,
        submitted_at=row.submitted_at,
        completed_at=row.completed_at,
        approval_workflow=[
            WorkflowStep(
                step=st.step,
                status=st.status,
                actor_id=st.actor_user_id,
                comments=st.comments or "",
                processed_at=st.processed_at,
            )
            for st in sorted(row.steps, key=lambda st: st.position)
        ],
        priority=row.priority,
        notes=row.notes,
        version=row.version,
    )


class SqlSubmissionStore:
    """
    Submission persistence with an optimistic version check on save.

    `save()` only succeeds when the stored version still equals the version
    that was loaded; a concurrent writer makes it raise PersistenceError and
    nothing is written.
    """

    def __init__(self, sm: sessionmaker) -> None:
        self._sm = sm

    def load(self, submission_id: int) -> Submission:
        try:
            with session_scope(self._sm) as s:
                row = s.get(FormSubmission, submission_id)
                if row is None:
                    raise NotFoundError("Form submission not found")
                return to_entity(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load submission {submission_id}: {e}") from e

    def save(self, submission: Submission) -> None:
        now = datetime.utcnow()
        try:
            with session_scope(self._sm) as s:
                result = s.execute(
                    update(FormSubmission)
                    .where(
                        FormSubmission.id == submission.id,
                        FormSubmission.version == submission.version,
                    )
                    .values(
                        status=submission.status,
                        submitted_at=submission.submitted_at,
                        completed_at=submission.completed_at,
                        version=submission.version + 1,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise PersistenceError(
                        f"Submission {submission.id} was modified concurrently (expected version {submission.version})."
                    )
                self._sync_steps(s, submission)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save submission {submission.id}: {e}") from e
        submission.version += 1

    def _sync_steps(self, s, submission: Submission) -> None:
        existing = {
            st.position: st
            for st in s.query(FormSubmissionStep).filter(FormSubmissionStep.submission_id == submission.id)
        }
        if len(existing) > len(submission.approval_workflow):
            raise PersistenceError("Workflow steps are append-only; refusing to drop recorded steps.")
        for position, step in enumerate(submission.approval_workflow):
            row = existing.get(position)
            if row is None:
                s.add(
                    FormSubmissionStep(
                        submission_id=submission.id,
                        position=position,
                        step=step.step,
                        status=step.status,
                        actor_user_id=step.actor_id,
                        comments=step.comments or "",
                        processed_at=step.processed_at,
                    )
                )
                continue
            if row.step != step.step:
                raise PersistenceError(f"Workflow step {position} changed kind ({row.step} -> {step.step}).")
            if row.status != step.status and row.status != STEP_PENDING:
                raise PersistenceError(f"Workflow step {position} is already {row.status}.")
            row.status = step.status
            row.actor_user_id = step.actor_id
            row.comments = step.comments or ""
            row.processed_at = step.processed_at

    def create_draft(
        self,
        *,
        title: str,
        department: str,
        submitted_by: int,
        priority: str = "Medium",
        notes: str | None = None,
    ) -> Submission:
        """New submission in Draft. Retries on the rare submission-number collision."""
        for attempt in range(5):
            try:
                with session_scope(self._sm) as s:
                    now = datetime.utcnow()
                    row = FormSubmission(
                        submission_number=generate_submission_number(now),
                        title=title,
                        department=department,
                        priority=priority,
                        notes=notes,
                        status=DRAFT,
                        submitted_by_user_id=submitted_by,
                        version=1,
                        created_at=now,
                        updated_at=now,
                    )
                    s.add(row)
                    s.flush()
                    return to_entity(row)
            except IntegrityError:
                logger.warning("Submission number collision (attempt %s); retrying", attempt + 1)
            except SQLAlchemyError as e:
                raise PersistenceError(f"Could not create submission: {e}") from e
        raise PersistenceError("Could not allocate a unique submission number.")
