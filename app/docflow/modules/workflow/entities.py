"""
Plain data handed between the workflow engine and its collaborators.

The engine never touches ORM rows; SqlSubmissionStore maps these to and from
FormSubmission / FormSubmissionStep.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

STEP_VERIFICATION = "verification"
STEP_APPROVAL = "approval"
STEP_COMPLETION = "completion"

STEP_PENDING = "pending"
STEP_APPROVED = "approved"
STEP_REJECTED = "rejected"


@dataclass(frozen=True)
class Actor:
    id: int | None
    role: str
    department: str
    email: str | None = None
    full_name: str = ""

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(
            id=user.id,
            role=user.role,
            department=user.department,
            email=user.email,
            full_name=user.full_name or "",
        )


@dataclass
class WorkflowStep:
    step: str
    status: str
    actor_id: int | None
    comments: str = ""
    processed_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "status": self.status,
            "actor_id": self.actor_id,
            "comments": self.comments,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }


@dataclass
class Submission:
    id: int
    submission_number: str
    title: str
    status: str
    department: str
    submitted_by: int
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    approval_workflow: list[WorkflowStep] = field(default_factory=list)
    priority: str = "Medium"
    notes: str | None = None
    version: int = 1

    def latest_pending(self, step: str | None = None) -> WorkflowStep | None:
        for item in reversed(self.approval_workflow):
            if item.status == STEP_PENDING and (step is None or item.step == step):
                return item
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submission_number": self.submission_number,
            "title": self.title,
            "status": self.status,
            "department": self.department,
            "priority": self.priority,
            "notes": self.notes,
            "submitted_by": self.submitted_by,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "approval_workflow": [s.to_dict() for s in self.approval_workflow],
            "version": self.version,
        }
