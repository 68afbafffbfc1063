from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.docflow.models import Base


class FormSubmission(Base):
    __tablename__ = "form_submissions"
    __table_args__ = (
        Index("idx_form_submissions_status", "status"),
        Index("idx_form_submissions_department", "department"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    submission_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # SUB-YYYYMMDD-NNNN

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    department: Mapped[str] = mapped_column(String(128), nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Draft -> Submitted -> Under Verification -> Verified -> Approved -> Completed (or Rejected)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="Draft")

    submitted_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Optimistic concurrency token; bumped by every store save.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    steps: Mapped[list["FormSubmissionStep"]] = relationship(
        "FormSubmissionStep",
        back_populates="submission",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FormSubmissionStep.position",
    )


class FormSubmissionStep(Base):
    """One entry of a submission's approval history (append-only by position)."""

    __tablename__ = "form_submission_steps"
    __table_args__ = (
        UniqueConstraint("submission_id", "position", name="uq_submission_step_position"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    submission_id: Mapped[int] = mapped_column(ForeignKey("form_submissions.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    step: Mapped[str] = mapped_column(String(16), nullable=False)  # verification | approval | completion
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # pending | approved | rejected
    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    comments: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    submission: Mapped[FormSubmission] = relationship(
        "FormSubmission",
        back_populates="steps",
        lazy="selectin",
    )
