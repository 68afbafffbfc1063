"""
Stage graph for form approval.

Linear chain Draft -> Submitted -> Under Verification -> Verified -> Approved
-> Completed, plus the absorbing Rejected stage reached only via reject_form.
The table is process-wide read-only data: built once by `build_stage_table()`
and never mutated afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from app.docflow.errors import UnknownActionError
from app.docflow.rbac import (
    ROLE_ADMIN,
    ROLE_AUDITOR,
    ROLE_LINE_INCHARGE,
    ROLE_OPERATOR,
    ROLE_SUPERVISOR,
    ROLE_SYSTEM,
)

DRAFT = "Draft"
SUBMITTED = "Submitted"
UNDER_VERIFICATION = "Under Verification"
VERIFIED = "Verified"
APPROVED = "Approved"
COMPLETED = "Completed"
REJECTED = "Rejected"


class Action(str, Enum):
    SUBMIT_FORM = "submit_form"
    START_VERIFICATION = "start_verification"
    VERIFY_FORM = "verify_form"
    START_APPROVAL = "start_approval"
    APPROVE_FORM = "approve_form"
    REJECT_FORM = "reject_form"
    COMPLETE_WORKFLOW = "complete_workflow"

    @classmethod
    def parse(cls, value: "str | Action") -> "Action":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnknownActionError(f"Unknown action: {value!r}")
        try:
            return cls(value.strip())
        except ValueError:
            raise UnknownActionError(f"Unknown action: {value}") from None


# Stages each action may be applied from.
ACTION_SOURCES: dict[Action, frozenset[str]] = {
    Action.SUBMIT_FORM: frozenset({DRAFT}),
    Action.START_VERIFICATION: frozenset({SUBMITTED}),
    Action.VERIFY_FORM: frozenset({UNDER_VERIFICATION}),
    Action.START_APPROVAL: frozenset({VERIFIED}),
    Action.APPROVE_FORM: frozenset({VERIFIED}),
    Action.REJECT_FORM: frozenset({UNDER_VERIFICATION, VERIFIED}),
    Action.COMPLETE_WORKFLOW: frozenset({APPROVED}),
}

ACTION_TARGETS: dict[Action, str] = {
    Action.SUBMIT_FORM: SUBMITTED,
    Action.START_VERIFICATION: UNDER_VERIFICATION,
    Action.VERIFY_FORM: VERIFIED,
    Action.START_APPROVAL: APPROVED,
    Action.APPROVE_FORM: APPROVED,
    Action.REJECT_FORM: REJECTED,
    Action.COMPLETE_WORKFLOW: COMPLETED,
}


@dataclass(frozen=True)
class StageDefinition:
    name: str
    next_stage: str | None
    auto_progress: bool
    required_roles: tuple[str, ...]
    action: str | None  # action that moves a submission out of this stage
    auto_progress_delay_ms: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.next_stage is None


class StageTable:
    def __init__(self, stages: list[StageDefinition]) -> None:
        self._stages = tuple(stages)
        self._by_name = {s.name: s for s in self._stages}

    def __iter__(self):
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def get(self, name: str | None) -> StageDefinition | None:
        return self._by_name.get(name or "")

    def next_of(self, stage: StageDefinition) -> StageDefinition | None:
        return self.get(stage.next_stage) if stage.next_stage else None

    def names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self._stages)

    def is_terminal(self, name: str) -> bool:
        stage = self.get(name)
        return stage is not None and stage.is_terminal


def build_stage_table(
    *,
    submitted_delay_ms: int = 5000,
    verified_delay_ms: int = 3000,
    approved_delay_ms: int = 2000,
) -> StageTable:
    return StageTable(
        [
            StageDefinition(
                name=DRAFT,
                next_stage=SUBMITTED,
                auto_progress=False,
                required_roles=(ROLE_OPERATOR, ROLE_LINE_INCHARGE),
                action=Action.SUBMIT_FORM.value,
            ),
            StageDefinition(
                name=SUBMITTED,
                next_stage=UNDER_VERIFICATION,
                auto_progress=True,
                required_roles=(ROLE_SUPERVISOR, ROLE_ADMIN),
                action=Action.START_VERIFICATION.value,
                auto_progress_delay_ms=submitted_delay_ms,
            ),
            StageDefinition(
                name=UNDER_VERIFICATION,
                next_stage=VERIFIED,
                auto_progress=False,
                required_roles=(ROLE_SUPERVISOR, ROLE_ADMIN),
                action=Action.VERIFY_FORM.value,
            ),
            StageDefinition(
                name=VERIFIED,
                next_stage=APPROVED,
                auto_progress=True,
                required_roles=(ROLE_ADMIN, ROLE_AUDITOR),
                action=Action.START_APPROVAL.value,
                auto_progress_delay_ms=verified_delay_ms,
            ),
            StageDefinition(
                name=APPROVED,
                next_stage=COMPLETED,
                auto_progress=True,
                required_roles=(ROLE_SYSTEM,),
                action=Action.COMPLETE_WORKFLOW.value,
                auto_progress_delay_ms=approved_delay_ms,
            ),
            StageDefinition(
                name=COMPLETED,
                next_stage=None,
                auto_progress=False,
                required_roles=(),
                action=None,
            ),
            StageDefinition(
                name=REJECTED,
                next_stage=None,
                auto_progress=False,
                required_roles=(),
                action=None,
            ),
        ]
    )


def stage_table_from_config(config: dict) -> StageTable:
    return build_stage_table(
        submitted_delay_ms=int(config.get("WORKFLOW_DELAY_SUBMITTED_MS", 5000)),
        verified_delay_ms=int(config.get("WORKFLOW_DELAY_VERIFIED_MS", 3000)),
        approved_delay_ms=int(config.get("WORKFLOW_DELAY_APPROVED_MS", 2000)),
    )
