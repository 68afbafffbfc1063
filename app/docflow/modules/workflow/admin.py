"""
Form submission API.

Thin JSON handlers over WorkflowEngine: they enforce department/ownership
visibility and translate HTTP verbs into workflow actions. Stage and role
rules live in the engine; WorkflowError subclasses become JSON errors with
their own status codes.
"""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.docflow.audit import record_event
from app.docflow.db import db_session
from app.docflow.errors import WorkflowError
from app.docflow.models import User
from app.docflow.modules.workflow.engine import WorkflowEngine
from app.docflow.modules.workflow.entities import Actor
from app.docflow.modules.workflow.models import FormSubmission
from app.docflow.modules.workflow.stages import SUBMITTED, UNDER_VERIFICATION, VERIFIED, Action
from app.docflow.modules.workflow.store import VALID_PRIORITIES, to_entity
from app.docflow.rbac import (
    ROLE_ADMIN,
    ROLE_LINE_INCHARGE,
    ROLE_OPERATOR,
    ROLE_SUPERVISOR,
    can_access_department,
    require_login,
    require_role,
)

bp = Blueprint("workflow", __name__)

SUBMIT_ROLES = (ROLE_ADMIN, ROLE_SUPERVISOR, ROLE_LINE_INCHARGE, ROLE_OPERATOR)


def _engine() -> WorkflowEngine:
    return current_app.extensions["workflow_engine"]


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _payload() -> dict:
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def _text(data: dict, key: str) -> str:
    raw = data.get(key)
    return "" if raw is None else str(raw).strip()


def _error(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


@bp.errorhandler(WorkflowError)
def _workflow_error(e: WorkflowError):
    return _error(e.message, e.status_code)


def _get_visible_submission(submission_id: int) -> FormSubmission | tuple:
    s = db_session()
    row = s.get(FormSubmission, submission_id)
    if row is None:
        return _error("Form submission not found", 404)
    u = _current_user()
    if not can_access_department(u, row.department):
        return _error("Access denied. You can only access submissions from your department.", 403)
    return row


def _run(submission_id: int, action: Action | str, comments: str):
    result = _engine().process(
        submission_id,
        action,
        Actor.from_user(_current_user()),
        {"comments": comments},
    )
    return jsonify(result.to_dict()), 200


@bp.get("/submissions")
@require_login
def list_submissions():
    s = db_session()
    u = _current_user()

    status = (request.args.get("status") or "").strip()
    department = (request.args.get("department") or "").strip()
    try:
        page = max(int(request.args.get("page") or 1), 1)
        limit = min(max(int(request.args.get("limit") or 10), 1), 100)
    except ValueError:
        return _error("page and limit must be integers", 400)

    q = s.query(FormSubmission)
    if u.role != ROLE_ADMIN:
        q = q.filter(FormSubmission.department == u.department)
    elif department:
        q = q.filter(FormSubmission.department == department)
    if u.role == ROLE_OPERATOR:
        q = q.filter(FormSubmission.submitted_by_user_id == u.id)
    if status:
        q = q.filter(FormSubmission.status == status)

    total = q.count()
    rows = q.order_by(FormSubmission.created_at.desc(), FormSubmission.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify(
        {
            "success": True,
            "data": [to_entity(r).to_dict() for r in rows],
            "pagination": {
                "currentPage": page,
                "totalPages": (total + limit - 1) // limit,
                "totalDocs": total,
                "limit": limit,
            },
        }
    )


@bp.post("/submissions")
@require_role(*SUBMIT_ROLES)
def create_submission():
    u = _current_user()
    data = _payload()

    title = _text(data, "title")
    priority = _text(data, "priority") or "Medium"
    notes = _text(data, "notes") or None

    errors = []
    if not 3 <= len(title) <= 200:
        errors.append("Title must be between 3 and 200 characters")
    if priority not in VALID_PRIORITIES:
        errors.append("Invalid priority level")
    if notes and len(notes) > 2000:
        errors.append("Notes cannot exceed 2000 characters")
    if errors:
        return jsonify({"success": False, "errors": errors}), 400

    submission = _engine().store.create_draft(
        title=title,
        department=u.department,
        submitted_by=u.id,
        priority=priority,
        notes=notes,
    )

    s = db_session()
    record_event(
        s,
        actor=u,
        action="create_form_submission",
        description=f"Created form submission: {title}",
        entity_type="FormSubmission",
        entity_id=str(submission.id),
        metadata={"submission_number": submission.submission_number},
    )
    s.commit()
    return jsonify({"success": True, "message": "Form submission created successfully", "data": submission.to_dict()}), 201


@bp.get("/submissions/<int:submission_id>")
@require_login
def get_submission(submission_id: int):
    row = _get_visible_submission(submission_id)
    if isinstance(row, tuple):
        return row
    u = _current_user()
    if u.role == ROLE_OPERATOR and row.submitted_by_user_id != u.id:
        return _error("Access denied. You can only view your own submissions.", 403)
    return jsonify({"success": True, "data": to_entity(row).to_dict()})


@bp.put("/submissions/<int:submission_id>/submit")
@require_role(*SUBMIT_ROLES)
def submit_submission(submission_id: int):
    row = _get_visible_submission(submission_id)
    if isinstance(row, tuple):
        return row
    u = _current_user()
    if row.submitted_by_user_id != u.id and u.role != ROLE_ADMIN:
        return _error("Access denied. You can only submit your own forms.", 403)
    return _run(submission_id, Action.SUBMIT_FORM, _text(_payload(), "comments"))


@bp.put("/submissions/<int:submission_id>/verify")
@require_login
def verify_submission(submission_id: int):
    row = _get_visible_submission(submission_id)
    if isinstance(row, tuple):
        return row
    comments = _text(_payload(), "comments")
    if len(comments) > 1000:
        return _error("Comments cannot exceed 1000 characters", 400)
    if row.status == SUBMITTED:
        action = Action.START_VERIFICATION
    elif row.status == UNDER_VERIFICATION:
        action = Action.VERIFY_FORM
    else:
        return _error("Form cannot be verified in current status", 400)
    return _run(submission_id, action, comments)


@bp.put("/submissions/<int:submission_id>/approve")
@require_login
def approve_submission(submission_id: int):
    row = _get_visible_submission(submission_id)
    if isinstance(row, tuple):
        return row
    data = _payload()
    comments = _text(data, "comments")
    if len(comments) > 1000:
        return _error("Comments cannot exceed 1000 characters", 400)
    if row.status != VERIFIED:
        return _error("Form cannot be approved in current status", 400)
    mode = (_text(data, "mode") or "approve").lower()
    action = Action.START_APPROVAL if mode == "start" else Action.APPROVE_FORM
    return _run(submission_id, action, comments)


@bp.put("/submissions/<int:submission_id>/reject")
@require_login
def reject_submission(submission_id: int):
    row = _get_visible_submission(submission_id)
    if isinstance(row, tuple):
        return row
    comments = _text(_payload(), "comments")
    if not 10 <= len(comments) <= 1000:
        return _error("Comments are required for rejection and must be between 10 and 1000 characters", 400)
    return _run(submission_id, Action.REJECT_FORM, comments)


@bp.post("/submissions/<int:submission_id>/actions")
@require_login
def run_action(submission_id: int):
    row = _get_visible_submission(submission_id)
    if isinstance(row, tuple):
        return row
    data = _payload()
    return _run(submission_id, data.get("action") or "", _text(data, "comments"))
