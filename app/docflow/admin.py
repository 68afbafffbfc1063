from flask import Blueprint, jsonify, request

from app.docflow.db import db_session
from app.docflow.models import AuditEvent
from app.docflow.rbac import ROLE_ADMIN, ROLE_AUDITOR, ROLE_SUPERVISOR, require_role

bp = Blueprint("admin", __name__)


@bp.get("/audit")
@require_role(ROLE_ADMIN, ROLE_SUPERVISOR, ROLE_AUDITOR)
def audit_list():
    """
    Read-only audit trail (newest first) with simple filters:
    - action
    - entity_type (FormSubmission, User, system)
    - entity_id (e.g. a submission id)
    - status (success | failure)
    """
    s = db_session()
    q = s.query(AuditEvent)

    action = (request.args.get("action") or "").strip()
    entity_type = (request.args.get("entity_type") or "").strip()
    entity_id = (request.args.get("entity_id") or "").strip()
    status = (request.args.get("status") or "").strip()
    if action:
        q = q.filter(AuditEvent.action == action)
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditEvent.entity_id == entity_id)
    if status:
        q = q.filter(AuditEvent.status == status)

    try:
        limit = min(max(int(request.args.get("limit") or 200), 1), 1000)
    except ValueError:
        limit = 200

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit).all()
    return jsonify({"success": True, "data": [e.to_dict() for e in events], "count": len(events)})
