from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.docflow.audit import record_event
from app.docflow.db import db_session
from app.docflow.models import User
from app.docflow.modules.notifications.service import NotificationDispatcher
from app.docflow.rbac import ROLE_ADMIN, require_login, require_role

bp = Blueprint("notifications", __name__)


def _dispatcher() -> NotificationDispatcher:
    return current_app.extensions["notifications"]


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/")
@require_login
def list_notifications():
    u = _current_user()
    try:
        limit = int(request.args.get("limit") or 50)
    except ValueError:
        return jsonify({"success": False, "message": "limit must be an integer"}), 400
    unread_only = (request.args.get("unreadOnly") or "").strip().lower() == "true"
    items = _dispatcher().list(u.id, limit=limit, unread_only=unread_only)
    return jsonify({"success": True, "data": [n.to_dict() for n in items], "count": len(items)})


@bp.get("/count")
@require_login
def unread_count():
    u = _current_user()
    return jsonify({"success": True, "data": {"unreadCount": _dispatcher().unread_count(u.id)}})


@bp.put("/read-all")
@require_login
def mark_all_read():
    u = _current_user()
    count = _dispatcher().mark_all_read(u.id)

    s = db_session()
    record_event(
        s,
        actor=u,
        action="notifications_read_all",
        description=f"Marked all notifications as read ({count} notifications)",
        entity_type="system",
        metadata={"notificationCount": count},
    )
    s.commit()
    return jsonify({"success": True, "message": f"Marked {count} notifications as read", "data": {"count": count}})


@bp.put("/<notification_id>/read")
@require_login
def mark_read(notification_id: str):
    u = _current_user()
    if not _dispatcher().mark_read(u.id, notification_id):
        return jsonify({"success": False, "message": "Notification not found"}), 404

    s = db_session()
    record_event(
        s,
        actor=u,
        action="notification_read",
        description=f"Marked notification as read: {notification_id}",
        entity_type="system",
        metadata={"notificationId": notification_id},
    )
    s.commit()
    return jsonify({"success": True, "message": "Notification marked as read"})


@bp.post("/system")
@require_role(ROLE_ADMIN)
def send_system_notification():
    u = _current_user()
    data = request.get_json(silent=True) or {}
    user_ids = data.get("userIds")
    title = (data.get("title") or "").strip()
    message = (data.get("message") or "").strip()

    if not isinstance(user_ids, list) or not user_ids:
        return jsonify({"success": False, "message": "User IDs array is required"}), 400
    try:
        user_ids = [int(x) for x in user_ids]
    except (TypeError, ValueError):
        return jsonify({"success": False, "message": "User IDs must be integers"}), 400
    if not title or not message:
        return jsonify({"success": False, "message": "Title and message are required"}), 400

    sent = _dispatcher().broadcast(user_ids, title, message, data.get("data") or {})

    s = db_session()
    record_event(
        s,
        actor=u,
        action="system_notification_sent",
        description=f"Sent system notification to {len(user_ids)} users: {title}",
        entity_type="system",
        metadata={"userIds": user_ids, "title": title, "notificationCount": len(sent)},
    )
    s.commit()
    return jsonify(
        {
            "success": True,
            "message": f"Notification sent to {len(sent)} users",
            "data": {"notifications": [n.to_dict() for n in sent]},
        }
    )


@bp.get("/stats")
@require_role(ROLE_ADMIN)
def notification_stats():
    return jsonify({"success": True, "data": _dispatcher().stats()})
